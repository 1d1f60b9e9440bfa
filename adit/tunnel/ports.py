"""
Port resolution.

A configured port is either fixed or a ``[min, max)`` range; ranges are
sampled again on every resolution so each connection attempt can land on a
different port.
"""

import random
from typing import Any, Mapping, Optional, Union

from ..core.domain.models import DEFAULT_HOST, Endpoint, PortSpec


def is_port_range(spec: PortSpec) -> bool:
    """Whether ``spec`` is a ``[min, max)`` pair rather than a fixed port."""
    return isinstance(spec, (list, tuple))


class PortResolver:
    """Resolves port specs into concrete port numbers."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def resolve(self, spec: PortSpec) -> int:
        """
        Return the fixed port, or a fresh uniform sample from ``[min, max)``.

        Ranges with ``min >= max`` are not checked.
        """
        if is_port_range(spec):
            low, high = int(spec[0]), int(spec[1])
            return self._rng.randrange(low, high)

        return int(spec)

    def resolve_endpoint(self, endpoint: Union[Endpoint, Mapping[str, Any], None]) -> Endpoint:
        """Resolve an endpoint's port and default its host to ``localhost``."""
        endpoint = Endpoint.from_value(endpoint)
        return Endpoint(
            host=endpoint.host or DEFAULT_HOST,
            port=self.resolve(endpoint.port)
        )
