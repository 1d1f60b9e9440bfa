"""
Tunnel domain models.

This module defines the value objects shared by the connection state
machine and the forwarding sessions: endpoints, credentials, the resolved
tunnel configuration and the connection state enum.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from ..exceptions import ConfigurationError

PortSpec = Union[int, str, Sequence[int]]
"""A fixed port or a ``[min, max)`` range, resolved per connection attempt."""

DEFAULT_HOST = "localhost"
DEFAULT_SSH_PORT = 22


class ConnectionState(Enum):
    """Lifecycle states of the transport connection."""
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    RETRYING = "retrying"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.CLOSED, ConnectionState.FAILED)


@dataclass(frozen=True)
class Endpoint:
    """A host and a port spec. A missing host means ``localhost``."""
    host: Optional[str] = None
    port: PortSpec = 0

    @classmethod
    def from_value(cls, value: Union['Endpoint', Mapping[str, Any], None]) -> 'Endpoint':
        """Build an endpoint from an endpoint, a ``{host, port}`` mapping or None."""
        if value is None:
            return cls()
        if isinstance(value, Endpoint):
            return value
        if isinstance(value, Mapping):
            return cls(host=value.get('host'), port=value.get('port', 0))
        raise ConfigurationError(f"Invalid endpoint: {value!r}")

    def __str__(self) -> str:
        return f"{self.host or DEFAULT_HOST}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """
    Exactly one SSH authentication method.

    The populated field decides which key the transport settings carry:
    ``password``, ``agent`` or ``private_key``.
    """
    password: Optional[str] = None
    agent_socket_path: Optional[str] = None
    private_key: Optional[bytes] = None

    def __post_init__(self) -> None:
        populated = [
            value for value in (self.password, self.agent_socket_path, self.private_key)
            if value
        ]
        if len(populated) != 1:
            raise ConfigurationError(
                f"Exactly one credential kind must be set, got {len(populated)}"
            )

    @property
    def kind(self) -> str:
        if self.password:
            return "password"
        if self.agent_socket_path:
            return "agent"
        return "private_key"

    def to_settings(self) -> Dict[str, Any]:
        """Return the credential part of the transport connect settings."""
        if self.password:
            return {'password': self.password}
        if self.agent_socket_path:
            return {'agent': self.agent_socket_path}
        return {'private_key': self.private_key}

    def __repr__(self) -> str:
        return f"Credentials(kind={self.kind!r})"


@dataclass
class TunnelConfig:
    """Resolved configuration of one tunnel's transport connection."""
    host: str
    username: Optional[str]
    credentials: Credentials
    port: PortSpec = DEFAULT_SSH_PORT
    retries: int = 0
    retry_delay: float = 0.0

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError("SSH host is required")

        if self.retries < 0:
            raise ConfigurationError(
                f"Retry budget must be non-negative, got {self.retries}")

        if self.retry_delay < 0:
            raise ConfigurationError(
                f"Retry delay must be non-negative, got {self.retry_delay}")
