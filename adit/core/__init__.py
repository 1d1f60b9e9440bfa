"""
Core module containing the tunnel domain models, collaborator interfaces,
error taxonomy and the event channel.

Nothing in this package performs I/O; transports and sockets are injected.
"""

from .domain.events import Event, TunnelEvent
from .domain.models import ConnectionState, Credentials, Endpoint, TunnelConfig
from .exceptions import (
    AditError, ConfigurationError, ErrorCode, ForwardSetupError,
    NoAuthStrategyError, PipeError, TransportError
)
from .interfaces.transport import IListener, INetwork, IStream, ITransport
from .services.event_bus import EventEmitter

__all__ = [
    "Event",
    "TunnelEvent",
    "ConnectionState",
    "Credentials",
    "Endpoint",
    "TunnelConfig",
    "AditError",
    "ConfigurationError",
    "ErrorCode",
    "ForwardSetupError",
    "NoAuthStrategyError",
    "PipeError",
    "TransportError",
    "IListener",
    "INetwork",
    "IStream",
    "ITransport",
    "EventEmitter",
]
