"""
Adit - SSH tunnel library and CLI.

One SSH connection multiplexed into local-to-remote and remote-to-local
port forwards, with a bounded reconnect budget and an event channel for
data, errors and connection state.
"""

__version__ = "0.1.0"

# Public API exports
from .core.domain.events import Event, TunnelEvent
from .core.domain.models import ConnectionState, Credentials, Endpoint, TunnelConfig
from .core.exceptions import (
    AditError, ConfigurationError, ForwardSetupError,
    NoAuthStrategyError, PipeError, TransportError
)
from .tunnel import Adit, parse_connection_string

__all__ = [
    "Adit",
    "parse_connection_string",
    "Event",
    "TunnelEvent",
    "ConnectionState",
    "Credentials",
    "Endpoint",
    "TunnelConfig",
    "AditError",
    "ConfigurationError",
    "ForwardSetupError",
    "NoAuthStrategyError",
    "PipeError",
    "TransportError",
]
