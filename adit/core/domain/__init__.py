"""
Domain models for tunnels and their events.
"""

from .events import Event, TunnelEvent
from .models import ConnectionState, Credentials, Endpoint, PortSpec, TunnelConfig

__all__ = [
    "Event",
    "TunnelEvent",
    "ConnectionState",
    "Credentials",
    "Endpoint",
    "PortSpec",
    "TunnelConfig",
]
