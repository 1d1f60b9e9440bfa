"""
Tunnel core: the connection state machine, the forwarding pipelines and
the registry that ends every pipe when the transport closes.
"""

from .adit import Adit, parse_connection_string
from .auth import AuthResolver
from .connection import ConnectionManager
from .forwarding import ForwardInSession, ForwardOutSession
from .ports import PortResolver, is_port_range
from .registry import PipeHandle, StreamRegistry

__all__ = [
    "Adit",
    "parse_connection_string",
    "AuthResolver",
    "ConnectionManager",
    "ForwardInSession",
    "ForwardOutSession",
    "PortResolver",
    "is_port_range",
    "PipeHandle",
    "StreamRegistry",
]
