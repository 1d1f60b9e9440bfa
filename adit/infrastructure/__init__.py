"""
Infrastructure layer containing external dependencies and I/O operations.

This layer handles the SSH transport, plain TCP sockets, configuration
files and logging sinks.
"""

from .config import ApplicationConfig, ConfigLoader
from .logging import setup_logging
from .transport import AsyncioNetwork, AsyncSSHTransport

__all__ = [
    "ApplicationConfig",
    "AsyncioNetwork",
    "AsyncSSHTransport",
    "ConfigLoader",
    "setup_logging",
]
