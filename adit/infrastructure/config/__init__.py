"""
Configuration management for the tunnel application.
"""

from .loader import ConfigLoader
from .models import (
    ApplicationConfig,
    EndpointConfig,
    ForwardingConfig,
    LoggingConfig,
    SSHConfig,
)

__all__ = [
    'ApplicationConfig',
    'ConfigLoader',
    'EndpointConfig',
    'ForwardingConfig',
    'LoggingConfig',
    'SSHConfig',
]
