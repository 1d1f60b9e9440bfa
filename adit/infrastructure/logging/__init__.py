"""
Logging infrastructure.
"""

from .setup import InterceptHandler, setup_logging

__all__ = ['InterceptHandler', 'setup_logging']
