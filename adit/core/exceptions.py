"""
Error taxonomy for the Adit tunnel library.

Every error raised or emitted by the library derives from ``AditError`` and
carries an ``ErrorCode`` so callers can branch on the failure class without
string matching.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Error codes for the tunnel failure classes."""
    UNKNOWN_ERROR = 10000
    CONFIG_ERROR = 10001
    NO_AUTH_STRATEGY = 10002
    TRANSPORT_ERROR = 10003
    FORWARD_SETUP_ERROR = 10004
    PIPE_ERROR = 10005


class AditError(Exception):
    """Base class for all tunnel errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigurationError(AditError):
    """Invalid or incomplete configuration. Fatal, never retried."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.CONFIG_ERROR, message, details)


class NoAuthStrategyError(ConfigurationError):
    """No password, agent socket or private key could be resolved."""

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(
            message or (
                "SSH agent is not enabled, private key doesn't exist "
                "and password is not provided, we need at least one of those things"
            ),
            details
        )
        self.code = ErrorCode.NO_AUTH_STRATEGY


class TransportError(AditError):
    """Connect, authentication or network failure of the SSH transport."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.TRANSPORT_ERROR, message, details)


class ForwardSetupError(AditError):
    """A forward-in or forward-out registration was rejected."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.FORWARD_SETUP_ERROR, message, details)


class PipeError(AditError):
    """A single forwarded connection failed to establish or broke."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(ErrorCode.PIPE_ERROR, message, details)
