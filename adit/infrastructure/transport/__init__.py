"""
Transport and network implementations: asyncssh for SSH, asyncio streams
for plain TCP.
"""

from .asyncssh_transport import AsyncSSHTransport
from .streams import AsyncioListener, AsyncioNetwork, AsyncioStream, TaskSet

__all__ = [
    "AsyncSSHTransport",
    "AsyncioListener",
    "AsyncioNetwork",
    "AsyncioStream",
    "TaskSet",
]
