"""
Collaborator interfaces the tunnel core depends on.
"""

from .transport import (
    ForwardInCallback, ForwardOutCallback, IListener, INetwork, IStream, ITransport
)

__all__ = [
    "ForwardInCallback",
    "ForwardOutCallback",
    "IListener",
    "INetwork",
    "IStream",
    "ITransport",
]
