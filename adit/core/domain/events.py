"""
Event domain models for the tunnel event channel.

Events are the observability surface of a tunnel: transport errors,
connection close, forwarded data and state transitions are all published
as ``Event`` instances.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class TunnelEvent(str, Enum):
    """Names of the events emitted on the tunnel event channel."""
    DATA = "data"
    ERROR = "error"
    CLOSE = "close"
    TCP_CONNECTION = "tcp connection"
    STATE = "state"


@dataclass(frozen=True)
class Event:
    """
    Immutable notification of something that happened to a tunnel.
    """

    name: str
    """Event name/type identifier."""

    data: Any = None
    """Event payload: an exception, a bytes chunk, a state, ..."""

    timestamp: float = field(default_factory=time.time)
    """Unix timestamp when event was created."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    """Unique event identifier."""

    source: Optional[str] = None
    """Component that generated the event."""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Additional event metadata."""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Event name cannot be empty")
        if isinstance(self.name, TunnelEvent):
            object.__setattr__(self, 'name', self.name.value)

    def with_metadata(self, **metadata: Any) -> 'Event':
        """Create a copy of this event with additional metadata."""
        return Event(
            name=self.name,
            data=self.data,
            timestamp=self.timestamp,
            event_id=self.event_id,
            source=self.source,
            metadata={**self.metadata, **metadata}
        )
