"""
Core services.
"""

from .event_bus import EventEmitter, EventSubscription

__all__ = [
    "EventEmitter",
    "EventSubscription",
]
