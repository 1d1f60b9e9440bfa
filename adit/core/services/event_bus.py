"""
Synchronous event channel for tunnel notifications.

Handlers are dispatched in subscription order on the caller's stack so that
notifications keep the order in which the transport produced them. Handler
failures are logged and counted, never propagated to the emitter.
"""

import asyncio
import fnmatch
import time
import uuid
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from ..domain.events import Event

EventHandler = Callable[[Event], Any]


class EventSubscription:
    """Represents an event subscription."""

    def __init__(self, subscription_id: str, event_pattern: str,
                 handler: EventHandler, once: bool = False):
        self.subscription_id = subscription_id
        self.event_pattern = event_pattern
        self.handler = handler
        self.once = once
        self.created_at = time.time()
        self.call_count = 0
        self.last_called: Optional[float] = None
        self.error_count = 0


class EventEmitter:
    """
    Event channel of a tunnel.

    Supports exact names and ``*``/``?`` patterns, one-shot subscriptions
    and coroutine handlers (scheduled on the running loop).
    """

    def __init__(self, source: Optional[str] = None):
        self._source = source
        self._subscriptions: Dict[str, List[EventSubscription]] = defaultdict(list)
        self._wildcard_subscriptions: List[EventSubscription] = []
        self._pending: Set["asyncio.Task[Any]"] = set()

        self._metrics: Dict[str, int] = {
            'events_emitted': 0,
            'handlers_called': 0,
            'handlers_failed': 0,
        }

    def on(self, event_name: str, handler: EventHandler) -> str:
        """Subscribe to events with the given name or pattern."""
        return self._add(event_name, handler, once=False)

    def once(self, event_name: str, handler: EventHandler) -> str:
        """Subscribe for the next matching event only."""
        return self._add(event_name, handler, once=True)

    def off(self, subscription_id: str) -> bool:
        """Unsubscribe using subscription ID."""
        for event_name, subscriptions in self._subscriptions.items():
            for i, subscription in enumerate(subscriptions):
                if subscription.subscription_id == subscription_id:
                    subscriptions.pop(i)
                    logger.debug(f"Removed subscription {subscription_id} for '{event_name}'")
                    return True

        for i, subscription in enumerate(self._wildcard_subscriptions):
            if subscription.subscription_id == subscription_id:
                self._wildcard_subscriptions.pop(i)
                logger.debug(f"Removed wildcard subscription {subscription_id}")
                return True

        return False

    def emit(self, event_name: str, data: Any = None, **metadata: Any) -> Event:
        """Build an event and dispatch it to every matching handler."""
        event = Event(name=event_name, data=data, source=self._source, metadata=metadata)
        self._metrics['events_emitted'] += 1

        matching = list(self._subscriptions.get(event.name, ()))
        matching.extend(
            subscription for subscription in self._wildcard_subscriptions
            if fnmatch.fnmatch(event.name, subscription.event_pattern)
        )

        for subscription in matching:
            if subscription.once:
                self.off(subscription.subscription_id)
            self._dispatch(subscription, event)

        if not matching and event.name == 'error':
            logger.debug(f"Unhandled tunnel error: {data}")

        return event

    def listener_count(self, event_name: str) -> int:
        """Number of handlers that would receive ``event_name``."""
        count = len(self._subscriptions.get(event_name, ()))
        count += sum(
            1 for subscription in self._wildcard_subscriptions
            if fnmatch.fnmatch(event_name, subscription.event_pattern)
        )
        return count

    def get_metrics(self) -> Dict[str, int]:
        """Get event channel metrics."""
        return {
            **self._metrics,
            'subscriptions_count': (
                sum(len(subs) for subs in self._subscriptions.values())
                + len(self._wildcard_subscriptions)
            ),
        }

    def _add(self, event_name: str, handler: EventHandler, once: bool) -> str:
        event_name = getattr(event_name, 'value', event_name)
        subscription = EventSubscription(
            subscription_id=str(uuid.uuid4()),
            event_pattern=event_name,
            handler=handler,
            once=once
        )

        if '*' in event_name or '?' in event_name:
            self._wildcard_subscriptions.append(subscription)
        else:
            self._subscriptions[event_name].append(subscription)

        logger.debug(f"Added subscription for '{event_name}' (ID: {subscription.subscription_id})")
        return subscription.subscription_id

    def _dispatch(self, subscription: EventSubscription, event: Event) -> None:
        try:
            if asyncio.iscoroutinefunction(subscription.handler):
                task = asyncio.get_running_loop().create_task(subscription.handler(event))
                self._pending.add(task)
                task.add_done_callback(partial(self._handler_done, subscription, event.name))
            else:
                subscription.handler(event)

            subscription.call_count += 1
            subscription.last_called = time.time()
            self._metrics['handlers_called'] += 1

        except Exception as e:
            subscription.error_count += 1
            self._metrics['handlers_failed'] += 1
            logger.error(f"Handler error for event {event.name}: {e}")

    def _handler_done(
        self,
        subscription: EventSubscription,
        event_name: str,
        task: "asyncio.Task[Any]"
    ) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            subscription.error_count += 1
            self._metrics['handlers_failed'] += 1
            logger.error(f"Async handler error for event {event_name}: {error}")
