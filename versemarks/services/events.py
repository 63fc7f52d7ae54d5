"""In-process publish/subscribe for bookmark and label changes.

Every mutating call on the bookmark engine publishes one event after its
storage transaction has committed. Delivery is synchronous, in subscription
order. A failing subscriber is logged and skipped; it can never undo the
mutation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Type

logger = logging.getLogger(__name__)


class BookmarkEvent:
    """Base class for everything published on the bus."""


@dataclass(frozen=True)
class BookmarkAddedOrUpdatedEvent(BookmarkEvent):
    """``label_ids`` is the bookmark's full label set after the mutation."""

    bookmark: Any
    label_ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class BookmarksDeletedEvent(BookmarkEvent):
    bookmark_ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class LabelAddedOrUpdatedEvent(BookmarkEvent):
    label: Any


@dataclass(frozen=True)
class LabelsDeletedEvent(BookmarkEvent):
    label_ids: List[int] = field(default_factory=list)


Handler = Callable[[BookmarkEvent], None]


class EventBus:
    def __init__(self):
        self._subscriptions = []

    def subscribe(self, handler: Handler, event_type: Optional[Type[BookmarkEvent]] = None) -> Handler:
        """Register ``handler``; restrict it to ``event_type`` if given."""
        self._subscriptions.append((handler, event_type))
        return handler

    def unsubscribe(self, handler: Handler) -> None:
        self._subscriptions = [
            (h, t) for (h, t) in self._subscriptions if h is not handler
        ]

    def publish(self, event: BookmarkEvent) -> None:
        # Copy so a handler may (un)subscribe while we iterate.
        for handler, event_type in list(self._subscriptions):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception('Subscriber %r failed handling %s', handler, type(event).__name__)

    def __len__(self):
        return len(self._subscriptions)

