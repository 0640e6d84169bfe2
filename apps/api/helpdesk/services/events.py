"""Ticket domain events.

Delivery is at-most-once and best effort with no ordering guarantee, neither
across tickets nor within one ticket's stream. Events are published only
after the mutation has been committed; a failing bus or handler never undoes
that mutation and is never retried here.
"""
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import enum
import logging
import threading
from typing import Any, Protocol
from uuid import uuid4

from ..core.cancellation import CancelToken, is_cancelled
from ..models.message import MessageAuthorType

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    TICKET_CREATED = "ticket_created"
    TICKET_STATUS_CHANGED = "ticket_status_changed"
    TICKET_PRIORITY_CHANGED = "ticket_priority_changed"
    TICKET_TAGS_CHANGED = "ticket_tags_changed"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_MESSAGE_ADDED = "ticket_message_added"


@dataclass(frozen=True)
class Actor:
    type: str
    user_id: str | None = None
    staff_id: str | None = None

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(type=MessageAuthorType.USER.value, user_id=user_id)

    @classmethod
    def staff(cls, staff_id: str) -> "Actor":
        return cls(type=MessageAuthorType.STAFF.value, staff_id=staff_id)


@dataclass(frozen=True)
class TicketCreatedPayload:
    department_id: str
    team_id: str | None
    priority: str
    title: str


@dataclass(frozen=True)
class TicketStatusChangedPayload:
    old_status: str
    new_status: str
    comment: str = ""


@dataclass(frozen=True)
class TicketPriorityChangedPayload:
    old_priority: str
    new_priority: str


@dataclass(frozen=True)
class TicketTagsChangedPayload:
    old_tags: tuple[str, ...]
    new_tags: tuple[str, ...]


@dataclass(frozen=True)
class TicketAssignedPayload:
    assignee_staff_id: str | None
    team_id: str | None


@dataclass(frozen=True)
class TicketMessageAddedPayload:
    message_id: str
    message_type: str
    author_type: str
    author_id: str | None
    body_preview: str


@dataclass(frozen=True)
class Event:
    type: EventType
    ticket_id: str
    actor: Actor
    payload: Any
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[Event], None]


class EventBus(Protocol):
    def publish(self, event: Event) -> None: ...
    def subscribe(self, event_type: EventType, handler: EventHandler) -> None: ...


class InMemoryEventBus:
    """Synchronous in-process bus. A failing handler does not stop the others."""

    def __init__(self):
        self._lock = threading.RLock()
        self._handlers: dict[EventType, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        with self._lock:
            # a handler already on the list is not added twice
            if handler not in self._handlers[event_type]:
                self._handlers[event_type].append(handler)

    def publish(self, event: Event) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.type, ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("event handler failed (type=%s, ticket_id=%s)", event.type.value, event.ticket_id)


def publish_event(bus: EventBus | None, event: Event, cancel: CancelToken | None = None) -> None:
    """Fire-and-forget publication. Never raises."""
    if bus is None:
        return
    if is_cancelled(cancel):
        # already committed; losing the notification is a dispatcher failure, not a business error
        logger.warning("event dropped after cancellation (type=%s, ticket_id=%s)", event.type.value, event.ticket_id)
        return
    try:
        bus.publish(event)
    except Exception:
        logger.exception("event publish failed (type=%s, ticket_id=%s)", event.type.value, event.ticket_id)


def body_preview(body: str, limit: int = 120) -> str:
    body = body.strip()
    if len(body) <= limit:
        return body
    if limit <= 3:
        return body[:limit]
    return body[: limit - 3] + "..."
