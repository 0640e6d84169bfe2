"""Ticket lifecycle: creation, status/priority/tag changes, messages, reads.

Every mutation writes the ticket row and its history row inside one
``uow.transaction()``; events go out only after that commit.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from uuid import uuid4

from ..core.cancellation import CancelToken, check_cancelled
from ..core.errors import (
    AccessDeniedError,
    ConflictError,
    UnauthorizedError,
    ValidationError,
)
from ..core.settings import settings
from ..core.ticket_rules import USER_CLOSABLE_STATUSES, can_transition
from ..models.attachment import AttachmentReference
from ..models.history import TicketHistory
from ..models.message import MessageAuthorType, MessageType, TicketMessage
from ..models.staff import StaffMember
from ..models.ticket import Ticket, TicketPriority, TicketStatus
from ..repositories.base import TicketFilter, UnitOfWork
from ..schemas.message import AttachmentIn
from ..schemas.ticket import TicketCreateIn, TicketStaffFilter, TicketUserFilter
from .access_scope import can_access, has_list_scope, narrow_list_filter
from .events import (
    Actor,
    Event,
    EventBus,
    EventType,
    TicketCreatedPayload,
    TicketMessageAddedPayload,
    TicketPriorityChangedPayload,
    TicketStatusChangedPayload,
    TicketTagsChangedPayload,
    body_preview,
    publish_event,
)
from .history import PriorityChange, StatusChange, TagsChange, is_user_visible, record_change
from .lookup import get_active_department, get_active_team, get_ticket_or_404

logger = logging.getLogger(__name__)

TICKET_KEY_PREFIX = "TCK-"
USER_CLOSE_COMMENT = "user_closed"


@dataclass
class TicketThread:
    ticket: Ticket
    messages: list[TicketMessage]


def generate_ticket_key() -> str:
    return TICKET_KEY_PREFIX + uuid4().hex[:8].upper()


def normalize_tags(tags: list[str]) -> list[str]:
    # trimmed, non-empty, first occurrence wins
    return list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    limit = settings.DEFAULT_PAGE_SIZE if not limit or limit < 1 else min(limit, settings.MAX_PAGE_SIZE)
    return limit, max(offset or 0, 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_status(value: TicketStatus | str) -> str:
    try:
        return TicketStatus(value).value
    except ValueError:
        raise ValidationError("invalid status", {"status": str(value)}) from None


def _parse_priority(value: TicketPriority | str) -> str:
    try:
        return TicketPriority(value).value
    except ValueError:
        raise ValidationError("invalid priority", {"priority": str(value)}) from None


def _require_staff(staff: StaffMember | None) -> StaffMember:
    if staff is None:
        raise UnauthorizedError("staff required")
    return staff


class TicketLifecycleEngine:
    def __init__(self, uow: UnitOfWork, bus: EventBus | None = None):
        self.uow = uow
        self.bus = bus

    # ------------------------------------------------------------------ create

    def create_ticket(self, requester_id: str, payload: TicketCreateIn, cancel: CancelToken | None = None) -> Ticket:
        check_cancelled(cancel)
        directory = self.uow.directory
        get_active_department(directory, payload.department_id)
        if payload.team_id is not None:
            team = get_active_team(directory, payload.team_id)
            if team.department_id != payload.department_id:
                raise ConflictError(
                    "team not part of department",
                    {"team_id": team.id, "department_id": payload.department_id},
                )

        title = payload.title.strip()
        if not title:
            raise ValidationError("title is required")

        now = _utcnow()
        ticket = Ticket(
            external_key=generate_ticket_key(),
            requester_id=requester_id,
            department_id=payload.department_id,
            team_id=payload.team_id,
            assignee_id=None,
            title=title,
            description=payload.description.strip(),
            status=TicketStatus.OPEN.value,
            priority=(payload.priority or TicketPriority.MEDIUM).value,
            tags=normalize_tags(payload.tags),
            created_at=now,
            updated_at=now,
        )

        # 생성 자체는 이력에 남기지 않는다 (첫 변경부터 기록)
        with self.uow.transaction():
            self.uow.tickets.create(ticket)
            check_cancelled(cancel)

        logger.info("ticket created (ticket_id=%s, key=%s, requester=%s)", ticket.id, ticket.external_key, requester_id)
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_CREATED,
                ticket_id=ticket.id,
                actor=Actor.user(requester_id),
                payload=TicketCreatedPayload(
                    department_id=ticket.department_id,
                    team_id=ticket.team_id,
                    priority=ticket.priority,
                    title=ticket.title,
                ),
            ),
            cancel,
        )
        return ticket

    # ---------------------------------------------------------------- messages

    def add_message(
        self,
        actor_type: MessageAuthorType,
        actor_id: str,
        staff: StaffMember | None,
        ticket_id: str,
        message_type: MessageType,
        body: str,
        attachments: list[AttachmentIn] | None = None,
        cancel: CancelToken | None = None,
    ) -> TicketMessage:
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)

        if actor_type == MessageAuthorType.USER:
            if ticket.requester_id != actor_id:
                raise AccessDeniedError("access denied")
            if message_type != MessageType.PUBLIC_REPLY:
                raise ValidationError("users can only post public replies")
            author_id = ticket.requester_id
            actor = Actor.user(actor_id)
        elif actor_type == MessageAuthorType.STAFF:
            if staff is None:
                raise ValidationError("staff context required")
            if not can_access(staff, ticket):
                raise AccessDeniedError("access denied")
            if message_type not in (MessageType.PUBLIC_REPLY, MessageType.INTERNAL_NOTE):
                raise ValidationError("invalid message type for staff")
            author_id = staff.id
            actor = Actor.staff(staff.id)
        else:
            raise ValidationError("unknown actor")

        body = (body or "").strip()
        if not body:
            raise ValidationError("body is required")

        message = TicketMessage(
            ticket_id=ticket.id,
            author_type=MessageAuthorType(actor_type).value,
            author_id=author_id,
            message_type=MessageType(message_type).value,
            body=body,
            created_at=_utcnow(),
        )
        records: list[AttachmentReference] = []
        with self.uow.transaction():
            self.uow.messages.create(message)
            for att in attachments or []:
                record = AttachmentReference(
                    message_id=message.id,
                    storage_key=att.storage_key,
                    file_name=att.file_name,
                    mime_type=att.mime_type,
                    size_bytes=att.size_bytes,
                    created_at=_utcnow(),
                )
                self.uow.attachments.create(record)
                records.append(record)
            check_cancelled(cancel)
        message.attachments = records

        logger.info(
            "message added (ticket_id=%s, message_id=%s, type=%s, attachments=%d)",
            ticket.id,
            message.id,
            message.message_type,
            len(records),
        )
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_MESSAGE_ADDED,
                ticket_id=ticket.id,
                actor=actor,
                payload=TicketMessageAddedPayload(
                    message_id=message.id,
                    message_type=message.message_type,
                    author_type=message.author_type,
                    author_id=message.author_id,
                    body_preview=body_preview(message.body, 120),
                ),
            ),
            cancel,
        )
        return message

    # ------------------------------------------------------------- transitions

    def update_status(
        self,
        staff: StaffMember | None,
        ticket_id: str,
        new_status: TicketStatus | str,
        comment: str = "",
        cancel: CancelToken | None = None,
    ) -> Ticket:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")

        old_status = ticket.status
        new_value = _parse_status(new_status)
        if not can_transition(old_status, new_value):
            raise ConflictError("invalid status transition", {"from": old_status, "to": new_value})

        now = _utcnow()
        if new_value == TicketStatus.CLOSED.value:
            ticket.closed_at = now
        elif ticket.closed_at is not None:
            ticket.closed_at = None
        ticket.status = new_value
        ticket.updated_at = now

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            record_change(
                self.uow.history,
                ticket.id,
                StatusChange(old=old_status, new=new_value, comment=comment or ""),
                actor_type=MessageAuthorType.STAFF,
                actor_id=staff.id,
            )
            check_cancelled(cancel)

        logger.info("status changed (ticket_id=%s, %s -> %s, staff=%s)", ticket.id, old_status, new_value, staff.id)
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_STATUS_CHANGED,
                ticket_id=ticket.id,
                actor=Actor.staff(staff.id),
                payload=TicketStatusChangedPayload(old_status=old_status, new_status=new_value, comment=comment or ""),
            ),
            cancel,
        )
        return ticket

    def update_priority(
        self,
        staff: StaffMember | None,
        ticket_id: str,
        new_priority: TicketPriority | str,
        cancel: CancelToken | None = None,
    ) -> Ticket:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")

        old_priority = ticket.priority
        new_value = _parse_priority(new_priority)
        ticket.priority = new_value
        ticket.updated_at = _utcnow()

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            record_change(
                self.uow.history,
                ticket.id,
                PriorityChange(old=old_priority, new=new_value),
                actor_type=MessageAuthorType.STAFF,
                actor_id=staff.id,
            )
            check_cancelled(cancel)

        logger.info("priority changed (ticket_id=%s, %s -> %s, staff=%s)", ticket.id, old_priority, new_value, staff.id)
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_PRIORITY_CHANGED,
                ticket_id=ticket.id,
                actor=Actor.staff(staff.id),
                payload=TicketPriorityChangedPayload(old_priority=old_priority, new_priority=new_value),
            ),
            cancel,
        )
        return ticket

    def update_tags(
        self,
        staff: StaffMember | None,
        ticket_id: str,
        tags: list[str],
        cancel: CancelToken | None = None,
    ) -> Ticket:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")

        old_tags = tuple(ticket.tags or ())
        new_tags = normalize_tags(tags)
        ticket.tags = new_tags
        ticket.updated_at = _utcnow()

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            record_change(
                self.uow.history,
                ticket.id,
                TagsChange(old=old_tags, new=tuple(new_tags)),
                actor_type=MessageAuthorType.STAFF,
                actor_id=staff.id,
            )
            check_cancelled(cancel)

        logger.info("tags changed (ticket_id=%s, staff=%s)", ticket.id, staff.id)
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_TAGS_CHANGED,
                ticket_id=ticket.id,
                actor=Actor.staff(staff.id),
                payload=TicketTagsChangedPayload(old_tags=old_tags, new_tags=tuple(new_tags)),
            ),
            cancel,
        )
        return ticket

    def close_ticket_as_user(self, user_id: str, ticket_id: str, cancel: CancelToken | None = None) -> Ticket:
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if ticket.requester_id != user_id:
            raise AccessDeniedError("access denied")
        if ticket.status not in {s.value for s in USER_CLOSABLE_STATUSES}:
            raise ConflictError("ticket cannot be closed in current status", {"status": ticket.status})

        old_status = ticket.status
        now = _utcnow()
        ticket.status = TicketStatus.CLOSED.value
        ticket.closed_at = now
        ticket.updated_at = now

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            record_change(
                self.uow.history,
                ticket.id,
                StatusChange(old=old_status, new=ticket.status, comment=USER_CLOSE_COMMENT),
                actor_type=MessageAuthorType.USER,
                actor_id=user_id,
            )
            check_cancelled(cancel)

        logger.info("ticket closed by requester (ticket_id=%s, user=%s)", ticket.id, user_id)
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_STATUS_CHANGED,
                ticket_id=ticket.id,
                actor=Actor.user(user_id),
                payload=TicketStatusChangedPayload(
                    old_status=old_status,
                    new_status=ticket.status,
                    comment=USER_CLOSE_COMMENT,
                ),
            ),
            cancel,
        )
        return ticket

    # ------------------------------------------------------------------- reads

    def get_ticket_for_user(self, user_id: str, ticket_id: str, cancel: CancelToken | None = None) -> TicketThread:
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if ticket.requester_id != user_id:
            raise AccessDeniedError("access denied")
        messages = [
            m for m in self._messages_with_attachments(ticket.id)
            if m.message_type != MessageType.INTERNAL_NOTE.value
        ]
        return TicketThread(ticket=ticket, messages=messages)

    def get_ticket_for_staff(
        self, staff: StaffMember | None, ticket_id: str, cancel: CancelToken | None = None
    ) -> TicketThread:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")
        return TicketThread(ticket=ticket, messages=self._messages_with_attachments(ticket.id))

    def list_history_for_user(
        self, user_id: str, ticket_id: str, cancel: CancelToken | None = None
    ) -> list[TicketHistory]:
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if ticket.requester_id != user_id:
            raise AccessDeniedError("access denied")
        entries = self.uow.history.list_by_ticket(ticket.id, settings.USER_HISTORY_LIMIT, 0)
        return [e for e in entries if is_user_visible(e)]

    def list_history_for_staff(
        self,
        staff: StaffMember | None,
        ticket_id: str,
        limit: int = 50,
        offset: int = 0,
        cancel: CancelToken | None = None,
    ) -> list[TicketHistory]:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")
        limit, offset = clamp_page(limit, offset)
        return self.uow.history.list_by_ticket(ticket.id, limit, offset)

    def list_user_tickets(
        self, user_id: str, flt: TicketUserFilter | None = None, cancel: CancelToken | None = None
    ) -> list[Ticket]:
        check_cancelled(cancel)
        flt = flt or TicketUserFilter()
        limit, offset = clamp_page(flt.limit, flt.offset)
        return self.uow.tickets.list_with_filter(
            TicketFilter(
                requester_id=user_id,
                statuses=[s.value for s in flt.statuses],
                priorities=[p.value for p in flt.priorities],
                created_from=flt.created_from,
                created_to=flt.created_to,
                limit=limit,
                offset=offset,
            )
        )

    def list_staff_tickets(
        self, staff: StaffMember | None, flt: TicketStaffFilter | None = None, cancel: CancelToken | None = None
    ) -> list[Ticket]:
        staff = _require_staff(staff)
        check_cancelled(cancel)
        flt = flt or TicketStaffFilter()
        if not has_list_scope(staff):
            return []
        limit, offset = clamp_page(flt.limit, flt.offset)
        repo_filter = TicketFilter(
            department_id=flt.department_id,
            team_id=flt.team_id,
            assignee_id=flt.assignee_id,
            statuses=[s.value for s in flt.statuses],
            priorities=[p.value for p in flt.priorities],
            search_term=flt.search_term,
            created_from=flt.created_from,
            created_to=flt.created_to,
            updated_from=flt.updated_from,
            updated_to=flt.updated_to,
            limit=limit,
            offset=offset,
        )
        return self.uow.tickets.list_with_filter(narrow_list_filter(repo_filter, staff))

    def _messages_with_attachments(self, ticket_id: str) -> list[TicketMessage]:
        messages = self.uow.messages.list_by_ticket(ticket_id)
        for msg in messages:
            msg.attachments = self.uow.attachments.list_by_message(msg.id)
        return messages
