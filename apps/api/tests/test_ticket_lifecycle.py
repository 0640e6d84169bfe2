"""
Tests for TicketLifecycleEngine

Creation, status/priority/tag changes, messages and the requester/staff
read paths, run against the SQLAlchemy stores on in-memory SQLite.
"""

import re

import pytest
from sqlalchemy import func, select

from helpdesk.core.errors import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from helpdesk.models.history import ChangeType, TicketHistory
from helpdesk.models.message import MessageAuthorType, MessageType
from helpdesk.models.staff import StaffMember, StaffRole
from helpdesk.models.ticket import TicketPriority, TicketStatus
from helpdesk.schemas.message import AttachmentIn
from helpdesk.schemas.ticket import TicketCreateIn, TicketStaffFilter, TicketUserFilter
from helpdesk.services.events import EventType
from helpdesk.services.ticket_service import clamp_page, normalize_tags

from conftest import BASE_TIME


def _history(session, ticket_id):
    return list(session.scalars(select(TicketHistory).where(TicketHistory.ticket_id == ticket_id)).all())


def _staff_message(tickets, staff, ticket_id, body, message_type=MessageType.PUBLIC_REPLY, **kwargs):
    return tickets.add_message(MessageAuthorType.STAFF, staff.id, staff, ticket_id, message_type, body, **kwargs)


def _user_message(tickets, user_id, ticket_id, body, message_type=MessageType.PUBLIC_REPLY):
    return tickets.add_message(MessageAuthorType.USER, user_id, None, ticket_id, message_type, body)


# ============================================
# Helpers
# ============================================


def test_normalize_tags_trims_and_dedupes():
    assert normalize_tags([" vpn", "vpn", "", "  ", "Urgent "]) == ["vpn", "Urgent"]


def test_clamp_page():
    assert clamp_page(None, None) == (50, 0)
    assert clamp_page(0, -5) == (50, 0)
    assert clamp_page(10, 20) == (10, 20)
    assert clamp_page(10_000, 0) == (200, 0)


# ============================================
# Creation
# ============================================


class TestCreateTicket:
    def test_creates_open_medium_ticket(self, tickets, org, bus, session):
        ticket = tickets.create_ticket(
            org.requester.id,
            TicketCreateIn(department_id=org.it.id, title="  Printer jam ", description="Tray 2", tags=["hw", "hw"]),
        )

        assert re.fullmatch(r"TCK-[0-9A-F]{8}", ticket.external_key)
        assert ticket.status == TicketStatus.OPEN.value
        assert ticket.priority == TicketPriority.MEDIUM.value
        assert ticket.title == "Printer jam"
        assert ticket.tags == ["hw"]
        assert ticket.assignee_id is None
        assert ticket.closed_at is None
        assert ticket.requester_id == org.requester.id

        # creation itself is not audited
        assert _history(session, ticket.id) == []

        events = bus.of_type(EventType.TICKET_CREATED)
        assert len(events) == 1
        assert events[0].ticket_id == ticket.id
        assert events[0].actor.user_id == org.requester.id
        assert events[0].payload.priority == "MEDIUM"

    def test_explicit_priority_and_team(self, make_ticket, org):
        ticket = make_ticket(priority=TicketPriority.HIGH)
        assert ticket.priority == "HIGH"
        assert ticket.team_id == org.service_desk.id

    def test_unknown_department(self, make_ticket):
        with pytest.raises(NotFoundError):
            make_ticket(department_id="missing", team_id=None)

    def test_inactive_department(self, make_ticket, org):
        with pytest.raises(ConflictError):
            make_ticket(department_id=org.retired_dept.id, team_id=None)

    def test_inactive_team(self, make_ticket, org):
        with pytest.raises(ConflictError):
            make_ticket(team_id=org.retired_team.id)

    def test_team_from_other_department(self, make_ticket, org):
        with pytest.raises(ConflictError):
            make_ticket(team_id=org.maintenance.id)

    def test_blank_title(self, make_ticket, bus):
        with pytest.raises(ValidationError):
            make_ticket(title="   ")
        assert bus.events == []


# ============================================
# Status transitions
# ============================================


class TestUpdateStatus:
    def test_open_to_resolved_is_rejected(self, tickets, make_ticket, org, session):
        ticket = make_ticket()
        with pytest.raises(ConflictError):
            tickets.update_status(org.agent, ticket.id, TicketStatus.RESOLVED)
        assert _history(session, ticket.id) == []

    def test_resolve_then_close_sets_closed_at(self, tickets, make_ticket, org):
        ticket = make_ticket()
        tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)

        resolved = tickets.update_status(org.agent, ticket.id, TicketStatus.RESOLVED, "fixed")
        assert resolved.status == "RESOLVED"
        assert resolved.closed_at is None

        closed = tickets.update_status(org.agent, ticket.id, TicketStatus.CLOSED)
        assert closed.status == "CLOSED"
        assert closed.closed_at is not None
        assert closed.closed_at >= closed.updated_at

    def test_reopen_from_resolved_keeps_closed_at_empty(self, tickets, make_ticket, org):
        ticket = make_ticket()
        tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)
        tickets.update_status(org.agent, ticket.id, TicketStatus.RESOLVED)
        reopened = tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)
        assert reopened.closed_at is None

    def test_terminal_status_cannot_move(self, tickets, make_ticket, org):
        ticket = make_ticket()
        tickets.update_status(org.agent, ticket.id, TicketStatus.CANCELLED)
        with pytest.raises(ConflictError):
            tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)

    def test_writes_one_history_row_and_event(self, tickets, make_ticket, org, bus, session):
        ticket = make_ticket()
        tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS, "on it")

        rows = _history(session, ticket.id)
        assert len(rows) == 1
        assert rows[0].change_type == ChangeType.STATUS_CHANGE.value
        assert rows[0].old_value == {"status": "OPEN"}
        assert rows[0].new_value == {"status": "IN_PROGRESS", "comment": "on it"}
        assert rows[0].changed_by_type == "STAFF"
        assert rows[0].changed_by_id == org.agent.id

        (event,) = bus.of_type(EventType.TICKET_STATUS_CHANGED)
        assert event.payload.old_status == "OPEN"
        assert event.payload.new_status == "IN_PROGRESS"
        assert event.actor.staff_id == org.agent.id

    def test_invalid_status_value(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            tickets.update_status(org.agent, ticket.id, "ARCHIVED")

    def test_missing_staff(self, tickets, make_ticket):
        ticket = make_ticket()
        with pytest.raises(UnauthorizedError):
            tickets.update_status(None, ticket.id, TicketStatus.IN_PROGRESS)

    def test_unknown_ticket(self, tickets, org):
        with pytest.raises(NotFoundError):
            tickets.update_status(org.agent, "missing", TicketStatus.IN_PROGRESS)


class TestPriorityAndTags:
    def test_priority_change_recorded(self, tickets, make_ticket, org, bus, session):
        ticket = make_ticket()
        updated = tickets.update_priority(org.lead, ticket.id, TicketPriority.URGENT)

        assert updated.priority == "URGENT"
        (row,) = _history(session, ticket.id)
        assert row.change_type == ChangeType.PRIORITY_CHANGE.value
        assert row.old_value == {"priority": "MEDIUM"}
        assert row.new_value == {"priority": "URGENT"}
        assert len(bus.of_type(EventType.TICKET_PRIORITY_CHANGED)) == 1

    def test_invalid_priority(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            tickets.update_priority(org.agent, ticket.id, "CRITICAL")

    def test_tags_replaced_and_recorded(self, tickets, make_ticket, org, session):
        ticket = make_ticket(tags=["vpn"])
        updated = tickets.update_tags(org.agent, ticket.id, ["vpn", " remote ", "vpn"])

        assert updated.tags == ["vpn", "remote"]
        (row,) = _history(session, ticket.id)
        assert row.change_type == ChangeType.TAGS_CHANGE.value
        assert row.old_value == {"tags": ["vpn"]}
        assert row.new_value == {"tags": ["vpn", "remote"]}


# ============================================
# Requester close
# ============================================


class TestCloseAsUser:
    @pytest.mark.parametrize("status", ["OPEN", "IN_PROGRESS", "CLOSED", "CANCELLED"])
    def test_conflict_outside_closable_statuses(self, tickets, make_ticket, org, session, status):
        ticket = make_ticket()
        ticket.status = status
        session.commit()
        with pytest.raises(ConflictError):
            tickets.close_ticket_as_user(org.requester.id, ticket.id)

    @pytest.mark.parametrize("status", ["RESOLVED", "PENDING_USER"])
    def test_closes_from_closable_status(self, tickets, make_ticket, org, session, bus, status):
        ticket = make_ticket()
        ticket.status = status
        session.commit()

        closed = tickets.close_ticket_as_user(org.requester.id, ticket.id)

        assert closed.status == "CLOSED"
        assert closed.closed_at is not None
        (row,) = _history(session, ticket.id)
        assert row.changed_by_type == "USER"
        assert row.changed_by_id == org.requester.id
        assert row.new_value == {"status": "CLOSED", "comment": "user_closed"}
        (event,) = bus.of_type(EventType.TICKET_STATUS_CHANGED)
        assert event.actor.user_id == org.requester.id

    def test_only_requester_may_close(self, tickets, make_ticket, org, session):
        ticket = make_ticket()
        ticket.status = "RESOLVED"
        session.commit()
        with pytest.raises(AccessDeniedError):
            tickets.close_ticket_as_user(org.other_user.id, ticket.id)


# ============================================
# Messages
# ============================================


class TestMessages:
    def test_user_reply(self, tickets, make_ticket, org, bus):
        ticket = make_ticket()
        msg = _user_message(tickets, org.requester.id, ticket.id, "  still broken  ")

        assert msg.author_type == "USER"
        assert msg.author_id == org.requester.id
        assert msg.body == "still broken"
        (event,) = bus.of_type(EventType.TICKET_MESSAGE_ADDED)
        assert event.payload.message_id == msg.id
        assert event.payload.body_preview == "still broken"

    def test_user_cannot_post_internal_note(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            _user_message(tickets, org.requester.id, ticket.id, "psst", MessageType.INTERNAL_NOTE)

    def test_other_user_cannot_reply(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(AccessDeniedError):
            _user_message(tickets, org.other_user.id, ticket.id, "me too")

    def test_staff_cannot_post_system_event(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            _staff_message(tickets, org.agent, ticket.id, "sys", MessageType.SYSTEM_EVENT)

    def test_staff_context_required(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            tickets.add_message(
                MessageAuthorType.STAFF, org.agent.id, None, ticket.id, MessageType.PUBLIC_REPLY, "hello"
            )

    def test_system_author_rejected(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            tickets.add_message(MessageAuthorType.SYSTEM, "sys", None, ticket.id, MessageType.SYSTEM_EVENT, "x")

    def test_empty_body(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(ValidationError):
            _staff_message(tickets, org.agent, ticket.id, "   ")

    def test_attachments_stored_with_message(self, tickets, make_ticket, org):
        ticket = make_ticket()
        _staff_message(
            tickets,
            org.agent,
            ticket.id,
            "see logs",
            attachments=[
                AttachmentIn(storage_key="tickets/a/log.txt", file_name="log.txt", mime_type="text/plain", size_bytes=42)
            ],
        )

        thread = tickets.get_ticket_for_staff(org.agent, ticket.id)
        (msg,) = thread.messages
        assert [a.file_name for a in msg.attachments] == ["log.txt"]
        assert msg.attachments[0].size_bytes == 42

    def test_long_body_preview_truncated(self, tickets, make_ticket, org, bus):
        ticket = make_ticket()
        _staff_message(tickets, org.agent, ticket.id, "x" * 300)
        (event,) = bus.of_type(EventType.TICKET_MESSAGE_ADDED)
        assert len(event.payload.body_preview) == 120
        assert event.payload.body_preview.endswith("...")


# ============================================
# Reads
# ============================================


class TestReads:
    def test_user_never_sees_internal_notes(self, tickets, make_ticket, org):
        ticket = make_ticket()
        _staff_message(tickets, org.agent, ticket.id, "customer is VIP", MessageType.INTERNAL_NOTE)
        _staff_message(tickets, org.agent, ticket.id, "please reboot")
        _user_message(tickets, org.requester.id, ticket.id, "done")

        user_view = tickets.get_ticket_for_user(org.requester.id, ticket.id)
        assert [m.body for m in user_view.messages] == ["please reboot", "done"]
        assert all(m.message_type != "INTERNAL_NOTE" for m in user_view.messages)

        staff_view = tickets.get_ticket_for_staff(org.agent, ticket.id)
        assert len(staff_view.messages) == 3

    def test_user_reads_only_own_ticket(self, tickets, make_ticket, org):
        ticket = make_ticket()
        with pytest.raises(AccessDeniedError):
            tickets.get_ticket_for_user(org.other_user.id, ticket.id)

    def test_user_history_hides_internal_changes(self, tickets, assignments, make_ticket, org):
        ticket = make_ticket()
        tickets.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)
        tickets.update_priority(org.agent, ticket.id, TicketPriority.HIGH)
        tickets.update_tags(org.agent, ticket.id, ["vpn"])
        assignments.assign_to_team(org.admin, ticket.id, org.maintenance.id)

        staff_types = {h.change_type for h in tickets.list_history_for_staff(org.admin, ticket.id)}
        assert {"PRIORITY_CHANGE", "TAGS_CHANGE", "DEPARTMENT_CHANGE"} <= staff_types

        user_types = {h.change_type for h in tickets.list_history_for_user(org.requester.id, ticket.id)}
        assert user_types == {"STATUS_CHANGE", "TEAM_CHANGE"}

    def test_staff_history_is_paginated(self, tickets, make_ticket, org):
        ticket = make_ticket()
        for priority in ("LOW", "HIGH", "URGENT"):
            tickets.update_priority(org.agent, ticket.id, priority)

        assert len(tickets.list_history_for_staff(org.agent, ticket.id, limit=2, offset=0)) == 2
        assert len(tickets.list_history_for_staff(org.agent, ticket.id, limit=2, offset=2)) == 1

    def test_list_user_tickets(self, tickets, make_ticket, org):
        mine = make_ticket()
        make_ticket(requester_id=org.other_user.id)
        tickets.update_status(org.agent, mine.id, TicketStatus.IN_PROGRESS)

        assert [t.id for t in tickets.list_user_tickets(org.requester.id)] == [mine.id]
        assert tickets.list_user_tickets(org.requester.id, TicketUserFilter(statuses=[TicketStatus.OPEN])) == []

    def test_list_staff_tickets_narrowed_to_scope(self, tickets, make_ticket, org):
        it_ticket = make_ticket()
        fac_ticket = make_ticket(department_id=org.facilities.id, team_id=org.maintenance.id)

        assert [t.id for t in tickets.list_staff_tickets(org.outsider)] == [fac_ticket.id]
        # a caller-supplied department is replaced by the staff member's own
        spoofed = TicketStaffFilter(department_id=org.it.id)
        assert [t.id for t in tickets.list_staff_tickets(org.outsider, spoofed)] == [fac_ticket.id]
        assert {t.id for t in tickets.list_staff_tickets(org.admin)} == {it_ticket.id, fac_ticket.id}

    def test_list_staff_tickets_search(self, tickets, make_ticket, org):
        vpn = make_ticket(title="VPN down")
        make_ticket(title="Printer jam", description="paper")

        found = tickets.list_staff_tickets(org.admin, TicketStaffFilter(search_term="vpn"))
        assert [t.id for t in found] == [vpn.id]
        by_key = tickets.list_staff_tickets(org.admin, TicketStaffFilter(search_term=vpn.external_key.lower()))
        assert [t.id for t in by_key] == [vpn.id]


# ============================================
# Scope enforcement
# ============================================


class TestOutOfScopeStaff:
    def test_denied_everywhere(self, tickets, make_ticket, org, session, bus):
        ticket = make_ticket()
        bus.events.clear()

        with pytest.raises(AccessDeniedError):
            _staff_message(tickets, org.outsider, ticket.id, "hi")
        with pytest.raises(AccessDeniedError):
            tickets.update_status(org.outsider, ticket.id, TicketStatus.IN_PROGRESS)
        with pytest.raises(AccessDeniedError):
            tickets.update_priority(org.outsider, ticket.id, TicketPriority.LOW)
        with pytest.raises(AccessDeniedError):
            tickets.update_tags(org.outsider, ticket.id, ["x"])
        with pytest.raises(AccessDeniedError):
            tickets.get_ticket_for_staff(org.outsider, ticket.id)
        with pytest.raises(AccessDeniedError):
            tickets.list_history_for_staff(org.outsider, ticket.id)

        assert _history(session, ticket.id) == []
        assert bus.events == []
        assert session.scalar(select(func.count()).select_from(TicketHistory)) == 0

    def test_team_member_outside_department_allowed_by_team(self, tickets, make_ticket, org):
        ticket = make_ticket(team_id=org.network.id)
        thread = tickets.get_ticket_for_staff(org.network_agent, ticket.id)
        assert thread.ticket.id == ticket.id

    def test_unscoped_agent_sees_nothing(self, tickets, make_ticket, org, session):
        make_ticket()
        make_ticket(department_id=org.facilities.id, team_id=org.maintenance.id)
        floater = StaffMember(
            name="Fay Floater", email="fay@helpdesk.example.com", role=StaffRole.AGENT.value, created_at=BASE_TIME
        )
        session.add(floater)
        session.commit()

        assert tickets.list_staff_tickets(floater) == []
        assert tickets.list_staff_tickets(floater, TicketStaffFilter(department_id=org.it.id)) == []
        with pytest.raises(AccessDeniedError):
            tickets.get_ticket_for_staff(floater, make_ticket().id)
