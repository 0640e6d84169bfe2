from datetime import datetime, timezone
import logging

from ..core.cancellation import CancelToken, check_cancelled
from ..core.errors import AccessDeniedError, ConflictError, UnauthorizedError
from ..core.settings import settings
from ..models.message import MessageAuthorType
from ..models.staff import StaffMember, StaffRole
from ..models.team import Team
from ..models.ticket import Ticket
from ..repositories.base import StaffFilter, UnitOfWork
from .access_scope import can_access, matches_assignment_scope
from .events import Actor, Event, EventBus, EventType, TicketAssignedPayload, publish_event
from .history import AssigneeChange, DepartmentChange, TeamChange, record_change
from .lookup import get_active_staff, get_active_team, get_ticket_or_404

logger = logging.getLogger(__name__)

SELF_ASSIGN_ROLES = frozenset({StaffRole.AGENT.value, StaffRole.TEAM_LEAD.value, StaffRole.ADMIN.value})
ASSIGN_ROLES = frozenset({StaffRole.TEAM_LEAD.value, StaffRole.ADMIN.value})


def select_index(key: str, length: int) -> int:
    """Deterministic roster slot for a ticket: sum of code points mod roster size."""
    if length <= 0:
        return 0
    return sum(ord(ch) for ch in key) % length


def order_roster(staff: list[StaffMember]) -> list[StaffMember]:
    return sorted(staff, key=lambda s: (s.created_at, s.id))


def require_assign_privilege(actor: StaffMember | None) -> StaffMember:
    if actor is None:
        raise UnauthorizedError("staff required")
    if actor.role not in ASSIGN_ROLES:
        raise AccessDeniedError("insufficient role for assignment")
    return actor


class AssignmentEngine:
    def __init__(self, uow: UnitOfWork, bus: EventBus | None = None):
        self.uow = uow
        self.bus = bus

    def self_assign(self, staff: StaffMember | None, ticket_id: str, cancel: CancelToken | None = None) -> Ticket:
        if staff is None:
            raise UnauthorizedError("staff required")
        if staff.role not in SELF_ASSIGN_ROLES:
            raise AccessDeniedError("insufficient role for self assign")
        check_cancelled(cancel)

        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(staff, ticket):
            raise AccessDeniedError("access denied")

        return self._set_assignee(ticket, staff, actor=staff, cancel=cancel)

    def assign_to_staff(
        self,
        actor: StaffMember | None,
        ticket_id: str,
        assignee_id: str,
        cancel: CancelToken | None = None,
    ) -> Ticket:
        actor = require_assign_privilege(actor)
        check_cancelled(cancel)

        assignee = get_active_staff(self.uow.directory, assignee_id)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        if not can_access(actor, ticket):
            raise AccessDeniedError("access denied")
        if actor.role != StaffRole.ADMIN.value and not matches_assignment_scope(assignee, ticket):
            raise AccessDeniedError("assignee outside ticket scope", {"staff_id": assignee.id})

        return self._set_assignee(ticket, assignee, actor=actor, cancel=cancel)

    def assign_to_team(
        self,
        actor: StaffMember | None,
        ticket_id: str,
        team_id: str,
        cancel: CancelToken | None = None,
    ) -> Ticket:
        actor = require_assign_privilege(actor)
        check_cancelled(cancel)

        team = get_active_team(self.uow.directory, team_id)
        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        # scope is checked against the team/department the ticket has now
        if not can_access(actor, ticket):
            raise AccessDeniedError("access denied")

        old_team = ticket.team_id
        old_dept = ticket.department_id
        self._move_to_team(ticket, team)
        ticket.assignee_id = None

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            self._record_team_move(ticket, old_team, old_dept, actor.id)
            check_cancelled(cancel)

        logger.info(
            "ticket moved to team (ticket_id=%s, team %s -> %s, actor=%s)", ticket.id, old_team, team.id, actor.id
        )
        self._publish_assigned(ticket, actor.id, assignee_id=None, cancel=cancel)
        return ticket

    def auto_assign(self, ticket_id: str, team_id: str, cancel: CancelToken | None = None) -> Ticket:
        check_cancelled(cancel)
        team = get_active_team(self.uow.directory, team_id)
        roster = self.uow.directory.list_staff(
            StaffFilter(team_id=team.id, active=True, limit=settings.AUTO_ASSIGN_STAFF_LIMIT)
        )
        if not roster:
            # ticket is left untouched and nothing is recorded
            raise ConflictError("no eligible staff for team", {"team_id": team.id})
        roster = order_roster(roster)

        ticket = get_ticket_or_404(self.uow.tickets, ticket_id)
        assignee = roster[select_index(ticket.id, len(roster))]

        old_assignee = ticket.assignee_id
        old_team = ticket.team_id
        old_dept = ticket.department_id
        self._move_to_team(ticket, team)
        ticket.assignee_id = assignee.id

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            self._record_team_move(ticket, old_team, old_dept, assignee.id)
            record_change(
                self.uow.history,
                ticket.id,
                AssigneeChange(old=old_assignee, new=assignee.id),
                actor_type=MessageAuthorType.STAFF,
                actor_id=assignee.id,
            )
            check_cancelled(cancel)

        logger.info("ticket auto-assigned (ticket_id=%s, team=%s, assignee=%s)", ticket.id, team.id, assignee.id)
        self._publish_assigned(ticket, assignee.id, assignee_id=assignee.id, cancel=cancel)
        return ticket

    def _set_assignee(
        self,
        ticket: Ticket,
        assignee: StaffMember,
        *,
        actor: StaffMember,
        cancel: CancelToken | None,
    ) -> Ticket:
        old_assignee = ticket.assignee_id
        ticket.assignee_id = assignee.id
        ticket.updated_at = datetime.now(timezone.utc)

        with self.uow.transaction():
            self.uow.tickets.update(ticket)
            record_change(
                self.uow.history,
                ticket.id,
                AssigneeChange(old=old_assignee, new=assignee.id),
                actor_type=MessageAuthorType.STAFF,
                actor_id=actor.id,
            )
            check_cancelled(cancel)

        logger.info(
            "ticket assigned (ticket_id=%s, assignee %s -> %s, actor=%s)", ticket.id, old_assignee, assignee.id, actor.id
        )
        self._publish_assigned(ticket, actor.id, assignee_id=assignee.id, cancel=cancel)
        return ticket

    @staticmethod
    def _move_to_team(ticket: Ticket, team: Team) -> None:
        # department always follows the team
        ticket.team_id = team.id
        ticket.department_id = team.department_id
        ticket.updated_at = datetime.now(timezone.utc)

    def _record_team_move(self, ticket: Ticket, old_team: str | None, old_dept: str, actor_id: str) -> None:
        record_change(
            self.uow.history,
            ticket.id,
            TeamChange(old=old_team, new=ticket.team_id),
            actor_type=MessageAuthorType.STAFF,
            actor_id=actor_id,
        )
        if old_dept != ticket.department_id:
            record_change(
                self.uow.history,
                ticket.id,
                DepartmentChange(old=old_dept, new=ticket.department_id),
                actor_type=MessageAuthorType.STAFF,
                actor_id=actor_id,
            )

    def _publish_assigned(
        self, ticket: Ticket, actor_id: str, *, assignee_id: str | None, cancel: CancelToken | None
    ) -> None:
        publish_event(
            self.bus,
            Event(
                type=EventType.TICKET_ASSIGNED,
                ticket_id=ticket.id,
                actor=Actor.staff(actor_id),
                payload=TicketAssignedPayload(assignee_staff_id=assignee_id, team_id=ticket.team_id),
            ),
            cancel,
        )
