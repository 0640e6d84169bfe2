from ..core.errors import ConflictError, NotFoundError
from ..models.department import Department
from ..models.staff import StaffMember
from ..models.team import Team
from ..models.ticket import Ticket
from ..repositories.base import StaffDirectory, TicketStore


def get_ticket_or_404(store: TicketStore, ticket_id: str) -> Ticket:
    ticket = store.get_by_id(ticket_id)
    if ticket is None:
        raise NotFoundError("ticket", {"ticket_id": ticket_id})
    return ticket


def get_active_department(directory: StaffDirectory, department_id: str) -> Department:
    dept = directory.get_department(department_id)
    if dept is None:
        raise NotFoundError("department", {"department_id": department_id})
    if not dept.active:
        raise ConflictError("department inactive", {"department_id": department_id})
    return dept


def get_active_team(directory: StaffDirectory, team_id: str) -> Team:
    team = directory.get_team(team_id)
    if team is None:
        raise NotFoundError("team", {"team_id": team_id})
    if not team.active:
        raise ConflictError("team inactive", {"team_id": team_id})
    return team


def get_active_staff(directory: StaffDirectory, staff_id: str) -> StaffMember:
    staff = directory.get_staff(staff_id)
    if staff is None:
        raise NotFoundError("staff", {"staff_id": staff_id})
    if not staff.active:
        raise ConflictError("assignee inactive", {"staff_id": staff_id})
    return staff
