from dataclasses import replace

from ..models.staff import StaffMember, StaffRole
from ..models.ticket import Ticket
from ..repositories.base import TicketFilter


def _in_team_or_department(staff: StaffMember, ticket: Ticket) -> bool:
    if staff.team_id is not None and ticket.team_id is not None and staff.team_id == ticket.team_id:
        return True
    # department scope covers every team of that department
    if staff.department_id is not None and staff.department_id == ticket.department_id:
        return True
    return False


def can_access(staff: StaffMember | None, ticket: Ticket) -> bool:
    """May this staff member view or mutate the ticket?"""
    if staff is None:
        return False
    if staff.role == StaffRole.ADMIN.value:
        return True
    return _in_team_or_department(staff, ticket)


def matches_assignment_scope(candidate: StaffMember | None, ticket: Ticket) -> bool:
    """Is the candidate assignee inside the ticket's team or department? No admin shortcut."""
    if candidate is None:
        return False
    return _in_team_or_department(candidate, ticket)


def has_list_scope(staff: StaffMember | None) -> bool:
    """False for a non-admin with neither department nor team: such a member sees no tickets."""
    if staff is None:
        return False
    if staff.role == StaffRole.ADMIN.value:
        return True
    return staff.department_id is not None or staff.team_id is not None


def narrow_list_filter(flt: TicketFilter, staff: StaffMember | None) -> TicketFilter:
    """Constrain a listing to the staff member's scope (AND-combined)."""
    if staff is None or staff.role == StaffRole.ADMIN.value:
        return flt
    narrowed = replace(flt)
    if staff.department_id is not None:
        narrowed.department_id = staff.department_id
    if staff.team_id is not None:
        narrowed.team_id = staff.team_id
    return narrowed
