from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ..core.cancellation import CancelToken
from ..core.current_user import get_current_staff
from ..deps import get_assignment_engine, get_cancel_token, get_ticket_engine
from ..models.message import MessageAuthorType
from ..models.staff import StaffMember
from ..models.ticket import TicketPriority, TicketStatus
from ..schemas.assignment import AssignStaffIn, AssignTeamIn
from ..schemas.history import HistoryOut
from ..schemas.message import MessageCreateIn, MessageOut
from ..schemas.ticket import (
    TicketOut,
    TicketPriorityUpdateIn,
    TicketStaffFilter,
    TicketStatusUpdateIn,
    TicketTagsUpdateIn,
)
from ..schemas.ticket_detail import TicketDetailOut
from ..services.assignment_service import AssignmentEngine, require_assign_privilege
from ..services.ticket_service import TicketLifecycleEngine
from .serializers import serialize_thread, serialize_ticket

router = APIRouter(prefix="/staff/tickets", tags=["staff-tickets"])


@router.get("", response_model=list[TicketOut])
def list_tickets(
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    department_id: str | None = Query(default=None),
    team_id: str | None = Query(default=None),
    assignee_id: str | None = Query(default=None),
    status: list[TicketStatus] = Query(default=[]),
    priority: list[TicketPriority] = Query(default=[]),
    q: str | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    updated_from: datetime | None = Query(default=None),
    updated_to: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    cancel: CancelToken = Depends(get_cancel_token),
):
    flt = TicketStaffFilter(
        department_id=department_id,
        team_id=team_id,
        assignee_id=assignee_id,
        statuses=status,
        priorities=priority,
        search_term=q,
        created_from=created_from,
        created_to=created_to,
        updated_from=updated_from,
        updated_to=updated_to,
        limit=limit,
        offset=offset,
    )
    return [serialize_ticket(t) for t in engine.list_staff_tickets(staff, flt, cancel=cancel)]


@router.get("/{ticket_id}", response_model=TicketDetailOut)
def get_ticket(
    ticket_id: str,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    thread = engine.get_ticket_for_staff(staff, ticket_id, cancel=cancel)
    history = engine.list_history_for_staff(staff, ticket_id, limit=100, offset=0, cancel=cancel)
    return serialize_thread(thread, history)


@router.get("/{ticket_id}/history", response_model=list[HistoryOut])
def list_history(
    ticket_id: str,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    cancel: CancelToken = Depends(get_cancel_token),
):
    history = engine.list_history_for_staff(staff, ticket_id, limit, offset, cancel=cancel)
    return [HistoryOut.model_validate(h) for h in history]


@router.post("/{ticket_id}/messages", response_model=MessageOut)
def add_message(
    ticket_id: str,
    payload: MessageCreateIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    msg = engine.add_message(
        MessageAuthorType.STAFF,
        staff.id,
        staff,
        ticket_id,
        payload.message_type,
        payload.body,
        payload.attachments,
        cancel=cancel,
    )
    return MessageOut.model_validate(msg)


@router.patch("/{ticket_id}/status", response_model=TicketOut)
def update_status(
    ticket_id: str,
    payload: TicketStatusUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.update_status(staff, ticket_id, payload.status, payload.comment, cancel=cancel))


@router.patch("/{ticket_id}/priority", response_model=TicketOut)
def update_priority(
    ticket_id: str,
    payload: TicketPriorityUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.update_priority(staff, ticket_id, payload.priority, cancel=cancel))


@router.patch("/{ticket_id}/tags", response_model=TicketOut)
def update_tags(
    ticket_id: str,
    payload: TicketTagsUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.update_tags(staff, ticket_id, payload.tags, cancel=cancel))


@router.post("/{ticket_id}/assign/self", response_model=TicketOut)
def self_assign(
    ticket_id: str,
    staff: StaffMember = Depends(get_current_staff),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.self_assign(staff, ticket_id, cancel=cancel))


@router.post("/{ticket_id}/assign", response_model=TicketOut)
def assign_to_staff(
    ticket_id: str,
    payload: AssignStaffIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.assign_to_staff(staff, ticket_id, payload.assignee_id, cancel=cancel))


@router.post("/{ticket_id}/team", response_model=TicketOut)
def assign_to_team(
    ticket_id: str,
    payload: AssignTeamIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.assign_to_team(staff, ticket_id, payload.team_id, cancel=cancel))


@router.post("/{ticket_id}/auto-assign", response_model=TicketOut)
def auto_assign(
    ticket_id: str,
    payload: AssignTeamIn,
    staff: StaffMember = Depends(get_current_staff),
    engine: AssignmentEngine = Depends(get_assignment_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    # 자동 배정은 시스템 동작이지만 호출은 팀 리드/관리자만 허용
    require_assign_privilege(staff)
    return serialize_ticket(engine.auto_assign(ticket_id, payload.team_id, cancel=cancel))
