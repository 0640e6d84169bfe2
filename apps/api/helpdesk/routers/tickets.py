from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ..core.cancellation import CancelToken
from ..core.current_user import get_current_user
from ..deps import get_cancel_token, get_ticket_engine
from ..models.message import MessageAuthorType
from ..models.ticket import TicketPriority, TicketStatus
from ..models.user import User
from ..schemas.history import HistoryOut
from ..schemas.message import MessageCreateIn, MessageOut
from ..schemas.ticket import TicketCreateIn, TicketOut, TicketUserFilter
from ..schemas.ticket_detail import TicketDetailOut
from ..services.ticket_service import TicketLifecycleEngine
from .serializers import serialize_thread, serialize_ticket

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("", response_model=TicketOut)
def create_ticket(
    payload: TicketCreateIn,
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.create_ticket(user.id, payload, cancel=cancel))


@router.get("", response_model=list[TicketOut])
def list_my_tickets(
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    status: list[TicketStatus] = Query(default=[]),
    priority: list[TicketPriority] = Query(default=[]),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    cancel: CancelToken = Depends(get_cancel_token),
):
    flt = TicketUserFilter(
        statuses=status,
        priorities=priority,
        created_from=created_from,
        created_to=created_to,
        limit=limit,
        offset=offset,
    )
    return [serialize_ticket(t) for t in engine.list_user_tickets(user.id, flt, cancel=cancel)]


@router.get("/{ticket_id}", response_model=TicketDetailOut)
def get_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_thread(engine.get_ticket_for_user(user.id, ticket_id, cancel=cancel))


@router.post("/{ticket_id}/messages", response_model=MessageOut)
def add_reply(
    ticket_id: str,
    payload: MessageCreateIn,
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    msg = engine.add_message(
        MessageAuthorType.USER,
        user.id,
        None,
        ticket_id,
        payload.message_type,
        payload.body,
        payload.attachments,
        cancel=cancel,
    )
    return MessageOut.model_validate(msg)


@router.post("/{ticket_id}/close", response_model=TicketOut)
def close_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return serialize_ticket(engine.close_ticket_as_user(user.id, ticket_id, cancel=cancel))


@router.get("/{ticket_id}/history", response_model=list[HistoryOut])
def list_history(
    ticket_id: str,
    user: User = Depends(get_current_user),
    engine: TicketLifecycleEngine = Depends(get_ticket_engine),
    cancel: CancelToken = Depends(get_cancel_token),
):
    history = engine.list_history_for_user(user.id, ticket_id, cancel=cancel)
    return [HistoryOut.model_validate(h) for h in history]
