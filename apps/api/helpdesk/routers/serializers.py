from ..models.ticket import Ticket
from ..models.history import TicketHistory
from ..schemas.history import HistoryOut
from ..schemas.message import MessageOut
from ..schemas.ticket import TicketOut
from ..schemas.ticket_detail import TicketDetailOut
from ..services.ticket_service import TicketThread


def serialize_ticket(t: Ticket) -> TicketOut:
    return TicketOut.model_validate(t)


def serialize_thread(thread: TicketThread, history: list[TicketHistory] | None = None) -> TicketDetailOut:
    return TicketDetailOut(
        ticket=serialize_ticket(thread.ticket),
        messages=[MessageOut.model_validate(m) for m in thread.messages],
        history=[HistoryOut.model_validate(h) for h in history or []],
    )
