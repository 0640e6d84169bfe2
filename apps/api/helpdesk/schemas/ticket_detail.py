from pydantic import BaseModel

from .ticket import TicketOut
from .message import MessageOut
from .history import HistoryOut


class TicketDetailOut(BaseModel):
    ticket: TicketOut
    messages: list[MessageOut]
    history: list[HistoryOut] = []
