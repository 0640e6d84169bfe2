from pydantic import BaseModel
from datetime import datetime
from typing import Any

from ..models.history import ChangeType


class HistoryOut(BaseModel):
    id: str
    ticket_id: str
    changed_by_type: str
    changed_by_id: str | None = None
    change_type: ChangeType
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
