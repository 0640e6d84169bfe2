from datetime import datetime
import enum
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, ForeignKey, JSON, func
from .user import Base, new_id, utcnow


class ChangeType(str, enum.Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGNEE_CHANGE = "ASSIGNEE_CHANGE"
    PRIORITY_CHANGE = "PRIORITY_CHANGE"
    TEAM_CHANGE = "TEAM_CHANGE"
    DEPARTMENT_CHANGE = "DEPARTMENT_CHANGE"
    TAGS_CHANGE = "TAGS_CHANGE"


class TicketHistory(Base):
    """Append-only audit row. Never updated or deleted once written."""

    __tablename__ = "ticket_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True)

    changed_by_type: Mapped[str] = mapped_column(String(16))
    changed_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    change_type: Mapped[str] = mapped_column(String(32))

    # 변경 전/후 값 (change_type 별 구조)
    old_value: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
