from datetime import datetime
import enum

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Text, DateTime, ForeignKey, func
from .user import Base, new_id, utcnow
from .attachment import AttachmentReference


class MessageAuthorType(str, enum.Enum):
    USER = "USER"
    STAFF = "STAFF"
    SYSTEM = "SYSTEM"


class MessageType(str, enum.Enum):
    PUBLIC_REPLY = "PUBLIC_REPLY"
    INTERNAL_NOTE = "INTERNAL_NOTE"
    SYSTEM_EVENT = "SYSTEM_EVENT"


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True)

    author_type: Mapped[str] = mapped_column(String(16))
    author_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    message_type: Mapped[str] = mapped_column(String(32))
    body: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # 첨부는 메타데이터만 보관 (파일 본문은 외부 스토리지)
    attachments: Mapped[list[AttachmentReference]] = relationship(
        order_by=AttachmentReference.created_at,
        lazy="selectin",
    )
