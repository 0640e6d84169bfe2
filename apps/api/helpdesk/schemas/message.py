from pydantic import BaseModel, Field
from datetime import datetime

from ..models.message import MessageType


class AttachmentIn(BaseModel):
    storage_key: str
    file_name: str
    mime_type: str
    size_bytes: int = Field(default=0, ge=0)


class MessageCreateIn(BaseModel):
    body: str
    message_type: MessageType = MessageType.PUBLIC_REPLY
    attachments: list[AttachmentIn] = Field(default_factory=list)


class AttachmentOut(BaseModel):
    id: str
    message_id: str
    storage_key: str
    file_name: str
    mime_type: str
    size_bytes: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    id: str
    ticket_id: str
    author_type: str
    author_id: str | None = None
    message_type: MessageType
    body: str
    attachments: list[AttachmentOut] = Field(default_factory=list)
    created_at: datetime | None = None

    class Config:
        from_attributes = True
