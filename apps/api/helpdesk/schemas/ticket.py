from pydantic import BaseModel, Field
from datetime import datetime

from ..models.ticket import TicketPriority, TicketStatus


class TicketCreateIn(BaseModel):
    department_id: str
    team_id: str | None = None
    title: str = Field(max_length=200)
    description: str = ""
    priority: TicketPriority | None = None
    tags: list[str] = Field(default_factory=list)


class TicketStatusUpdateIn(BaseModel):
    status: TicketStatus
    comment: str = ""


class TicketPriorityUpdateIn(BaseModel):
    priority: TicketPriority


class TicketTagsUpdateIn(BaseModel):
    tags: list[str] = Field(default_factory=list)


class TicketUserFilter(BaseModel):
    statuses: list[TicketStatus] = Field(default_factory=list)
    priorities: list[TicketPriority] = Field(default_factory=list)
    created_from: datetime | None = None
    created_to: datetime | None = None
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)


class TicketStaffFilter(TicketUserFilter):
    department_id: str | None = None
    team_id: str | None = None
    assignee_id: str | None = None
    search_term: str | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None


class TicketOut(BaseModel):
    id: str
    external_key: str
    requester_id: str
    department_id: str
    team_id: str | None = None
    assignee_id: str | None = None
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None
    closed_at: datetime | None = None

    class Config:
        from_attributes = True
