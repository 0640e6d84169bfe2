"""Collaborator contracts the engines depend on.

Lookups return ``None`` for a missing row; raising NotFoundError is the
engine's job. Writes made between ``UnitOfWork.transaction()`` enter and exit
become visible together or not at all.
"""
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from ..models.attachment import AttachmentReference
from ..models.department import Department
from ..models.history import TicketHistory
from ..models.message import TicketMessage
from ..models.staff import StaffMember
from ..models.team import Team
from ..models.ticket import Ticket


@dataclass
class TicketFilter:
    requester_id: str | None = None
    department_id: str | None = None
    team_id: str | None = None
    assignee_id: str | None = None
    statuses: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    search_term: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None
    limit: int = 50
    offset: int = 0


@dataclass
class StaffFilter:
    department_id: str | None = None
    team_id: str | None = None
    role: str | None = None
    active: bool | None = None
    limit: int = 100
    offset: int = 0


class TicketStore(Protocol):
    def create(self, ticket: Ticket) -> Ticket: ...
    def update(self, ticket: Ticket) -> Ticket: ...
    def get_by_id(self, ticket_id: str) -> Ticket | None: ...
    def get_by_external_key(self, key: str) -> Ticket | None: ...
    def list_with_filter(self, flt: TicketFilter) -> list[Ticket]: ...


class TicketHistoryStore(Protocol):
    def create(self, entry: TicketHistory) -> TicketHistory: ...
    def list_by_ticket(self, ticket_id: str, limit: int, offset: int) -> list[TicketHistory]: ...


class TicketMessageStore(Protocol):
    def create(self, message: TicketMessage) -> TicketMessage: ...
    def list_by_ticket(self, ticket_id: str) -> list[TicketMessage]: ...


class AttachmentStore(Protocol):
    def create(self, attachment: AttachmentReference) -> AttachmentReference: ...
    def list_by_message(self, message_id: str) -> list[AttachmentReference]: ...


class StaffDirectory(Protocol):
    def get_staff(self, staff_id: str) -> StaffMember | None: ...
    def get_staff_by_email(self, email: str) -> StaffMember | None: ...
    def list_staff(self, flt: StaffFilter) -> list[StaffMember]: ...
    def get_team(self, team_id: str) -> Team | None: ...
    def list_teams(self, department_id: str | None = None, include_inactive: bool = False) -> list[Team]: ...
    def get_department(self, department_id: str) -> Department | None: ...
    def list_departments(self, include_inactive: bool = False) -> list[Department]: ...
    def create_department(self, department: Department) -> Department: ...
    def update_department(self, department: Department) -> Department: ...
    def create_team(self, team: Team) -> Team: ...
    def update_team(self, team: Team) -> Team: ...
    def create_staff(self, staff: StaffMember) -> StaffMember: ...
    def update_staff(self, staff: StaffMember) -> StaffMember: ...


class UnitOfWork(Protocol):
    tickets: TicketStore
    history: TicketHistoryStore
    messages: TicketMessageStore
    attachments: AttachmentStore
    directory: StaffDirectory

    def transaction(self) -> AbstractContextManager["UnitOfWork"]: ...
