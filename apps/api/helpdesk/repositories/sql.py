from collections.abc import Iterator
from contextlib import contextmanager
import functools

from sqlalchemy import select, desc, or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import InfrastructureError
from ..models.attachment import AttachmentReference
from ..models.department import Department
from ..models.history import TicketHistory
from ..models.message import TicketMessage
from ..models.staff import StaffMember
from ..models.team import Team
from ..models.ticket import Ticket
from .base import StaffFilter, TicketFilter


def db_errors(fn):
    """Surface driver failures as InfrastructureError, cause chained."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise InfrastructureError("database error", {"operation": fn.__qualname__}) from exc

    return wrapper


class SqlTicketStore:
    def __init__(self, session: Session):
        self.session = session

    @db_errors
    def create(self, ticket: Ticket) -> Ticket:
        self.session.add(ticket)
        self.session.flush()
        return ticket

    @db_errors
    def update(self, ticket: Ticket) -> Ticket:
        self.session.add(ticket)
        self.session.flush()
        return ticket

    @db_errors
    def get_by_id(self, ticket_id: str) -> Ticket | None:
        return self.session.get(Ticket, ticket_id)

    @db_errors
    def get_by_external_key(self, key: str) -> Ticket | None:
        return self.session.scalar(select(Ticket).where(Ticket.external_key == key))

    @db_errors
    def list_with_filter(self, flt: TicketFilter) -> list[Ticket]:
        stmt = select(Ticket)
        if flt.requester_id is not None:
            stmt = stmt.where(Ticket.requester_id == flt.requester_id)
        if flt.department_id is not None:
            stmt = stmt.where(Ticket.department_id == flt.department_id)
        if flt.team_id is not None:
            stmt = stmt.where(Ticket.team_id == flt.team_id)
        if flt.assignee_id is not None:
            stmt = stmt.where(Ticket.assignee_id == flt.assignee_id)
        if flt.statuses:
            stmt = stmt.where(Ticket.status.in_(flt.statuses))
        if flt.priorities:
            stmt = stmt.where(Ticket.priority.in_(flt.priorities))
        if flt.created_from is not None:
            stmt = stmt.where(Ticket.created_at >= flt.created_from)
        if flt.created_to is not None:
            stmt = stmt.where(Ticket.created_at <= flt.created_to)
        if flt.updated_from is not None:
            stmt = stmt.where(Ticket.updated_at >= flt.updated_from)
        if flt.updated_to is not None:
            stmt = stmt.where(Ticket.updated_at <= flt.updated_to)
        term = (flt.search_term or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(
                or_(
                    func.lower(Ticket.title).like(pattern),
                    func.lower(Ticket.description).like(pattern),
                    func.lower(Ticket.external_key).like(pattern),
                )
            )
        stmt = stmt.order_by(desc(Ticket.created_at), desc(Ticket.id)).limit(flt.limit).offset(flt.offset)
        return list(self.session.scalars(stmt).all())


class SqlTicketHistoryStore:
    # append-only: no update or delete
    def __init__(self, session: Session):
        self.session = session

    @db_errors
    def create(self, entry: TicketHistory) -> TicketHistory:
        self.session.add(entry)
        self.session.flush()
        return entry

    @db_errors
    def list_by_ticket(self, ticket_id: str, limit: int, offset: int) -> list[TicketHistory]:
        stmt = (
            select(TicketHistory)
            .where(TicketHistory.ticket_id == ticket_id)
            .order_by(desc(TicketHistory.created_at), desc(TicketHistory.id))
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all())


class SqlTicketMessageStore:
    def __init__(self, session: Session):
        self.session = session

    @db_errors
    def create(self, message: TicketMessage) -> TicketMessage:
        self.session.add(message)
        self.session.flush()
        return message

    @db_errors
    def list_by_ticket(self, ticket_id: str) -> list[TicketMessage]:
        stmt = (
            select(TicketMessage)
            .where(TicketMessage.ticket_id == ticket_id)
            .order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())
        )
        return list(self.session.scalars(stmt).all())


class SqlAttachmentStore:
    def __init__(self, session: Session):
        self.session = session

    @db_errors
    def create(self, attachment: AttachmentReference) -> AttachmentReference:
        self.session.add(attachment)
        self.session.flush()
        return attachment

    @db_errors
    def list_by_message(self, message_id: str) -> list[AttachmentReference]:
        stmt = (
            select(AttachmentReference)
            .where(AttachmentReference.message_id == message_id)
            .order_by(AttachmentReference.created_at.asc(), AttachmentReference.id.asc())
        )
        return list(self.session.scalars(stmt).all())


class SqlStaffDirectory:
    def __init__(self, session: Session):
        self.session = session

    @db_errors
    def get_staff(self, staff_id: str) -> StaffMember | None:
        return self.session.get(StaffMember, staff_id)

    @db_errors
    def get_staff_by_email(self, email: str) -> StaffMember | None:
        return self.session.scalar(select(StaffMember).where(func.lower(StaffMember.email) == email.strip().lower()))

    @db_errors
    def list_staff(self, flt: StaffFilter) -> list[StaffMember]:
        stmt = select(StaffMember)
        if flt.department_id is not None:
            stmt = stmt.where(StaffMember.department_id == flt.department_id)
        if flt.team_id is not None:
            stmt = stmt.where(StaffMember.team_id == flt.team_id)
        if flt.role is not None:
            stmt = stmt.where(StaffMember.role == flt.role)
        if flt.active is not None:
            stmt = stmt.where(StaffMember.active == flt.active)
        stmt = stmt.order_by(StaffMember.created_at.asc(), StaffMember.id.asc()).limit(flt.limit).offset(flt.offset)
        return list(self.session.scalars(stmt).all())

    @db_errors
    def get_team(self, team_id: str) -> Team | None:
        return self.session.get(Team, team_id)

    @db_errors
    def list_teams(self, department_id: str | None = None, include_inactive: bool = False) -> list[Team]:
        stmt = select(Team)
        if department_id is not None:
            stmt = stmt.where(Team.department_id == department_id)
        if not include_inactive:
            stmt = stmt.where(Team.active.is_(True))
        return list(self.session.scalars(stmt.order_by(Team.name.asc())).all())

    @db_errors
    def get_department(self, department_id: str) -> Department | None:
        return self.session.get(Department, department_id)

    @db_errors
    def list_departments(self, include_inactive: bool = False) -> list[Department]:
        stmt = select(Department)
        if not include_inactive:
            stmt = stmt.where(Department.active.is_(True))
        return list(self.session.scalars(stmt.order_by(Department.name.asc())).all())

    @db_errors
    def create_department(self, department: Department) -> Department:
        return self._save(department)

    @db_errors
    def update_department(self, department: Department) -> Department:
        return self._save(department)

    @db_errors
    def create_team(self, team: Team) -> Team:
        return self._save(team)

    @db_errors
    def update_team(self, team: Team) -> Team:
        return self._save(team)

    @db_errors
    def create_staff(self, staff: StaffMember) -> StaffMember:
        return self._save(staff)

    @db_errors
    def update_staff(self, staff: StaffMember) -> StaffMember:
        return self._save(staff)

    def _save(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj


class SqlUnitOfWork:
    """All stores share one Session; ``transaction()`` commits them together."""

    def __init__(self, session: Session):
        self.session = session
        self.tickets = SqlTicketStore(session)
        self.history = SqlTicketHistoryStore(session)
        self.messages = SqlTicketMessageStore(session)
        self.attachments = SqlAttachmentStore(session)
        self.directory = SqlStaffDirectory(session)

    @contextmanager
    def transaction(self) -> Iterator["SqlUnitOfWork"]:
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InfrastructureError("database error", {"operation": "commit"}) from exc
        except Exception:
            self.session.rollback()
            raise
