from fastapi import Depends
from sqlalchemy.orm import Session

from .core.cancellation import CancelToken
from .core.settings import settings
from .db import get_session
from .repositories.sql import SqlUnitOfWork
from .services.assignment_service import AssignmentEngine
from .services.events import InMemoryEventBus
from .services.org_service import OrgService
from .services.ticket_service import TicketLifecycleEngine

# process-wide in-memory bus; subscribers are registered at startup
event_bus = InMemoryEventBus()


def get_uow(session: Session = Depends(get_session)) -> SqlUnitOfWork:
    return SqlUnitOfWork(session)


def get_bus() -> InMemoryEventBus:
    return event_bus


def get_ticket_engine(
    uow: SqlUnitOfWork = Depends(get_uow),
    bus: InMemoryEventBus = Depends(get_bus),
) -> TicketLifecycleEngine:
    return TicketLifecycleEngine(uow, bus)


def get_assignment_engine(
    uow: SqlUnitOfWork = Depends(get_uow),
    bus: InMemoryEventBus = Depends(get_bus),
) -> AssignmentEngine:
    return AssignmentEngine(uow, bus)


def get_org_service(uow: SqlUnitOfWork = Depends(get_uow)) -> OrgService:
    return OrgService(uow)


def get_cancel_token() -> CancelToken:
    return CancelToken(timeout=settings.REQUEST_TIMEOUT_SECONDS)
