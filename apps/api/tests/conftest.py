from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from helpdesk.core.security import SUBJECT_STAFF, SUBJECT_USER, create_access_token
from helpdesk.db import get_session
from helpdesk.deps import get_bus
from helpdesk.main import app
from helpdesk.models.department import Department
from helpdesk.models.staff import StaffMember, StaffRole
from helpdesk.models.team import Team
from helpdesk.models.user import Base, User
from helpdesk.repositories.sql import SqlUnitOfWork
from helpdesk.services.assignment_service import AssignmentEngine
from helpdesk.services.events import Event, EventType
from helpdesk.services.ticket_service import TicketLifecycleEngine
from helpdesk.schemas.ticket import TicketCreateIn

import helpdesk.models.ticket  # noqa: F401
import helpdesk.models.message  # noqa: F401
import helpdesk.models.attachment  # noqa: F401
import helpdesk.models.history  # noqa: F401

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class RecordingBus:
    """Event bus that keeps every published event."""

    def __init__(self):
        self.events: list[Event] = []

    def subscribe(self, event_type, handler) -> None:
        pass

    def publish(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.type == event_type]


# ============================================
# Database
# ============================================


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session(db_engine):
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    with factory() as s:
        yield s


@pytest.fixture
def uow(session):
    return SqlUnitOfWork(session)


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def tickets(uow, bus):
    return TicketLifecycleEngine(uow, bus)


@pytest.fixture
def assignments(uow, bus):
    return AssignmentEngine(uow, bus)


# ============================================
# Organisation
# ============================================


class Org:
    """Seeded directory: two departments, three teams, five staff, two users."""

    def __init__(self, session):
        self.it = Department(name="IT", created_at=BASE_TIME)
        self.facilities = Department(name="Facilities", created_at=BASE_TIME)
        self.retired_dept = Department(name="Legacy", active=False, created_at=BASE_TIME)
        session.add_all([self.it, self.facilities, self.retired_dept])
        session.flush()

        self.service_desk = Team(department_id=self.it.id, name="Service Desk", created_at=BASE_TIME)
        self.network = Team(department_id=self.it.id, name="Network", created_at=BASE_TIME)
        self.empty_team = Team(department_id=self.it.id, name="Empty", created_at=BASE_TIME)
        self.retired_team = Team(department_id=self.it.id, name="Retired", active=False, created_at=BASE_TIME)
        self.maintenance = Team(department_id=self.facilities.id, name="Maintenance", created_at=BASE_TIME)
        session.add_all([self.service_desk, self.network, self.empty_team, self.retired_team, self.maintenance])
        session.flush()

        self.agent = self._staff(session, "Alice Agent", StaffRole.AGENT, self.it, self.service_desk, 1)
        self.lead = self._staff(session, "Lee Lead", StaffRole.TEAM_LEAD, self.it, self.service_desk, 2)
        self.network_agent = self._staff(session, "Nina Net", StaffRole.AGENT, None, self.network, 3)
        self.outsider = self._staff(session, "Oscar Out", StaffRole.AGENT, self.facilities, self.maintenance, 4)
        self.admin = self._staff(session, "Ada Admin", StaffRole.ADMIN, None, None, 5)
        self.inactive = self._staff(session, "Ian Idle", StaffRole.AGENT, self.it, self.service_desk, 6)
        self.inactive.active = False

        self.requester = User(name="Riley Requester", email="riley@example.com", created_at=BASE_TIME)
        self.other_user = User(name="Olive Other", email="olive@example.com", created_at=BASE_TIME)
        session.add_all([self.requester, self.other_user])
        session.commit()

    @staticmethod
    def _staff(session, name, role, dept, team, minutes):
        member = StaffMember(
            name=name,
            email=f"{name.split()[0].lower()}@helpdesk.example.com",
            role=role.value,
            department_id=dept.id if dept is not None else None,
            team_id=team.id if team is not None else None,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        session.add(member)
        return member


@pytest.fixture
def org(session):
    return Org(session)


@pytest.fixture
def make_ticket(tickets, org):
    def _make(**overrides):
        data = {
            "department_id": org.it.id,
            "team_id": org.service_desk.id,
            "title": "VPN drops every hour",
            "description": "Connection resets on the hour since Monday.",
        }
        data.update(overrides)
        requester_id = data.pop("requester_id", org.requester.id)
        return tickets.create_ticket(requester_id, TicketCreateIn(**data))

    return _make


# ============================================
# API
# ============================================


@pytest.fixture
def client(session, bus):
    def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_bus] = lambda: bus
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(subject_id: str, subject_type: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject_id, subject_type)}"}


@pytest.fixture
def user_headers(org):
    return auth_headers(org.requester.id, SUBJECT_USER)


@pytest.fixture
def staff_headers(org):
    def _headers(member: StaffMember) -> dict[str, str]:
        return auth_headers(member.id, SUBJECT_STAFF)

    return _headers
