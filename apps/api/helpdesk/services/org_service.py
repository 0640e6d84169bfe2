"""
Organisation administration: departments, teams and staff members.

Every operation is ADMIN-only. A staff member's department always follows
its team; a member without a team may sit directly under a department.
"""
import logging

from ..core.cancellation import CancelToken, check_cancelled
from ..core.errors import AccessDeniedError, ConflictError, NotFoundError, UnauthorizedError, ValidationError
from ..models.department import Department
from ..models.staff import StaffMember, StaffRole
from ..models.team import Team
from ..repositories.base import StaffFilter, UnitOfWork
from ..schemas.org import (
    DepartmentCreateIn,
    DepartmentUpdateIn,
    StaffCreateIn,
    StaffUpdateIn,
    TeamCreateIn,
    TeamUpdateIn,
)
from .lookup import get_active_department, get_active_team

logger = logging.getLogger(__name__)


def require_admin(actor: StaffMember | None) -> StaffMember:
    if actor is None:
        raise UnauthorizedError("staff required")
    if actor.role != StaffRole.ADMIN.value:
        raise AccessDeniedError("admin role required")
    return actor


def _required_text(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", {"field": field})
    return value


class OrgService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    # ============================================
    # Departments
    # ============================================

    def create_department(
        self, actor: StaffMember | None, payload: DepartmentCreateIn, cancel: CancelToken | None = None
    ) -> Department:
        require_admin(actor)
        name = _required_text(payload.name, "name")
        self._ensure_department_name_free(name)
        dept = Department(name=name, description=payload.description, active=True)
        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.create_department(dept)
        logger.info("department created (department_id=%s, name=%s, by=%s)", dept.id, dept.name, actor.id)
        return dept

    def list_departments(self, actor: StaffMember | None, include_inactive: bool = False) -> list[Department]:
        require_admin(actor)
        return self.uow.directory.list_departments(include_inactive=include_inactive)

    def get_department(self, actor: StaffMember | None, department_id: str) -> Department:
        require_admin(actor)
        return self._department_or_404(department_id)

    def update_department(
        self,
        actor: StaffMember | None,
        department_id: str,
        payload: DepartmentUpdateIn,
        cancel: CancelToken | None = None,
    ) -> Department:
        require_admin(actor)
        dept = self._department_or_404(department_id)
        # blank name means "leave unchanged"
        if payload.name is not None and payload.name.strip():
            name = payload.name.strip()
            if name.lower() != dept.name.lower():
                self._ensure_department_name_free(name)
            dept.name = name
        if payload.description is not None:
            dept.description = payload.description
        if payload.active is not None:
            dept.active = payload.active
        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.update_department(dept)
        logger.info("department updated (department_id=%s, active=%s, by=%s)", dept.id, dept.active, actor.id)
        return dept

    def _department_or_404(self, department_id: str) -> Department:
        dept = self.uow.directory.get_department(department_id)
        if dept is None:
            raise NotFoundError("department", {"department_id": department_id})
        return dept

    def _ensure_department_name_free(self, name: str) -> None:
        for existing in self.uow.directory.list_departments(include_inactive=True):
            if existing.name.lower() == name.lower():
                raise ConflictError("department name already exists", {"name": name})

    # ============================================
    # Teams
    # ============================================

    def create_team(self, actor: StaffMember | None, payload: TeamCreateIn, cancel: CancelToken | None = None) -> Team:
        require_admin(actor)
        name = _required_text(payload.name, "name")
        get_active_department(self.uow.directory, payload.department_id)
        team = Team(department_id=payload.department_id, name=name, description=payload.description, active=True)
        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.create_team(team)
        logger.info("team created (team_id=%s, department_id=%s, by=%s)", team.id, team.department_id, actor.id)
        return team

    def list_teams(
        self, actor: StaffMember | None, department_id: str | None = None, include_inactive: bool = False
    ) -> list[Team]:
        require_admin(actor)
        return self.uow.directory.list_teams(department_id=department_id, include_inactive=include_inactive)

    def get_team(self, actor: StaffMember | None, team_id: str) -> Team:
        require_admin(actor)
        return self._team_or_404(team_id)

    def update_team(
        self, actor: StaffMember | None, team_id: str, payload: TeamUpdateIn, cancel: CancelToken | None = None
    ) -> Team:
        require_admin(actor)
        team = self._team_or_404(team_id)
        if payload.department_id is not None and payload.department_id != team.department_id:
            get_active_department(self.uow.directory, payload.department_id)
            team.department_id = payload.department_id
        if payload.name is not None and payload.name.strip():
            team.name = payload.name.strip()
        if payload.description is not None:
            team.description = payload.description
        if payload.active is not None:
            team.active = payload.active
        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.update_team(team)
        logger.info("team updated (team_id=%s, active=%s, by=%s)", team.id, team.active, actor.id)
        return team

    def _team_or_404(self, team_id: str) -> Team:
        team = self.uow.directory.get_team(team_id)
        if team is None:
            raise NotFoundError("team", {"team_id": team_id})
        return team

    # ============================================
    # Staff members
    # ============================================

    def create_staff(
        self, actor: StaffMember | None, payload: StaffCreateIn, cancel: CancelToken | None = None
    ) -> StaffMember:
        require_admin(actor)
        name = _required_text(payload.name, "name")
        email = _required_text(payload.email, "email").lower()
        self._ensure_email_free(email)
        department_id, team_id = self._placement(payload.team_id, payload.department_id)

        member = StaffMember(
            name=name,
            email=email,
            role=payload.role.value,
            department_id=department_id,
            team_id=team_id,
            active=True,
        )
        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.create_staff(member)
        logger.info("staff created (staff_id=%s, role=%s, team=%s, by=%s)", member.id, member.role, team_id, actor.id)
        return member

    def list_staff(self, actor: StaffMember | None, flt: StaffFilter | None = None) -> list[StaffMember]:
        require_admin(actor)
        return self.uow.directory.list_staff(flt or StaffFilter())

    def get_staff(self, actor: StaffMember | None, staff_id: str) -> StaffMember:
        require_admin(actor)
        return self._staff_or_404(staff_id)

    def update_staff(
        self, actor: StaffMember | None, staff_id: str, payload: StaffUpdateIn, cancel: CancelToken | None = None
    ) -> StaffMember:
        require_admin(actor)
        member = self._staff_or_404(staff_id)

        email = member.email
        if payload.email is not None:
            email = _required_text(payload.email, "email").lower()
            if email != member.email.lower():
                self._ensure_email_free(email, exclude_id=member.id)

        placement = (member.department_id, member.team_id)
        touched = payload.model_fields_set
        if "team_id" in touched or "department_id" in touched:
            team_id = payload.team_id if "team_id" in touched else member.team_id
            placement = self._placement(team_id, payload.department_id)

        # all checks passed; apply
        member.email = email
        member.department_id, member.team_id = placement
        if payload.name is not None and payload.name.strip():
            member.name = payload.name.strip()
        if payload.role is not None:
            member.role = payload.role.value
        if payload.active is not None:
            member.active = payload.active

        with self.uow.transaction():
            check_cancelled(cancel)
            self.uow.directory.update_staff(member)
        logger.info("staff updated (staff_id=%s, active=%s, by=%s)", member.id, member.active, actor.id)
        return member

    def _placement(self, team_id: str | None, department_id: str | None) -> tuple[str | None, str | None]:
        """Resolve (department_id, team_id) for a staff member."""
        if team_id is not None:
            team = get_active_team(self.uow.directory, team_id)
            return team.department_id, team.id
        if department_id is not None:
            dept = get_active_department(self.uow.directory, department_id)
            return dept.id, None
        return None, None

    def _staff_or_404(self, staff_id: str) -> StaffMember:
        member = self.uow.directory.get_staff(staff_id)
        if member is None:
            raise NotFoundError("staff", {"staff_id": staff_id})
        return member

    def _ensure_email_free(self, email: str, exclude_id: str | None = None) -> None:
        existing = self.uow.directory.get_staff_by_email(email)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("staff email already exists", {"email": email})
