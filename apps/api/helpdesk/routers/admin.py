from fastapi import APIRouter, Depends, Query

from ..core.cancellation import CancelToken
from ..core.current_user import get_current_staff
from ..deps import get_cancel_token, get_org_service
from ..models.staff import StaffMember, StaffRole
from ..repositories.base import StaffFilter
from ..schemas.org import (
    DepartmentCreateIn,
    DepartmentOut,
    DepartmentUpdateIn,
    StaffCreateIn,
    StaffOut,
    StaffUpdateIn,
    TeamCreateIn,
    TeamOut,
    TeamUpdateIn,
)
from ..services.org_service import OrgService

router = APIRouter(prefix="/admin", tags=["admin-org"])


@router.post("/departments", response_model=DepartmentOut, status_code=201)
def create_department(
    payload: DepartmentCreateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.create_department(staff, payload, cancel=cancel)


@router.get("/departments", response_model=list[DepartmentOut])
def list_departments(
    include_inactive: bool = Query(default=False),
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    return service.list_departments(staff, include_inactive=include_inactive)


@router.get("/departments/{department_id}", response_model=DepartmentOut)
def get_department(
    department_id: str,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    return service.get_department(staff, department_id)


@router.patch("/departments/{department_id}", response_model=DepartmentOut)
def update_department(
    department_id: str,
    payload: DepartmentUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.update_department(staff, department_id, payload, cancel=cancel)


@router.post("/teams", response_model=TeamOut, status_code=201)
def create_team(
    payload: TeamCreateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.create_team(staff, payload, cancel=cancel)


@router.get("/teams", response_model=list[TeamOut])
def list_teams(
    department_id: str | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    return service.list_teams(staff, department_id=department_id, include_inactive=include_inactive)


@router.get("/teams/{team_id}", response_model=TeamOut)
def get_team(
    team_id: str,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    return service.get_team(staff, team_id)


@router.patch("/teams/{team_id}", response_model=TeamOut)
def update_team(
    team_id: str,
    payload: TeamUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.update_team(staff, team_id, payload, cancel=cancel)


@router.post("/members", response_model=StaffOut, status_code=201)
def create_member(
    payload: StaffCreateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.create_staff(staff, payload, cancel=cancel)


@router.get("/members", response_model=list[StaffOut])
def list_members(
    role: StaffRole | None = Query(default=None),
    team_id: str | None = Query(default=None),
    department_id: str | None = Query(default=None),
    active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    flt = StaffFilter(
        department_id=department_id,
        team_id=team_id,
        role=role.value if role is not None else None,
        active=active,
        limit=limit,
        offset=offset,
    )
    return service.list_staff(staff, flt)


@router.get("/members/{staff_id}", response_model=StaffOut)
def get_member(
    staff_id: str,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
):
    return service.get_staff(staff, staff_id)


@router.patch("/members/{staff_id}", response_model=StaffOut)
def update_member(
    staff_id: str,
    payload: StaffUpdateIn,
    staff: StaffMember = Depends(get_current_staff),
    service: OrgService = Depends(get_org_service),
    cancel: CancelToken = Depends(get_cancel_token),
):
    return service.update_staff(staff, staff_id, payload, cancel=cancel)
