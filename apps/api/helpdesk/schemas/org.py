from datetime import datetime

from pydantic import BaseModel, Field

from ..models.staff import StaffRole


class DepartmentCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = ""


class DepartmentUpdateIn(BaseModel):
    name: str | None = Field(default=None, max_length=120)
    description: str | None = None
    active: bool | None = None


class DepartmentOut(BaseModel):
    id: str
    name: str
    description: str
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TeamCreateIn(BaseModel):
    department_id: str
    name: str = Field(min_length=1, max_length=120)
    description: str = ""


class TeamUpdateIn(BaseModel):
    department_id: str | None = None
    name: str | None = Field(default=None, max_length=120)
    description: str | None = None
    active: bool | None = None


class TeamOut(BaseModel):
    id: str
    department_id: str
    name: str
    description: str
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class StaffCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    role: StaffRole = StaffRole.AGENT
    team_id: str | None = None
    # only used when no team is given; otherwise the team's department wins
    department_id: str | None = None


class StaffUpdateIn(BaseModel):
    """Partial update. An explicit ``team_id: null`` detaches the member from its team."""

    name: str | None = Field(default=None, max_length=100)
    email: str | None = Field(default=None, max_length=255)
    role: StaffRole | None = None
    team_id: str | None = None
    department_id: str | None = None
    active: bool | None = None


class StaffOut(BaseModel):
    id: str
    name: str
    email: str
    role: str
    department_id: str | None
    team_id: str | None
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True
