from pydantic import BaseModel


class AssignStaffIn(BaseModel):
    assignee_id: str


class AssignTeamIn(BaseModel):
    team_id: str
