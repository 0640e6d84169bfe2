from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from ..db import get_session
from ..models.staff import StaffMember
from ..models.user import User
from .security import SUBJECT_STAFF, SUBJECT_USER, decode_token

bearer = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    subject_type: str
    user: User | None = None
    staff: StaffMember | None = None

def get_current_principal(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    session: Session = Depends(get_session),
) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_token(creds.credentials)
        sub = str(payload["sub"])
        subject_type = str(payload.get("typ") or SUBJECT_USER)
    except (jwt.PyJWTError, KeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    if subject_type == SUBJECT_STAFF:
        staff = session.get(StaffMember, sub)
        if not staff or not staff.active:
            raise HTTPException(status_code=401, detail="Staff not found")
        return Principal(subject_type=SUBJECT_STAFF, staff=staff)

    user = session.get(User, sub)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return Principal(subject_type=SUBJECT_USER, user=user)


def get_current_user(principal: Principal = Depends(get_current_principal)) -> User:
    if principal.user is None:
        raise HTTPException(status_code=403, detail="end-user required")
    return principal.user


def get_current_staff(principal: Principal = Depends(get_current_principal)) -> StaffMember:
    if principal.staff is None:
        raise HTTPException(status_code=403, detail="staff role required")
    return principal.staff
