from datetime import datetime, timedelta, timezone
import jwt
from .settings import settings

SUBJECT_USER = "user"
SUBJECT_STAFF = "staff"


def create_access_token(sub: str, subject_type: str = SUBJECT_USER) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "typ": subject_type,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.JWT_EXPIRES_MIN)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
