"""Capability tokens: signed JWTs carrying the caller's identity and role."""
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import JWTError, jwt

from .config import settings

ALGORITHM = "HS256"


class Role(str, Enum):
    INDIVIDUAL = "individual"
    INSTITUTION = "institution"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """Who is calling a core entry point. Anonymous shoppers are individuals."""

    role: Role = Role.INDIVIDUAL
    subject: str | None = None
    institution_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_institution(self) -> bool:
        return self.role is Role.INSTITUTION


ANONYMOUS = Caller()


def create_access_token(caller: Caller, expires_minutes: int | None = None) -> str:
    minutes = expires_minutes or settings.access_token_expire_minutes
    payload = {
        "sub": caller.subject or caller.role.value,
        "role": caller.role.value,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    if caller.institution_name:
        payload["inst"] = caller.institution_name
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Caller | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None
    try:
        role = Role(payload.get("role"))
    except ValueError:
        return None
    return Caller(role=role, subject=payload.get("sub"), institution_name=payload.get("inst"))


def constant_time_equals(provided: str | None, expected: str | None) -> bool:
    return hmac.compare_digest((provided or "").encode("utf-8"), (expected or "").encode("utf-8"))
