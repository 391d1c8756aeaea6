"""
Caller identity from bearer tokens

The identity provider signs HS256 tokens carrying the user's id in `sub`
and one of ROLES in `role`. Anything else (bad signature, expiry, unknown
role, no subject) is treated as anonymous.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.core.config import settings

ROLES = ("consumer", "business", "admin")


@dataclass(frozen=True)
class Caller:
    uid: str
    role: str


def issue_caller_token(uid: str, role: str, ttl: Optional[timedelta] = None) -> str:
    """Sign a token for `uid` acting as `role` (service calls and tests)."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    issued_at = datetime.now(timezone.utc)
    ttl = ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(uid), "role": role, "iat": issued_at, "exp": issued_at + ttl}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def caller_from_token(token: str) -> Optional[Caller]:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    uid = claims.get("sub")
    role = claims.get("role", "consumer")
    if not uid or role not in ROLES:
        return None
    return Caller(uid=str(uid), role=role)
