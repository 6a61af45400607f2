from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from shiftpos.app.core.config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Sign a bearer token for *subject* (a user id).

    Tokens are issued by the external auth service in production; this
    helper exists for local tooling and tests.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """Return the ``sub`` claim; raises ``JWTError`` on a bad signature or expiry."""
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    return payload.get("sub")
