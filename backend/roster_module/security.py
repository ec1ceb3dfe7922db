from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from .config import settings


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class SessionUser:
    subject: str
    email: str | None = None
    role: str | None = None


def create_session_token(
    subject: str,
    email: str | None = None,
    role: str = "authenticated",
    expires_minutes: int = 60,
) -> str:
    """Mint a token shaped like the identity provider's, for local runs and tests."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    if email:
        payload["email"] = email
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> SessionUser:
    options = {"require": ["sub", "exp"]}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc
    return SessionUser(subject=payload["sub"], email=payload.get("email"), role=payload.get("role"))
