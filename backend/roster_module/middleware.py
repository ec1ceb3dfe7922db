from fastapi import Header, HTTPException, status

from .security import AuthError, SessionUser, decode_session_token


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


def get_current_session(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> SessionUser:
    token = _parse_token(authorization)
    try:
        return decode_session_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
