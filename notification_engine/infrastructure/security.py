"""JWT helpers used by the HTTP API and the live push gateway."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from notification_engine.config import get_settings

ALGORITHM = "HS256"


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode({**data, "exp": expire}, settings.secret_key, algorithm=ALGORITHM)


def create_user_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Return a signed token whose subject is ``user_id``."""

    return create_access_token({"sub": user_id}, expires_delta)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Could not validate credentials") from exc


def resolve_token_subject(token: str | None) -> str:
    """Return the user id carried by ``token`` or raise ``ValueError``."""

    if not token:
        raise ValueError("Missing credentials")
    subject = decode_access_token(token).get("sub")
    if not isinstance(subject, str) or not subject:
        raise ValueError("Could not validate credentials")
    return subject
