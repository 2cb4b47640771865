from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
from jose import JWTError, jwt

from app.core.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def _secret_for(token_type: str) -> str:
    return settings.refresh_secret_key if token_type == "refresh" else settings.secret_key


def _create_token(subject: str, token_type: str, expires_at: datetime, extra: dict[str, Any] | None = None) -> str:
    to_encode: dict[str, Any] = {"sub": subject, "type": token_type, "exp": expires_at}
    if extra:
        to_encode.update(extra)
    return jwt.encode(to_encode, _secret_for(token_type), algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, jti: str | None = None) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_exp_minutes)
    return _create_token(subject, "access", expires_at, {"jti": jti} if jti else None)


def create_refresh_token(subject: str, jti: str, expires_at: datetime | None = None) -> str:
    expires_at = expires_at or datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_exp_days)
    return _create_token(subject, "refresh", expires_at, {"jti": jti})


def create_oauth_state(provider: str) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.google_state_exp_minutes)
    return _create_token(provider, "oauth_state", expires_at)


def decode_token(token: str, token_type: str = "access") -> Optional[dict[str, Any]]:
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload
