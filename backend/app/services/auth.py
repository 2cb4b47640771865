from datetime import datetime, timedelta, timezone
import logging
import secrets
import uuid
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.config import settings
from app.models.store import Store
from app.models.user import RefreshSession, User, UserRole, UserStatus
from app.schemas.auth import ChangePasswordRequest, ProfileUpdate
from app.schemas.user import UserAdminUpdate, UserCreate
from app.services import asset_reconcile, assets

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_google_sub(session: AsyncSession, sub: str) -> User | None:
    result = await session.execute(select(User).where(User.google_sub == sub))
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, user_in: UserCreate) -> User:
    existing = await get_user_by_email(session, user_in.email)
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    db_user = User(
        email=user_in.email.lower(),
        hashed_password=security.hash_password(user_in.password),
        name=user_in.name,
    )
    session.add(db_user)
    await session.commit()
    await session.refresh(db_user)
    logger.info("user_registered", extra={"user_id": str(db_user.id)})
    return db_user


def ensure_active(user: User) -> None:
    if user.status == UserStatus.BANNED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is banned")


async def authenticate_user(session: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(session, email)
    if not user or not security.verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    ensure_active(user)
    return user


async def create_refresh_session(session: AsyncSession, user_id: uuid.UUID) -> RefreshSession:
    jti = secrets.token_hex(16)
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_exp_days)
    refresh_session = RefreshSession(user_id=user_id, jti=jti, expires_at=expires_at, revoked=False)
    session.add(refresh_session)
    await session.flush()
    return refresh_session


async def issue_tokens_for_user(session: AsyncSession, user: User) -> dict[str, str]:
    refresh_session = await create_refresh_session(session, user.id)
    access = security.create_access_token(str(user.id), refresh_session.jti)
    refresh = security.create_refresh_token(str(user.id), refresh_session.jti, refresh_session.expires_at)
    await session.commit()
    return {"access_token": access, "refresh_token": refresh}


async def revoke_refresh_token(session: AsyncSession, jti: str, reason: str = "revoked") -> None:
    result = await session.execute(select(RefreshSession).where(RefreshSession.jti == jti))
    refresh = result.scalar_one_or_none()
    if refresh and not refresh.revoked:
        refresh.revoke(reason)
        await session.commit()


async def validate_refresh_token(session: AsyncSession, token: str) -> RefreshSession:
    payload = security.decode_token(token, "refresh")
    if not payload or not payload.get("jti") or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    result = await session.execute(select(RefreshSession).where(RefreshSession.jti == payload["jti"]))
    stored = result.scalar_one_or_none()
    if stored is None or not stored.is_usable():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    return stored


async def rotate_refresh_token(session: AsyncSession, token: str) -> tuple[User, dict[str, str]]:
    stored = await validate_refresh_token(session, token)
    user = await session.get(User, stored.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    ensure_active(user)
    stored.revoke("rotated")
    await session.flush()
    tokens = await issue_tokens_for_user(session, user)
    return user, tokens


async def update_profile(session: AsyncSession, user: User, payload: ProfileUpdate) -> User:
    data = payload.model_dump(exclude_unset=True)
    if data.get("email") and data["email"].lower() != user.email:
        if await get_user_by_email(session, data["email"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        data["email"] = data["email"].lower()
    if data.get("username") and data["username"] != user.username:
        if await get_user_by_username(session, data["username"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken")
    for field, value in data.items():
        if value is not None:
            setattr(user, field, value)
    await session.commit()
    await session.refresh(user)
    return user


async def change_password(session: AsyncSession, user: User, payload: ChangePasswordRequest) -> None:
    if not security.verify_password(payload.current_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    if payload.new_password != payload.confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Passwords do not match")
    if security.verify_password(payload.new_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must differ from the current one")
    user.hashed_password = security.hash_password(payload.new_password)
    # Existing refresh sessions are dropped so other devices have to log in again.
    result = await session.execute(
        select(RefreshSession).where(RefreshSession.user_id == user.id, RefreshSession.revoked.is_(False))
    )
    for refresh in result.scalars():
        refresh.revoke("password_changed")
    await session.commit()
    logger.info("password_changed", extra={"user_id": str(user.id)})


async def set_avatar(session: AsyncSession, user: User, file: UploadFile) -> User:
    uploaded = await assets.get_asset_host().upload_one(file, "avatars")
    queued = await asset_reconcile.queue_asset_deletions(session, [user.avatar_asset_id], source="user_avatar")
    user.avatar_url = uploaded.url
    user.avatar_asset_id = uploaded.asset_id
    await session.commit()
    await asset_reconcile.process_asset_deletions(session, queued)
    await session.refresh(user)
    return user


async def list_users(session: AsyncSession, role: UserRole | None = None) -> list[User]:
    query = select(User).order_by(User.created_at.desc())
    if role:
        query = query.where(User.role == role)
    result = await session.execute(query)
    return list(result.scalars())


async def admin_update_user(session: AsyncSession, user_id: uuid.UUID, payload: UserAdminUpdate) -> User:
    user = await get_user(session, user_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    await session.commit()
    await session.refresh(user)
    return user


async def delete_user(session: AsyncSession, user_id: uuid.UUID) -> None:
    user = await get_user(session, user_id)
    owned_store = await session.scalar(select(Store.id).where(Store.user_id == user_id))
    if owned_store:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User still owns a store")
    await session.delete(user)
    await session.commit()
    logger.info("user_deleted", extra={"user_id": str(user_id)})


def is_google_configured() -> bool:
    return bool(settings.google_client_id and settings.google_client_secret and settings.google_redirect_uri)


def build_google_auth_url(state: str) -> str:
    if not is_google_configured():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google login is not configured")
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
        "access_type": "online",
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def verify_google_state(state: str) -> None:
    payload = security.decode_token(state, "oauth_state")
    if not payload or payload.get("sub") != "google":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state")


async def exchange_google_code(code: str) -> dict[str, Any]:
    if not is_google_configured():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Google login is not configured")
    data = {
        "code": code,
        "client_id": settings.google_client_id,
        "client_secret": settings.google_client_secret,
        "redirect_uri": settings.google_redirect_uri,
        "grant_type": "authorization_code",
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            token_resp = await client.post(GOOGLE_TOKEN_URL, data=data)
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google did not return an access token")
            info_resp = await client.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            info_resp.raise_for_status()
            return info_resp.json()
    except httpx.HTTPError as exc:
        logger.warning("google_exchange_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Google authentication failed") from exc


async def login_with_google(session: AsyncSession, profile: dict[str, Any]) -> User:
    sub = profile.get("sub")
    email = (profile.get("email") or "").lower()
    if not sub or not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google profile is incomplete")

    user = await get_user_by_google_sub(session, sub)
    if user is None:
        if not profile.get("email_verified"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Google email is not verified")
        user = await get_user_by_email(session, email)
        if user is None:
            user = User(email=email, name=profile.get("name") or "Anonymous", email_verified=True)
            session.add(user)
            logger.info("google_user_created", extra={"google_sub": sub})
        else:
            logger.info("google_account_linked", extra={"user_id": str(user.id)})
        user.google_sub = sub
        user.google_email = email

    ensure_active(user)
    picture = profile.get("picture")
    if picture:
        user.google_picture_url = picture
        if not user.avatar_url:
            user.avatar_url = picture
    await session.commit()
    await session.refresh(user)
    return user
