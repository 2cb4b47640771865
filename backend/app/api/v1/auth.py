from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.config import settings
from app.core.dependencies import get_current_user
from app.core.rate_limit import SlidingWindowLimiter, client_ip, shared_key
from app.core.security import decode_token
from app.db.session import get_session
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    GoogleCallback,
    GoogleStartResponse,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    TokenPair,
    UserResponse,
)
from app.schemas.common import MessageResponse
from app.schemas.user import UserCreate
from app.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])

register_rate_limit = SlidingWindowLimiter(client_ip, settings.auth_rate_limit_register)
login_rate_limit = SlidingWindowLimiter(client_ip, settings.auth_rate_limit_login)
refresh_rate_limit = SlidingWindowLimiter(shared_key("auth:refresh"), settings.auth_rate_limit_refresh)
google_rate_limit = SlidingWindowLimiter(client_ip, settings.auth_rate_limit_google)


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.secure_cookies,
        "samesite": settings.cookie_samesite.lower(),
        "path": "/",
    }


def set_auth_cookies(response: Response, tokens: dict[str, str]) -> None:
    response.set_cookie(
        "access_token", tokens["access_token"], max_age=settings.access_token_exp_minutes * 60, **_cookie_options()
    )
    response.set_cookie(
        "refresh_token",
        tokens["refresh_token"],
        max_age=settings.refresh_token_exp_days * 24 * 60 * 60,
        **_cookie_options(),
    )


def clear_auth_cookies(response: Response) -> None:
    for name in ("access_token", "refresh_token"):
        response.delete_cookie(
            name, path="/", secure=settings.secure_cookies, samesite=settings.cookie_samesite.lower()
        )


def _auth_response(user: User, tokens: dict[str, str]) -> AuthResponse:
    return AuthResponse(user=UserResponse.model_validate(user), tokens=TokenPair(**tokens))


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse)
async def register(
    user_in: UserCreate,
    response: Response,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(register_rate_limit),
) -> AuthResponse:
    user = await auth_service.create_user(session, user_in)
    tokens = await auth_service.issue_tokens_for_user(session, user)
    set_auth_cookies(response, tokens)
    return _auth_response(user, tokens)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(login_rate_limit),
) -> AuthResponse:
    user = await auth_service.authenticate_user(session, payload.email, payload.password)
    tokens = await auth_service.issue_tokens_for_user(session, user)
    set_auth_cookies(response, tokens)
    return _auth_response(user, tokens)


@router.post("/refresh", response_model=TokenPair)
async def refresh_tokens(
    request: Request,
    response: Response,
    refresh_request: RefreshRequest | None = None,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(refresh_rate_limit),
) -> TokenPair:
    token = (refresh_request.refresh_token if refresh_request else None) or request.cookies.get("refresh_token")
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token missing")
    _user, tokens = await auth_service.rotate_refresh_token(session, token)
    set_auth_cookies(response, tokens)
    return TokenPair(**tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    response: Response,
    payload: RefreshRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> None:
    token = (payload.refresh_token if payload else None) or request.cookies.get("refresh_token")
    data = decode_token(token, "refresh") if token else None
    if data and data.get("jti"):
        await auth_service.revoke_refresh_token(session, data["jti"], reason="logout")
    clear_auth_cookies(response)
    return None


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.get("/profile", response_model=UserResponse)
async def read_profile(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.patch("/profile", response_model=UserResponse)
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await auth_service.update_profile(session, current_user, payload)
    return UserResponse.model_validate(user)


@router.post("/profile/avatar", response_model=UserResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await auth_service.set_avatar(session, current_user, file)
    return UserResponse.model_validate(user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await auth_service.change_password(session, current_user, payload)
    return MessageResponse(message="Password updated")


@router.get("/google/start", response_model=GoogleStartResponse)
async def google_start(_: None = Depends(google_rate_limit)) -> GoogleStartResponse:
    state = security.create_oauth_state("google")
    return GoogleStartResponse(auth_url=auth_service.build_google_auth_url(state))


@router.get("/google/login", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def google_login(_: None = Depends(google_rate_limit)) -> RedirectResponse:
    state = security.create_oauth_state("google")
    return RedirectResponse(auth_service.build_google_auth_url(state), status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.post("/google/callback", response_model=AuthResponse)
async def google_callback(
    payload: GoogleCallback,
    response: Response,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(google_rate_limit),
) -> AuthResponse:
    auth_service.verify_google_state(payload.state)
    profile = await auth_service.exchange_google_code(payload.code)
    user = await auth_service.login_with_google(session, profile)
    tokens = await auth_service.issue_tokens_for_user(session, user)
    set_auth_cookies(response, tokens)
    return _auth_response(user, tokens)


@router.get("/google/redirect")
async def google_redirect(
    code: str,
    state: str,
    session: AsyncSession = Depends(get_session),
    _: None = Depends(google_rate_limit),
) -> RedirectResponse:
    auth_service.verify_google_state(state)
    profile = await auth_service.exchange_google_code(code)
    user = await auth_service.login_with_google(session, profile)
    tokens = await auth_service.issue_tokens_for_user(session, user)
    redirect = RedirectResponse(settings.frontend_origin, status_code=status.HTTP_302_FOUND)
    set_auth_cookies(redirect, tokens)
    return redirect
