from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.session import get_session
from app.models.user import User, UserRole
from app.schemas.auth import UserResponse
from app.schemas.user import UserAdminUpdate
from app.services import auth as auth_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: UserRole | None = None,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[User]:
    return await auth_service.list_users(session, role)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> User:
    return await auth_service.get_user(session, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    payload: UserAdminUpdate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> User:
    return await auth_service.admin_update_user(session, user_id, payload)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> None:
    await auth_service.delete_user(session, user_id)
