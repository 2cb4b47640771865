from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, require_admin
from app.db.session import get_session
from app.models.comment import Comment
from app.models.user import User
from app.schemas.comment import CommentCreate, CommentRead, CommentStats, CommentUpdate
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.services import comments as comments_service

router = APIRouter(prefix="/comments", tags=["comments"])


@router.post("", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def create_comment(
    payload: CommentCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Comment:
    return await comments_service.create_comment(session, current_user, payload)


@router.get("", response_model=Page[CommentRead])
async def list_comments(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    product_id: UUID | None = Query(default=None),
    user_id: UUID | None = Query(default=None),
    min_rating: int | None = Query(default=None),
    max_rating: int | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await comments_service.list_comments(
        session, page, limit, product_id=product_id, user_id=user_id, min_rating=min_rating, max_rating=max_rating
    )
    return {"data": items, "pagination": meta}


@router.get("/search", response_model=Page[CommentRead])
async def search_comments(
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await comments_service.search_comments(session, q, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=CommentStats)
async def comment_stats(session: AsyncSession = Depends(get_session)) -> CommentStats:
    return await comments_service.comment_stats(session)


@router.get("/rating", response_model=Page[CommentRead])
async def list_by_rating(
    min_rating: int = Query(...),
    max_rating: int = Query(...),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await comments_service.list_by_rating(session, min_rating, max_rating, page, limit)
    return {"data": items, "pagination": meta}


@router.post("/bulk-delete", response_model=DeletedCount)
async def bulk_delete_comments(
    payload: BulkIdsRequest,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    return DeletedCount(deleted_count=await comments_service.bulk_delete_comments(session, payload.ids))


@router.get("/product/{product_id}", response_model=Page[CommentRead])
async def list_product_comments(
    product_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await comments_service.list_product_comments(session, product_id, page, limit)
    return {"data": items, "pagination": meta}


@router.delete("/product/{product_id}", response_model=DeletedCount)
async def delete_product_comments(
    product_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    return DeletedCount(deleted_count=await comments_service.delete_product_comments(session, product_id))


@router.get("/user/{user_id}", response_model=Page[CommentRead])
async def list_user_comments(
    user_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await comments_service.list_user_comments(session, user_id, page, limit)
    return {"data": items, "pagination": meta}


@router.delete("/user/{user_id}", response_model=DeletedCount)
async def delete_user_comments(
    user_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    return DeletedCount(deleted_count=await comments_service.delete_user_comments(session, user_id))


@router.get("/{comment_id}", response_model=CommentRead)
async def get_comment(comment_id: UUID, session: AsyncSession = Depends(get_session)) -> Comment:
    return await comments_service.get_comment(session, comment_id)


@router.patch("/{comment_id}", response_model=CommentRead)
async def update_comment(
    comment_id: UUID,
    payload: CommentUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Comment:
    comment = await comments_service.get_comment(session, comment_id)
    return await comments_service.update_comment(session, comment, current_user, payload)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    comment = await comments_service.get_comment(session, comment_id)
    await comments_service.delete_comment(session, comment, current_user)
