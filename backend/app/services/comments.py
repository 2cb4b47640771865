import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product
from app.models.comment import Comment
from app.models.user import User
from app.schemas.comment import CommentCreate, CommentStats, CommentUpdate, RatingCount
from app.schemas.common import PaginationMeta
from app.services.pagination import paginate

RATINGS = range(0, 6)


def ensure_author_or_admin(comment: Comment, user: User) -> None:
    if not user.can_manage(comment.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only modify your own comments")


async def get_comment(session: AsyncSession, comment_id: uuid.UUID) -> Comment:
    comment = await session.get(Comment, comment_id)
    if not comment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    return comment


async def create_comment(session: AsyncSession, user: User, payload: CommentCreate) -> Comment:
    product = await session.get(Product, payload.product_id)
    if not product or product.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    comment = Comment(user_id=user.id, **payload.model_dump())
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    return comment


def _validate_range(min_rating: int | None, max_rating: int | None) -> None:
    for value in (min_rating, max_rating):
        if value is not None and value not in RATINGS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rating must be between 0 and 5")
    if min_rating is not None and max_rating is not None and min_rating > max_rating:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="min_rating cannot exceed max_rating")


async def list_comments(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    product_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    min_rating: int | None = None,
    max_rating: int | None = None,
) -> tuple[list[Comment], PaginationMeta]:
    _validate_range(min_rating, max_rating)
    query = select(Comment).order_by(Comment.created_at.desc(), Comment.id)
    if product_id:
        query = query.where(Comment.product_id == product_id)
    if user_id:
        query = query.where(Comment.user_id == user_id)
    if min_rating is not None:
        query = query.where(Comment.rating >= min_rating)
    if max_rating is not None:
        query = query.where(Comment.rating <= max_rating)
    return await paginate(session, query, page, limit, Comment.id)


async def search_comments(
    session: AsyncSession, term: str, page: int = 1, limit: int = 10
) -> tuple[list[Comment], PaginationMeta]:
    term = (term or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query cannot be empty")
    like = f"%{term}%"
    query = (
        select(Comment)
        .where(or_(Comment.title.ilike(like), Comment.comment.ilike(like)))
        .order_by(Comment.created_at.desc(), Comment.id)
    )
    return await paginate(session, query, page, limit, Comment.id)


async def list_product_comments(
    session: AsyncSession, product_id: uuid.UUID, page: int = 1, limit: int = 10
) -> tuple[list[Comment], PaginationMeta]:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return await list_comments(session, page, limit, product_id=product_id)


async def list_user_comments(
    session: AsyncSession, user_id: uuid.UUID, page: int = 1, limit: int = 10
) -> tuple[list[Comment], PaginationMeta]:
    if not await session.get(User, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return await list_comments(session, page, limit, user_id=user_id)


async def list_by_rating(
    session: AsyncSession, min_rating: int, max_rating: int, page: int = 1, limit: int = 10
) -> tuple[list[Comment], PaginationMeta]:
    return await list_comments(session, page, limit, min_rating=min_rating, max_rating=max_rating)


async def update_comment(session: AsyncSession, comment: Comment, user: User, payload: CommentUpdate) -> Comment:
    ensure_author_or_admin(comment, user)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(comment, field, value)
    await session.commit()
    await session.refresh(comment)
    return comment


async def delete_comment(session: AsyncSession, comment: Comment, user: User) -> None:
    ensure_author_or_admin(comment, user)
    await session.delete(comment)
    await session.commit()


async def _delete_where(session: AsyncSession, condition) -> int:
    result = await session.execute(delete(Comment).where(condition).execution_options(synchronize_session=False))
    await session.commit()
    return result.rowcount or 0


async def delete_product_comments(session: AsyncSession, product_id: uuid.UUID) -> int:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return await _delete_where(session, Comment.product_id == product_id)


async def delete_user_comments(session: AsyncSession, user_id: uuid.UUID) -> int:
    if not await session.get(User, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return await _delete_where(session, Comment.user_id == user_id)


async def bulk_delete_comments(session: AsyncSession, ids: list[uuid.UUID]) -> int:
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No comment ids provided")
    deleted = await _delete_where(session, Comment.id.in_(ids))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No comments found")
    return deleted


async def comment_stats(session: AsyncSession) -> CommentStats:
    total = await session.scalar(select(func.count(Comment.id))) or 0
    average = await session.scalar(select(func.avg(Comment.rating)))
    products = await session.scalar(select(func.count(func.distinct(Comment.product_id)))) or 0
    users = await session.scalar(select(func.count(func.distinct(Comment.user_id)))) or 0
    rows = await session.execute(select(Comment.rating, func.count(Comment.id)).group_by(Comment.rating))
    counts = {rating: count for rating, count in rows}
    return CommentStats(
        total_comments=total,
        average_rating=round(float(average or 0), 1),
        products_with_comments=products,
        users_with_comments=users,
        comments_by_rating=[RatingCount(rating=rating, count=counts.get(rating, 0)) for rating in RATINGS],
    )
