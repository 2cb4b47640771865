"""Product trash lifecycle: soft delete, restore, permanent delete and retention purge.

Every transition goes through ``Product.mark_deleted`` / ``Product.mark_restored`` so the
``is_deleted`` / ``deleted_at`` / ``status`` triple never drifts. Permanent deletion removes
the product and its dependents in one local transaction and records remote image assets in
the deletion outbox; the asset host is only contacted after that transaction commits.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Sequence

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.catalog import Inventory, Product, ProductAttribute, ProductImage, ProductVariant, Review, WishlistItem
from app.models.comment import Comment
from app.models.user import User
from app.schemas.common import PaginationMeta
from app.schemas.error import BatchErrorDetail
from app.schemas.trash import (
    BatchFailure,
    BulkDeleteResult,
    BulkRestoreResult,
    BulkTrashResult,
    CategoryCount,
    EmptyTrashResult,
    TrashStats,
)
from app.services import asset_reconcile
from app.services import catalog as catalog_service
from app.services import stores as stores_service
from app.services.pagination import paginate

logger = logging.getLogger(__name__)


def _ensure_ownership(product: Product, store_id: uuid.UUID | None, actor: User | None) -> None:
    if store_id is not None and product.store_id != store_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Product does not belong to this store")
    if actor is not None and not actor.can_manage(product.store.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not own this product's store")


async def _load_for_lifecycle(
    session: AsyncSession,
    product_id: uuid.UUID,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None,
    actor: User | None,
) -> Product:
    product = await catalog_service.get_product(session, product_id, include_deleted=True)
    _ensure_ownership(product, store_id, actor)
    return product


async def _purge(session: AsyncSession, product_ids: Sequence[uuid.UUID]) -> list[str]:
    """Delete products and everything hanging off them. Runs inside the caller's transaction."""
    ids = list(product_ids)
    if not ids:
        return []
    variant_ids = select(ProductVariant.id).where(ProductVariant.product_id.in_(ids))
    asset_ids = list(
        (await session.execute(select(ProductImage.asset_id).where(ProductImage.product_id.in_(ids)))).scalars()
    )
    await session.execute(
        delete(Inventory).where(Inventory.variant_id.in_(variant_ids)).execution_options(synchronize_session=False)
    )
    for model in (ProductVariant, ProductImage, ProductAttribute, Review, Comment, WishlistItem):
        await session.execute(
            delete(model).where(model.product_id.in_(ids)).execution_options(synchronize_session=False)
        )
    await session.execute(delete(Product).where(Product.id.in_(ids)).execution_options(synchronize_session=False))
    return await asset_reconcile.queue_asset_deletions(session, asset_ids, source="product_image")


async def _finish_purge(session: AsyncSession, product_ids: Sequence[uuid.UUID], queued: list[str]) -> int:
    doomed = set(product_ids)
    for obj in list(session.identity_map.values()):
        if isinstance(obj, Product) and obj.id in doomed:
            session.expunge(obj)
    outcome = await asset_reconcile.process_asset_deletions(session, queued)
    return outcome.pending


async def move_to_trash(
    session: AsyncSession,
    product_id: uuid.UUID,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> Product:
    product = await _load_for_lifecycle(session, product_id, user_id, store_id, actor)
    if product.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is already in trash")
    product.mark_deleted(by=user_id)
    await session.commit()
    logger.info(
        "product_moved_to_trash",
        extra={"product_id": str(product_id), "store_id": str(product.store_id), "user_id": str(user_id)},
    )
    return await catalog_service.get_product(session, product_id, include_deleted=True)


async def restore_from_trash(
    session: AsyncSession,
    product_id: uuid.UUID,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> Product:
    """Take a product out of the trash. It always comes back as ``DRAFT``."""
    product = await _load_for_lifecycle(session, product_id, user_id, store_id, actor)
    if not product.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is not in trash")
    await catalog_service.ensure_slug_unique(session, product.slug, exclude_id=product.id)
    product.mark_restored()
    await session.commit()
    logger.info("product_restored", extra={"product_id": str(product_id), "user_id": str(user_id)})
    return await catalog_service.get_product(session, product_id)


async def permanent_delete(
    session: AsyncSession,
    product_id: uuid.UUID,
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> int:
    """Remove a trashed product for good. Returns how many remote assets are still pending deletion."""
    product = await _load_for_lifecycle(session, product_id, user_id, store_id, actor)
    if not product.is_deleted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product must be in trash before permanent deletion. Use soft delete first",
        )
    try:
        queued = await _purge(session, [product_id])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    pending = await _finish_purge(session, [product_id], queued)
    logger.info(
        "product_permanently_deleted",
        extra={"product_id": str(product_id), "user_id": str(user_id), "assets_pending": pending},
    )
    return pending


def _require_ids(product_ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    ids = list(dict.fromkeys(product_ids))
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product IDs array is required")
    return ids


async def _run_batch(
    ids: list[uuid.UUID], operation: Callable[[uuid.UUID], Awaitable[object]], verb: str
) -> tuple[list[uuid.UUID], list[BatchFailure]]:
    succeeded: list[uuid.UUID] = []
    failed: list[BatchFailure] = []
    for product_id in ids:
        try:
            await operation(product_id)
        except HTTPException as exc:
            failed.append(BatchFailure(id=product_id, status_code=exc.status_code, detail=str(exc.detail)))
        else:
            succeeded.append(product_id)
    if not succeeded:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=BatchErrorDetail(message=f"No products were {verb}", failed=failed).model_dump(mode="json"),
        )
    return succeeded, failed


async def bulk_restore(
    session: AsyncSession,
    product_ids: Sequence[uuid.UUID],
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> BulkRestoreResult:
    ids = _require_ids(product_ids)
    succeeded, failed = await _run_batch(
        ids,
        lambda pid: restore_from_trash(session, pid, user_id, store_id, actor=actor),
        "restored",
    )
    return BulkRestoreResult(
        succeeded=succeeded,
        failed=failed,
        restored_count=len(succeeded),
        failed_ids=[f.id for f in failed],
    )


async def bulk_permanent_delete(
    session: AsyncSession,
    product_ids: Sequence[uuid.UUID],
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> BulkDeleteResult:
    ids = _require_ids(product_ids)
    pending = 0

    async def _delete(pid: uuid.UUID) -> None:
        nonlocal pending
        pending += await permanent_delete(session, pid, user_id, store_id, actor=actor)

    succeeded, failed = await _run_batch(ids, _delete, "deleted")
    return BulkDeleteResult(
        succeeded=succeeded,
        failed=failed,
        deleted_count=len(succeeded),
        failed_ids=[f.id for f in failed],
        assets_pending=pending,
    )


async def bulk_move_to_trash(
    session: AsyncSession,
    product_ids: Sequence[uuid.UUID],
    user_id: uuid.UUID,
    store_id: uuid.UUID | None = None,
    *,
    actor: User | None = None,
) -> BulkTrashResult:
    ids = _require_ids(product_ids)
    succeeded, failed = await _run_batch(
        ids,
        lambda pid: move_to_trash(session, pid, user_id, store_id, actor=actor),
        "moved to trash",
    )
    return BulkTrashResult(
        succeeded=succeeded,
        failed=failed,
        trashed_count=len(succeeded),
        failed_ids=[f.id for f in failed],
    )


async def empty_trash(
    session: AsyncSession,
    store_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    days: int | None = None,
    *,
    actor: User | None = None,
) -> EmptyTrashResult:
    """Permanently delete a store's trashed products older than ``days`` (default: retention setting)."""
    days = settings.trash_retention_days if days is None else days
    if days < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="days must be zero or greater")
    store = await stores_service.get_store(session, store_id)
    if actor is not None:
        stores_service.ensure_can_manage(store, actor)
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    ids = list(
        (
            await session.execute(
                select(Product.id).where(
                    Product.store_id == store_id,
                    Product.is_deleted.is_(True),
                    Product.deleted_at <= cutoff,
                )
            )
        ).scalars()
    )
    if not ids:
        return EmptyTrashResult(deleted_count=0, deleted_ids=[])
    try:
        queued = await _purge(session, ids)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    pending = await _finish_purge(session, ids, queued)
    logger.info(
        "trash_emptied",
        extra={
            "store_id": str(store_id),
            "user_id": str(user_id) if user_id else None,
            "deleted_count": len(ids),
            "days": days,
            "assets_pending": pending,
        },
    )
    return EmptyTrashResult(deleted_count=len(ids), deleted_ids=ids, assets_pending=pending)


async def list_trash(
    session: AsyncSession,
    store_id: uuid.UUID | None = None,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    category: str | None = None,
) -> tuple[list[Product], PaginationMeta]:
    query = select(Product).where(Product.is_deleted.is_(True)).order_by(Product.deleted_at.desc(), Product.id)
    if store_id:
        await stores_service.get_store(session, store_id)
        query = query.where(Product.store_id == store_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.where(Product.name.ilike(like) | Product.slug.ilike(like))
    if category:
        query = query.where(Product.category.ilike(f"%{category}%"))
    return await paginate(session, query, page, limit, Product.id)


async def trash_stats(session: AsyncSession, store_id: uuid.UUID | None = None) -> TrashStats:
    scope = [Product.is_deleted.is_(True)]
    if store_id:
        await stores_service.get_store(session, store_id)
        scope.append(Product.store_id == store_id)
    retention = settings.trash_retention_days
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention)
    total = await session.scalar(select(func.count(Product.id)).where(*scope)) or 0
    eligible = await session.scalar(select(func.count(Product.id)).where(*scope, Product.deleted_at <= cutoff)) or 0
    oldest, newest = (
        await session.execute(select(func.min(Product.deleted_at), func.max(Product.deleted_at)).where(*scope))
    ).one()
    rows = await session.execute(
        select(Product.category, func.count(Product.id))
        .where(*scope)
        .group_by(Product.category)
        .order_by(func.count(Product.id).desc())
    )
    return TrashStats(
        total=total,
        eligible_for_purge=eligible,
        retention_days=retention,
        oldest_deleted_at=oldest,
        newest_deleted_at=newest,
        by_category=[CategoryCount(category=row[0], count=row[1]) for row in rows],
    )
