import logging
import uuid

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product
from app.models.store import Store, StoreImage, StoreImageType
from app.models.user import User, UserRole
from app.schemas.common import PaginationMeta
from app.schemas.store import StoreCreate, StoreStats, StoreUpdate
from app.services import asset_reconcile, assets
from app.services.pagination import paginate

logger = logging.getLogger(__name__)


async def get_store(session: AsyncSession, store_id: uuid.UUID) -> Store:
    store = await session.get(Store, store_id)
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    return store


def ensure_can_manage(store: Store, user: User) -> None:
    if not user.can_manage(store.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not own this store")


async def create_store(session: AsyncSession, owner: User, payload: StoreCreate) -> Store:
    existing = await session.scalar(select(Store.id).where(Store.user_id == owner.id))
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You already created a store")
    store = Store(user_id=owner.id, **payload.model_dump())
    session.add(store)
    if owner.role == UserRole.customer:
        owner.role = UserRole.seller
    await session.commit()
    await session.refresh(store)
    logger.info("store_created", extra={"store_id": str(store.id), "user_id": str(owner.id)})
    return store


def _search_clause(term: str, include_address: bool = False):
    like = f"%{term}%"
    columns = [Store.name, Store.description, Store.city, Store.state]
    if include_address:
        columns.append(Store.address)
    return or_(*(column.ilike(like) for column in columns))


async def list_stores(
    session: AsyncSession, page: int = 1, limit: int = 10, search: str | None = None
) -> tuple[list[Store], PaginationMeta]:
    query = select(Store).order_by(Store.created_at.desc())
    if search:
        query = query.where(_search_clause(search))
    return await paginate(session, query, page, limit, Store.id)


async def search_stores(session: AsyncSession, term: str, page: int = 1, limit: int = 10) -> tuple[list[Store], PaginationMeta]:
    term = (term or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query cannot be empty")
    query = select(Store).where(_search_clause(term, include_address=True)).order_by(Store.created_at.desc())
    return await paginate(session, query, page, limit, Store.id)


async def get_store_by_user(session: AsyncSession, user_id: uuid.UUID) -> Store:
    if not await session.get(User, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    store = await session.scalar(select(Store).where(Store.user_id == user_id))
    if not store:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found for this user")
    return store


async def update_store(session: AsyncSession, store: Store, payload: StoreUpdate) -> Store:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(store, field, value)
    await session.commit()
    await session.refresh(store)
    return store


async def set_store_image(session: AsyncSession, store: Store, image_type: StoreImageType, file: UploadFile) -> StoreImage:
    existing = next((img for img in store.images if img.image_type == image_type), None)
    uploaded = await assets.get_asset_host().upload_one(file, f"stores/{store.id}")
    queued: list[str] = []
    if existing:
        queued = await asset_reconcile.queue_asset_deletions(session, [existing.asset_id], source="store_image")
        existing.image_url = uploaded.url
        existing.asset_id = uploaded.asset_id
        image = existing
    else:
        image = StoreImage(store_id=store.id, image_type=image_type, image_url=uploaded.url, asset_id=uploaded.asset_id)
        session.add(image)
    await session.commit()
    await asset_reconcile.process_asset_deletions(session, queued)
    await session.refresh(store)
    return image


async def delete_store(session: AsyncSession, store: Store) -> None:
    has_products = await session.scalar(select(func.count(Product.id)).where(Product.store_id == store.id))
    if has_products:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Store still has products; delete them permanently first",
        )
    store_id = store.id
    queued = await asset_reconcile.queue_asset_deletions(
        session, [img.asset_id for img in store.images], source="store_image"
    )
    await session.delete(store)
    await session.commit()
    outcome = await asset_reconcile.process_asset_deletions(session, queued)
    logger.info("store_deleted", extra={"store_id": str(store_id), "assets_pending": outcome.pending})


async def bulk_delete_stores(session: AsyncSession, ids: list[uuid.UUID]) -> int:
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No store ids provided")
    found = list((await session.execute(select(Store.id).where(Store.id.in_(ids)))).scalars())
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No stores found")
    with_products = await session.scalar(select(func.count(Product.id)).where(Product.store_id.in_(found)))
    if with_products:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some stores still have products; delete them permanently first",
        )
    image_assets = list((await session.execute(select(StoreImage.asset_id).where(StoreImage.store_id.in_(found)))).scalars())
    queued = await asset_reconcile.queue_asset_deletions(session, image_assets, source="store_image")
    await session.execute(delete(StoreImage).where(StoreImage.store_id.in_(found)))
    result = await session.execute(delete(Store).where(Store.id.in_(found)))
    await session.commit()
    outcome = await asset_reconcile.process_asset_deletions(session, queued)
    logger.info("stores_bulk_deleted", extra={"count": len(found), "assets_pending": outcome.pending})
    return result.rowcount or 0


async def store_stats(session: AsyncSession) -> StoreStats:
    total_stores = await session.scalar(select(func.count(Store.id))) or 0
    with_products = await session.scalar(
        select(func.count(func.distinct(Product.store_id))).where(Product.is_deleted.is_(False))
    ) or 0
    total_products = await session.scalar(select(func.count(Product.id)).where(Product.is_deleted.is_(False))) or 0
    return StoreStats(total_stores=total_stores, stores_with_products=with_products, total_products=total_products)
