import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Inventory, Product, ProductStatus, ProductVariant, Review
from app.models.comment import Comment
from app.models.user import User
from app.schemas.catalog import (
    ProductCreate,
    ProductStats,
    ProductUpdate,
    ProductVariantCreate,
    ProductVariantUpdate,
    ReviewCreate,
    StatusCount,
)
from app.schemas.common import PaginationMeta
from app.services import stores as stores_service
from app.services.pagination import paginate

logger = logging.getLogger(__name__)


def ensure_can_manage_product(product: Product, user: User) -> None:
    if not user.can_manage(product.store.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not own this product's store")


async def get_product(session: AsyncSession, product_id: uuid.UUID, include_deleted: bool = False) -> Product:
    result = await session.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    product = result.scalar_one_or_none()
    if not product or (product.is_deleted and not include_deleted):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def get_product_by_slug(session: AsyncSession, slug: str) -> Product:
    product = await session.scalar(select(Product).where(Product.slug == slug, Product.is_deleted.is_(False)))
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def ensure_slug_unique(session: AsyncSession, slug: str, exclude_id: uuid.UUID | None = None) -> None:
    # Trashed products keep their slug reserved until they are permanently deleted.
    query = select(Product.id).where(Product.slug == slug)
    if exclude_id:
        query = query.where(Product.id != exclude_id)
    if await session.scalar(query):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product slug must be unique")


async def create_product(session: AsyncSession, payload: ProductCreate) -> Product:
    await stores_service.get_store(session, payload.store_id)
    if payload.status == ProductStatus.DELETED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A new product cannot start in the trash")
    await ensure_slug_unique(session, payload.slug)
    product = Product(**payload.model_dump())
    session.add(product)
    await session.commit()
    logger.info("product_created", extra={"product_id": str(product.id), "store_id": str(product.store_id)})
    return await get_product(session, product.id)


def _search_clause(term: str, include_slug: bool = False):
    like = f"%{term}%"
    columns = [Product.name, Product.description, Product.brand, Product.category]
    if include_slug:
        columns.append(Product.slug)
    return or_(*(column.ilike(like) for column in columns))


def _price_clause(min_price: float | None, max_price: float | None):
    conditions = []
    if min_price is not None:
        conditions.append(ProductVariant.price >= min_price)
    if max_price is not None:
        conditions.append(ProductVariant.price <= max_price)
    return Product.variants.any(and_(*conditions)) if conditions else None


async def list_products(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    status_filter: ProductStatus | None = None,
    store_id: uuid.UUID | None = None,
    category: str | None = None,
    brand: str | None = None,
    include_deleted: bool = False,
) -> tuple[list[Product], PaginationMeta]:
    query = select(Product).order_by(Product.created_at.desc(), Product.id)
    if not include_deleted:
        query = query.where(Product.is_deleted.is_(False))
    if search:
        query = query.where(_search_clause(search))
    if status_filter:
        query = query.where(Product.status == status_filter)
    if store_id:
        query = query.where(Product.store_id == store_id)
    if category:
        query = query.where(Product.category.ilike(f"%{category}%"))
    if brand:
        query = query.where(Product.brand.ilike(f"%{brand}%"))
    return await paginate(session, query, page, limit, Product.id)


async def list_store_products(
    session: AsyncSession, store_id: uuid.UUID, page: int = 1, limit: int = 10, include_deleted: bool = False
) -> tuple[list[Product], PaginationMeta]:
    await stores_service.get_store(session, store_id)
    return await list_products(session, page, limit, store_id=store_id, include_deleted=include_deleted)


async def search_products(
    session: AsyncSession,
    term: str,
    page: int = 1,
    limit: int = 10,
    store_id: uuid.UUID | None = None,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    include_deleted: bool = False,
) -> tuple[list[Product], PaginationMeta]:
    term = (term or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query cannot be empty")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="min_price cannot exceed max_price")
    query = select(Product).where(_search_clause(term, include_slug=True)).order_by(Product.created_at.desc(), Product.id)
    if not include_deleted:
        query = query.where(Product.is_deleted.is_(False))
    if store_id:
        query = query.where(Product.store_id == store_id)
    if category:
        query = query.where(Product.category.ilike(f"%{category}%"))
    price_clause = _price_clause(min_price, max_price)
    if price_clause is not None:
        query = query.where(price_clause)
    return await paginate(session, query, page, limit, Product.id)


async def popular_products(session: AsyncSession, store_id: uuid.UUID, limit: int = 10) -> list[Product]:
    await stores_service.get_store(session, store_id)
    comment_counts = (
        select(Comment.product_id, func.count(Comment.id).label("comment_count"))
        .group_by(Comment.product_id)
        .subquery()
    )
    query = (
        select(Product)
        .outerjoin(comment_counts, comment_counts.c.product_id == Product.id)
        .where(
            Product.store_id == store_id,
            Product.is_deleted.is_(False),
            Product.status == ProductStatus.ACTIVE,
        )
        .order_by(func.coalesce(comment_counts.c.comment_count, 0).desc(), Product.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(query)
    return list(result.scalars())


async def update_product(session: AsyncSession, product: Product, payload: ProductUpdate) -> Product:
    if product.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is in trash; restore it first")
    data = payload.model_dump(exclude_unset=True)
    if data.get("status") == ProductStatus.DELETED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Use the trash endpoints to delete a product")
    if data.get("store_id") and data["store_id"] != product.store_id:
        await stores_service.get_store(session, data["store_id"])
    if data.get("slug") and data["slug"] != product.slug:
        await ensure_slug_unique(session, data["slug"], exclude_id=product.id)
    for field, value in data.items():
        if value is None and field in ("store_id", "name", "slug", "status"):
            continue
        setattr(product, field, value)
    await session.commit()
    return await get_product(session, product.id)


async def bulk_update_status(session: AsyncSession, ids: list[uuid.UUID], new_status: ProductStatus) -> int:
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No product ids provided")
    if new_status == ProductStatus.DELETED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Use the trash endpoints to delete products")
    result = await session.execute(
        update(Product)
        .where(Product.id.in_(ids), Product.is_deleted.is_(False))
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0


async def product_stats(session: AsyncSession, store_id: uuid.UUID | None = None) -> ProductStats:
    scope = [Product.store_id == store_id] if store_id else []
    live = [*scope, Product.is_deleted.is_(False)]
    total = await session.scalar(select(func.count(Product.id)).where(*live)) or 0
    active = await session.scalar(
        select(func.count(Product.id)).where(*live, Product.status == ProductStatus.ACTIVE)
    ) or 0
    deleted = await session.scalar(select(func.count(Product.id)).where(*scope, Product.is_deleted.is_(True))) or 0
    rows = await session.execute(
        select(Product.status, func.count(Product.id)).where(*scope).group_by(Product.status).order_by(Product.status)
    )
    categories = await session.scalar(select(func.count(func.distinct(Product.category))).where(*live)) or 0
    brands = await session.scalar(select(func.count(func.distinct(Product.brand))).where(*live)) or 0
    return ProductStats(
        total_products=total,
        active_products=active,
        deleted_products=deleted,
        by_status=[StatusCount(status=row[0], count=row[1]) for row in rows],
        total_categories=categories,
        total_brands=brands,
    )


async def _ensure_sku_unique(session: AsyncSession, sku: str, exclude_id: uuid.UUID | None = None) -> None:
    query = select(ProductVariant.id).where(ProductVariant.sku == sku)
    if exclude_id:
        query = query.where(ProductVariant.id != exclude_id)
    if await session.scalar(query):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="SKU already exists")


async def add_variant(session: AsyncSession, product: Product, payload: ProductVariantCreate) -> ProductVariant:
    if product.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is in trash; restore it first")
    if payload.sku:
        await _ensure_sku_unique(session, payload.sku)
    variant = ProductVariant(product_id=product.id, **payload.model_dump())
    variant.inventory = Inventory(quantity_in_stock=payload.stock)
    session.add(variant)
    await session.commit()
    await session.refresh(variant)
    return variant


async def get_variant(session: AsyncSession, variant_id: uuid.UUID) -> ProductVariant:
    variant = await session.get(ProductVariant, variant_id)
    if not variant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found")
    return variant


async def update_variant(session: AsyncSession, variant: ProductVariant, payload: ProductVariantUpdate) -> ProductVariant:
    data = payload.model_dump(exclude_unset=True)
    if data.get("sku") and data["sku"] != variant.sku:
        await _ensure_sku_unique(session, data["sku"], exclude_id=variant.id)
    for field, value in data.items():
        setattr(variant, field, value)
    if "stock" in data and data["stock"] is not None:
        if variant.inventory is None:
            variant.inventory = Inventory(quantity_in_stock=data["stock"])
        else:
            variant.inventory.quantity_in_stock = data["stock"]
    await session.commit()
    await session.refresh(variant)
    return variant


async def add_review(session: AsyncSession, product: Product, user: User, payload: ReviewCreate) -> Review:
    review = Review(product_id=product.id, user_id=user.id, **payload.model_dump())
    session.add(review)
    await session.commit()
    await session.refresh(review)
    return review


async def list_reviews(
    session: AsyncSession, product_id: uuid.UUID, page: int = 1, limit: int = 10
) -> tuple[list[Review], PaginationMeta]:
    await get_product(session, product_id)
    query = select(Review).where(Review.product_id == product_id).order_by(Review.created_at.desc())
    return await paginate(session, query, page, limit, Review.id)
