import uuid

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product, ProductAttribute
from app.schemas.common import PaginationMeta
from app.schemas.product_attribute import ProductAttributeCreate, ProductAttributeStats, ProductAttributeUpdate
from app.services.pagination import paginate


async def _ensure_product(session: AsyncSession, product_id: uuid.UUID) -> None:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")


async def get_attribute(session: AsyncSession, attribute_id: uuid.UUID) -> ProductAttribute:
    attribute = await session.get(ProductAttribute, attribute_id)
    if not attribute:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product attribute not found")
    return attribute


async def create_attribute(session: AsyncSession, payload: ProductAttributeCreate) -> ProductAttribute:
    await _ensure_product(session, payload.product_id)
    attribute = ProductAttribute(**payload.model_dump())
    session.add(attribute)
    await session.commit()
    await session.refresh(attribute)
    return attribute


async def list_attributes(
    session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    product_id: uuid.UUID | None = None,
    attribute_name: str | None = None,
) -> tuple[list[ProductAttribute], PaginationMeta]:
    query = select(ProductAttribute).order_by(ProductAttribute.created_at.desc(), ProductAttribute.id)
    if product_id:
        query = query.where(ProductAttribute.product_id == product_id)
    if attribute_name:
        query = query.where(ProductAttribute.attribute_name.ilike(f"%{attribute_name}%"))
    return await paginate(session, query, page, limit, ProductAttribute.id)


async def search_attributes(
    session: AsyncSession, term: str, page: int = 1, limit: int = 10
) -> tuple[list[ProductAttribute], PaginationMeta]:
    term = (term or "").strip()
    if not term:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query cannot be empty")
    like = f"%{term}%"
    query = (
        select(ProductAttribute)
        .where(or_(ProductAttribute.attribute_name.ilike(like), ProductAttribute.attribute_value.ilike(like)))
        .order_by(ProductAttribute.created_at.desc(), ProductAttribute.id)
    )
    return await paginate(session, query, page, limit, ProductAttribute.id)


async def list_product_attributes(
    session: AsyncSession, product_id: uuid.UUID, page: int = 1, limit: int = 10
) -> tuple[list[ProductAttribute], PaginationMeta]:
    await _ensure_product(session, product_id)
    return await list_attributes(session, page, limit, product_id=product_id)


async def all_product_attributes(session: AsyncSession, product_id: uuid.UUID) -> list[ProductAttribute]:
    await _ensure_product(session, product_id)
    result = await session.execute(
        select(ProductAttribute)
        .where(ProductAttribute.product_id == product_id)
        .order_by(ProductAttribute.created_at, ProductAttribute.id)
    )
    return list(result.scalars())


async def update_attribute(
    session: AsyncSession, attribute_id: uuid.UUID, payload: ProductAttributeUpdate
) -> ProductAttribute:
    attribute = await get_attribute(session, attribute_id)
    data = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "product_id" in data and data["product_id"] != attribute.product_id:
        await _ensure_product(session, data["product_id"])
    for field, value in data.items():
        setattr(attribute, field, value)
    await session.commit()
    await session.refresh(attribute)
    return attribute


async def delete_attribute(session: AsyncSession, attribute_id: uuid.UUID) -> None:
    attribute = await get_attribute(session, attribute_id)
    await session.delete(attribute)
    await session.commit()


async def delete_product_attributes(session: AsyncSession, product_id: uuid.UUID) -> int:
    await _ensure_product(session, product_id)
    result = await session.execute(
        delete(ProductAttribute)
        .where(ProductAttribute.product_id == product_id)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0


async def bulk_delete_attributes(session: AsyncSession, ids: list[uuid.UUID]) -> int:
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No attribute ids provided")
    result = await session.execute(
        delete(ProductAttribute).where(ProductAttribute.id.in_(ids)).execution_options(synchronize_session=False)
    )
    await session.commit()
    if not result.rowcount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No attributes found")
    return result.rowcount


async def attribute_stats(session: AsyncSession) -> ProductAttributeStats:
    total = await session.scalar(select(func.count(ProductAttribute.id))) or 0
    products = await session.scalar(select(func.count(func.distinct(ProductAttribute.product_id)))) or 0
    names = await session.scalar(select(func.count(func.distinct(ProductAttribute.attribute_name)))) or 0
    return ProductAttributeStats(
        total_attributes=total, products_with_attributes=products, unique_attribute_names=names
    )
