from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, require_admin
from app.db.session import get_session
from app.models.catalog import ProductAttribute
from app.models.user import User
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.schemas.product_attribute import (
    ProductAttributeCreate,
    ProductAttributeRead,
    ProductAttributeStats,
    ProductAttributeUpdate,
)
from app.services import catalog as catalog_service
from app.services import product_attributes as attributes_service

router = APIRouter(prefix="/product-attributes", tags=["product-attributes"])


async def _ensure_manages(session: AsyncSession, product_id: UUID, user: User) -> None:
    product = await catalog_service.get_product(session, product_id, include_deleted=True)
    catalog_service.ensure_can_manage_product(product, user)


@router.post("", response_model=ProductAttributeRead, status_code=status.HTTP_201_CREATED)
async def create_attribute(
    payload: ProductAttributeCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductAttribute:
    await _ensure_manages(session, payload.product_id, current_user)
    return await attributes_service.create_attribute(session, payload)


@router.get("", response_model=Page[ProductAttributeRead])
async def list_attributes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    product_id: UUID | None = Query(default=None),
    attribute_name: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await attributes_service.list_attributes(session, page, limit, product_id, attribute_name)
    return {"data": items, "pagination": meta}


@router.get("/search", response_model=Page[ProductAttributeRead])
async def search_attributes(
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await attributes_service.search_attributes(session, q, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=ProductAttributeStats)
async def attribute_stats(session: AsyncSession = Depends(get_session)) -> ProductAttributeStats:
    return await attributes_service.attribute_stats(session)


@router.post("/bulk-delete", response_model=DeletedCount)
async def bulk_delete_attributes(
    payload: BulkIdsRequest,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    return DeletedCount(deleted_count=await attributes_service.bulk_delete_attributes(session, payload.ids))


@router.get("/product/{product_id}", response_model=Page[ProductAttributeRead])
async def list_product_attributes(
    product_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await attributes_service.list_product_attributes(session, product_id, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/product/{product_id}/all", response_model=list[ProductAttributeRead])
async def all_product_attributes(
    product_id: UUID, session: AsyncSession = Depends(get_session)
) -> list[ProductAttribute]:
    return await attributes_service.all_product_attributes(session, product_id)


@router.delete("/product/{product_id}", response_model=DeletedCount)
async def delete_product_attributes(
    product_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> DeletedCount:
    await _ensure_manages(session, product_id, current_user)
    return DeletedCount(deleted_count=await attributes_service.delete_product_attributes(session, product_id))


@router.get("/{attribute_id}", response_model=ProductAttributeRead)
async def get_attribute(attribute_id: UUID, session: AsyncSession = Depends(get_session)) -> ProductAttribute:
    return await attributes_service.get_attribute(session, attribute_id)


@router.patch("/{attribute_id}", response_model=ProductAttributeRead)
async def update_attribute(
    attribute_id: UUID,
    payload: ProductAttributeUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductAttribute:
    attribute = await attributes_service.get_attribute(session, attribute_id)
    await _ensure_manages(session, attribute.product_id, current_user)
    return await attributes_service.update_attribute(session, attribute_id, payload)


@router.delete("/{attribute_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attribute(
    attribute_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    attribute = await attributes_service.get_attribute(session, attribute_id)
    await _ensure_manages(session, attribute.product_id, current_user)
    await attributes_service.delete_attribute(session, attribute_id)
