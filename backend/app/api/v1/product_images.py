from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, require_admin
from app.db.session import get_session
from app.models.catalog import ProductImage
from app.models.user import User
from app.schemas.catalog import ProductImageRead
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.schemas.product_image import ProductImageCreate, ProductImageStats, ProductImageUpdate, ReorderImagesRequest
from app.services import catalog as catalog_service
from app.services import product_images as images_service

router = APIRouter(prefix="/product-images", tags=["product-images"])


async def _ensure_manages(session: AsyncSession, product_id: UUID, user: User) -> None:
    product = await catalog_service.get_product(session, product_id, include_deleted=True)
    catalog_service.ensure_can_manage_product(product, user)


@router.post("/upload", response_model=ProductImageRead, status_code=status.HTTP_201_CREATED)
async def upload_image(
    product_id: UUID = Form(...),
    file: UploadFile = File(...),
    alt_text: str | None = Form(default=None),
    position: int | None = Form(default=None, ge=0),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductImage:
    await _ensure_manages(session, product_id, current_user)
    return await images_service.upload_image(session, product_id, file, alt_text, position)


@router.post("", response_model=ProductImageRead, status_code=status.HTTP_201_CREATED)
async def create_image(
    payload: ProductImageCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductImage:
    await _ensure_manages(session, payload.product_id, current_user)
    return await images_service.create_image(session, payload)


@router.get("", response_model=Page[ProductImageRead])
async def list_images(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    product_id: UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await images_service.list_images(session, page, limit, product_id)
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=ProductImageStats)
async def image_stats(session: AsyncSession = Depends(get_session)) -> ProductImageStats:
    return await images_service.image_stats(session)


@router.post("/bulk-delete", response_model=DeletedCount)
async def bulk_delete_images(
    payload: BulkIdsRequest,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    return DeletedCount(deleted_count=await images_service.delete_images(session, payload.ids))


@router.get("/product/{product_id}", response_model=Page[ProductImageRead])
async def list_product_images(
    product_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await images_service.list_product_images(session, product_id, page, limit)
    return {"data": items, "pagination": meta}


@router.get("/product/{product_id}/all", response_model=list[ProductImageRead])
async def all_product_images(product_id: UUID, session: AsyncSession = Depends(get_session)) -> list[ProductImage]:
    return await images_service.all_product_images(session, product_id)


@router.patch("/product/{product_id}/reorder", response_model=list[ProductImageRead])
async def reorder_images(
    product_id: UUID,
    payload: ReorderImagesRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProductImage]:
    await _ensure_manages(session, product_id, current_user)
    return await images_service.reorder_images(session, product_id, payload.image_ids)


@router.delete("/product/{product_id}", response_model=DeletedCount)
async def delete_product_images(
    product_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> DeletedCount:
    await _ensure_manages(session, product_id, current_user)
    return DeletedCount(deleted_count=await images_service.delete_product_images(session, product_id))


@router.get("/{image_id}", response_model=ProductImageRead)
async def get_image(image_id: UUID, session: AsyncSession = Depends(get_session)) -> ProductImage:
    return await images_service.get_image(session, image_id)


@router.patch("/{image_id}", response_model=ProductImageRead)
async def update_image(
    image_id: UUID,
    payload: ProductImageUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductImage:
    image = await images_service.get_image(session, image_id)
    await _ensure_manages(session, image.product_id, current_user)
    return await images_service.update_image(session, image_id, payload)


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    image = await images_service.get_image(session, image_id)
    await _ensure_manages(session, image.product_id, current_user)
    await images_service.delete_image(session, image_id)
