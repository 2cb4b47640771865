from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, require_admin
from app.db.session import get_session
from app.models.catalog import Product, ProductImage, ProductStatus, ProductVariant, Review
from app.models.user import User
from app.schemas.catalog import (
    BulkStatusResult,
    BulkStatusUpdate,
    ImageIdsRequest,
    ImageOrderRequest,
    ProductCreate,
    ProductImageRead,
    ProductImagesFromUrls,
    ProductRead,
    ProductStats,
    ProductUpdate,
    ProductVariantCreate,
    ProductVariantRead,
    ProductVariantUpdate,
    ReviewCreate,
    ReviewRead,
)
from app.schemas.common import BulkIdsRequest, DeletedCount, Page
from app.schemas.trash import (
    BulkDeleteResult,
    BulkRestoreResult,
    BulkTrashResult,
    EmptyTrashResult,
    PermanentDeleteResult,
    TrashBulkRequest,
    TrashStats,
)
from app.services import catalog as catalog_service
from app.services import product_images as images_service
from app.services import stores as stores_service
from app.services import trash as trash_service

router = APIRouter(prefix="/products", tags=["products"])


async def _managed_product(session: AsyncSession, product_id: UUID, user: User) -> Product:
    product = await catalog_service.get_product(session, product_id)
    catalog_service.ensure_can_manage_product(product, user)
    return product


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Product:
    store = await stores_service.get_store(session, payload.store_id)
    stores_service.ensure_can_manage(store, current_user)
    return await catalog_service.create_product(session, payload)


@router.get("", response_model=Page[ProductRead])
async def list_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = Query(default=None),
    status_filter: ProductStatus | None = Query(default=None, alias="status"),
    store_id: UUID | None = Query(default=None),
    category: str | None = Query(default=None),
    brand: str | None = Query(default=None),
    include_deleted: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_products(
        session,
        page,
        limit,
        search=search,
        status_filter=status_filter,
        store_id=store_id,
        category=category,
        brand=brand,
        include_deleted=include_deleted,
    )
    return {"data": items, "pagination": meta}


@router.get("/search", response_model=Page[ProductRead])
async def search_products(
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    store_id: UUID | None = Query(default=None),
    category: str | None = Query(default=None),
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
    include_deleted: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.search_products(
        session,
        q,
        page,
        limit,
        store_id=store_id,
        category=category,
        min_price=min_price,
        max_price=max_price,
        include_deleted=include_deleted,
    )
    return {"data": items, "pagination": meta}


@router.get("/stats", response_model=ProductStats)
async def product_stats(
    store_id: UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> ProductStats:
    return await catalog_service.product_stats(session, store_id)


@router.get("/store/{store_id}", response_model=Page[ProductRead])
async def list_store_products(
    store_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    include_deleted: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_store_products(session, store_id, page, limit, include_deleted)
    return {"data": items, "pagination": meta}


@router.get("/status/{product_status}", response_model=Page[ProductRead])
async def list_by_status(
    product_status: ProductStatus,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_products(
        session, page, limit, status_filter=product_status, include_deleted=product_status == ProductStatus.DELETED
    )
    return {"data": items, "pagination": meta}


@router.get("/category/{category}", response_model=Page[ProductRead])
async def list_by_category(
    category: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_products(session, page, limit, category=category)
    return {"data": items, "pagination": meta}


@router.get("/brand/{brand}", response_model=Page[ProductRead])
async def list_by_brand(
    brand: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_products(session, page, limit, brand=brand)
    return {"data": items, "pagination": meta}


@router.get("/slug/{slug}", response_model=ProductRead)
async def get_by_slug(slug: str, session: AsyncSession = Depends(get_session)) -> Product:
    return await catalog_service.get_product_by_slug(session, slug)


@router.get("/popular/{store_id}", response_model=list[ProductRead])
async def popular_products(
    store_id: UUID,
    limit: int = Query(default=10, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> list[Product]:
    return await catalog_service.popular_products(session, store_id, limit)


@router.patch("/bulk-status", response_model=BulkStatusResult)
async def bulk_update_status(
    payload: BulkStatusUpdate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> BulkStatusResult:
    updated = await catalog_service.bulk_update_status(session, payload.ids, payload.status)
    return BulkStatusResult(updated_count=updated)


@router.post("/bulk-delete", response_model=BulkTrashResult)
async def bulk_move_to_trash(
    payload: BulkIdsRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BulkTrashResult:
    return await trash_service.bulk_move_to_trash(session, payload.ids, current_user.id, actor=current_user)


@router.get("/trash/{store_id}", response_model=Page[ProductRead])
async def list_trash(
    store_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str | None = Query(default=None),
    category: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> dict:
    store = await stores_service.get_store(session, store_id)
    stores_service.ensure_can_manage(store, current_user)
    items, meta = await trash_service.list_trash(session, store_id, page, limit, search=search, category=category)
    return {"data": items, "pagination": meta}


@router.get("/trash/{store_id}/stats", response_model=TrashStats)
async def trash_stats(
    store_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> TrashStats:
    store = await stores_service.get_store(session, store_id)
    stores_service.ensure_can_manage(store, current_user)
    return await trash_service.trash_stats(session, store_id)


@router.delete("/trash/{store_id}/empty", response_model=EmptyTrashResult)
async def empty_trash(
    store_id: UUID,
    days: int | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> EmptyTrashResult:
    return await trash_service.empty_trash(session, store_id, current_user.id, days, actor=current_user)


@router.post("/trash/bulk-restore", response_model=BulkRestoreResult)
async def bulk_restore(
    payload: TrashBulkRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BulkRestoreResult:
    return await trash_service.bulk_restore(
        session, payload.product_ids, current_user.id, payload.store_id, actor=current_user
    )


@router.post("/trash/bulk-delete", response_model=BulkDeleteResult)
async def bulk_permanent_delete(
    payload: TrashBulkRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> BulkDeleteResult:
    return await trash_service.bulk_permanent_delete(
        session, payload.product_ids, current_user.id, payload.store_id, actor=current_user
    )


@router.patch("/images/{image_id}", response_model=ProductImageRead)
async def replace_image_file(
    image_id: UUID,
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductImage:
    image = await images_service.get_image(session, image_id)
    await _managed_product(session, image.product_id, current_user)
    return await images_service.replace_image_file(session, image_id, file)


@router.delete("/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> None:
    image = await images_service.get_image(session, image_id)
    await _managed_product(session, image.product_id, current_user)
    await images_service.delete_image(session, image_id)


@router.post("/images/delete-multiple", response_model=DeletedCount)
async def delete_multiple_images(
    payload: ImageIdsRequest,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> DeletedCount:
    deleted = await images_service.delete_images(session, payload.image_ids)
    return DeletedCount(deleted_count=deleted)


@router.patch("/variants/{variant_id}", response_model=ProductVariantRead)
async def update_variant(
    variant_id: UUID,
    payload: ProductVariantUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductVariant:
    variant = await catalog_service.get_variant(session, variant_id)
    await _managed_product(session, variant.product_id, current_user)
    return await catalog_service.update_variant(session, variant, payload)


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: UUID,
    include_deleted: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
) -> Product:
    return await catalog_service.get_product(session, product_id, include_deleted=include_deleted)


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Product:
    product = await catalog_service.get_product(session, product_id, include_deleted=True)
    catalog_service.ensure_can_manage_product(product, current_user)
    if payload.store_id and payload.store_id != product.store_id:
        target = await stores_service.get_store(session, payload.store_id)
        stores_service.ensure_can_manage(target, current_user)
    return await catalog_service.update_product(session, product, payload)


@router.delete("/{product_id}", response_model=ProductRead)
async def move_to_trash(
    product_id: UUID,
    store_id: UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Product:
    return await trash_service.move_to_trash(session, product_id, current_user.id, store_id, actor=current_user)


@router.patch("/{product_id}/restore", response_model=ProductRead)
async def restore_from_trash(
    product_id: UUID,
    store_id: UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Product:
    return await trash_service.restore_from_trash(session, product_id, current_user.id, store_id, actor=current_user)


@router.delete("/{product_id}/permanent", response_model=PermanentDeleteResult)
async def permanent_delete(
    product_id: UUID,
    store_id: UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> PermanentDeleteResult:
    pending = await trash_service.permanent_delete(session, product_id, current_user.id, store_id, actor=current_user)
    return PermanentDeleteResult(id=product_id, assets_pending=pending)


@router.post("/{product_id}/images/upload", response_model=list[ProductImageRead], status_code=status.HTTP_201_CREATED)
async def upload_product_images(
    product_id: UUID,
    files: list[UploadFile] = File(...),
    alt_text: str | None = Form(default=None),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProductImage]:
    await _managed_product(session, product_id, current_user)
    return await images_service.upload_images(session, product_id, files, alt_text)


@router.post("/{product_id}/images", response_model=list[ProductImageRead], status_code=status.HTTP_201_CREATED)
async def add_product_images(
    product_id: UUID,
    payload: ProductImagesFromUrls,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProductImage]:
    await _managed_product(session, product_id, current_user)
    return await images_service.add_images_from_urls(session, product_id, payload.images)


@router.patch("/{product_id}/images/reorder", response_model=list[ProductImageRead])
async def reorder_product_images(
    product_id: UUID,
    payload: ImageOrderRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProductImage]:
    await _managed_product(session, product_id, current_user)
    return await images_service.set_positions(session, product_id, payload.image_order)


@router.patch("/{product_id}/images/{image_id}/set-main", response_model=ProductImageRead)
async def set_main_image(
    product_id: UUID,
    image_id: UUID,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductImage:
    await _managed_product(session, product_id, current_user)
    return await images_service.set_main_image(session, product_id, image_id)


@router.post("/{product_id}/variants", response_model=ProductVariantRead, status_code=status.HTTP_201_CREATED)
async def add_variant(
    product_id: UUID,
    payload: ProductVariantCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProductVariant:
    product = await _managed_product(session, product_id, current_user)
    return await catalog_service.add_variant(session, product, payload)


@router.post("/{product_id}/reviews", response_model=ReviewRead, status_code=status.HTTP_201_CREATED)
async def add_review(
    product_id: UUID,
    payload: ReviewCreate,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Review:
    product = await catalog_service.get_product(session, product_id)
    return await catalog_service.add_review(session, product, current_user, payload)


@router.get("/{product_id}/reviews", response_model=Page[ReviewRead])
async def list_reviews(
    product_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> dict:
    items, meta = await catalog_service.list_reviews(session, product_id, page, limit)
    return {"data": items, "pagination": meta}
