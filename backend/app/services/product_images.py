import logging
import uuid
from typing import Sequence

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import Product, ProductImage, ProductImageType
from app.schemas.catalog import ImageOrderItem, ProductImageFromUrl
from app.schemas.common import PaginationMeta
from app.schemas.product_image import ProductImageCreate, ProductImageStats, ProductImageUpdate
from app.services import asset_reconcile, assets
from app.services.pagination import paginate

logger = logging.getLogger(__name__)

MAX_FILES_PER_UPLOAD = 10


def _folder(product_id: uuid.UUID) -> str:
    return f"products/{product_id}"


async def _get_live_product(session: AsyncSession, product_id: uuid.UUID) -> Product:
    product = await session.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if product.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is in trash; restore it first")
    return product


async def get_image(session: AsyncSession, image_id: uuid.UUID) -> ProductImage:
    image = await session.get(ProductImage, image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product image not found")
    return image


async def next_position(session: AsyncSession, product_id: uuid.UUID) -> int:
    last = await session.scalar(select(func.max(ProductImage.position)).where(ProductImage.product_id == product_id))
    return 0 if last is None else last + 1


async def _has_main(session: AsyncSession, product_id: uuid.UUID) -> bool:
    found = await session.scalar(
        select(ProductImage.id).where(
            ProductImage.product_id == product_id, ProductImage.image_type == ProductImageType.MAIN
        )
    )
    return found is not None


async def _demote_main(session: AsyncSession, product_id: uuid.UUID, keep_id: uuid.UUID | None = None) -> None:
    query = update(ProductImage).where(
        ProductImage.product_id == product_id, ProductImage.image_type == ProductImageType.MAIN
    )
    if keep_id:
        query = query.where(ProductImage.id != keep_id)
    await session.execute(query.values(image_type=ProductImageType.GALLERY).execution_options(synchronize_session="fetch"))


async def _promote_first_if_no_main(session: AsyncSession, product_ids: Sequence[uuid.UUID]) -> None:
    for product_id in set(product_ids):
        if await _has_main(session, product_id):
            continue
        first = await session.scalar(
            select(ProductImage)
            .where(ProductImage.product_id == product_id)
            .order_by(ProductImage.position, ProductImage.created_at)
            .limit(1)
        )
        if first:
            first.image_type = ProductImageType.MAIN


async def _add_image(
    session: AsyncSession,
    product_id: uuid.UUID,
    *,
    image_url: str,
    asset_id: str | None,
    alt_text: str | None,
    position: int | None,
    image_type: ProductImageType,
    width: int | None = None,
    height: int | None = None,
    file_size: int | None = None,
    mimetype: str | None = None,
) -> ProductImage:
    if image_type == ProductImageType.MAIN:
        await _demote_main(session, product_id)
    elif not await _has_main(session, product_id):
        image_type = ProductImageType.MAIN
    image = ProductImage(
        product_id=product_id,
        image_url=image_url,
        asset_id=asset_id,
        alt_text=alt_text,
        position=position if position is not None else await next_position(session, product_id),
        image_type=image_type,
        width=width,
        height=height,
        file_size=file_size,
        mimetype=mimetype,
    )
    session.add(image)
    await session.flush()
    return image


async def upload_images(
    session: AsyncSession, product_id: uuid.UUID, files: list[UploadFile], alt_text: str | None = None
) -> list[ProductImage]:
    await _get_live_product(session, product_id)
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"At most {MAX_FILES_PER_UPLOAD} files per upload"
        )
    uploaded = await assets.get_asset_host().upload_many(files, _folder(product_id))
    images = []
    for asset in uploaded:
        images.append(
            await _add_image(
                session,
                product_id,
                image_url=asset.url,
                asset_id=asset.asset_id,
                alt_text=alt_text,
                position=None,
                image_type=ProductImageType.GALLERY,
                width=asset.width,
                height=asset.height,
                file_size=asset.bytes,
                mimetype=asset.mimetype,
            )
        )
    await session.commit()
    for image in images:
        await session.refresh(image)
    logger.info("product_images_uploaded", extra={"product_id": str(product_id), "count": len(images)})
    return images


async def upload_image(
    session: AsyncSession,
    product_id: uuid.UUID,
    file: UploadFile,
    alt_text: str | None = None,
    position: int | None = None,
) -> ProductImage:
    await _get_live_product(session, product_id)
    asset = await assets.get_asset_host().upload_one(file, _folder(product_id))
    image = await _add_image(
        session,
        product_id,
        image_url=asset.url,
        asset_id=asset.asset_id,
        alt_text=alt_text,
        position=position,
        image_type=ProductImageType.GALLERY,
        width=asset.width,
        height=asset.height,
        file_size=asset.bytes,
        mimetype=asset.mimetype,
    )
    await session.commit()
    await session.refresh(image)
    return image


async def add_images_from_urls(
    session: AsyncSession, product_id: uuid.UUID, items: list[ProductImageFromUrl]
) -> list[ProductImage]:
    await _get_live_product(session, product_id)
    images = [
        await _add_image(session, product_id, asset_id=None, **item.model_dump())
        for item in items
    ]
    await session.commit()
    for image in images:
        await session.refresh(image)
    return images


async def create_image(session: AsyncSession, payload: ProductImageCreate) -> ProductImage:
    await _get_live_product(session, payload.product_id)
    data = payload.model_dump(exclude={"product_id"})
    image = await _add_image(session, payload.product_id, asset_id=None, **data)
    await session.commit()
    await session.refresh(image)
    return image


async def list_images(
    session: AsyncSession, page: int = 1, limit: int = 10, product_id: uuid.UUID | None = None
) -> tuple[list[ProductImage], PaginationMeta]:
    query = select(ProductImage).order_by(ProductImage.product_id, ProductImage.position, ProductImage.created_at)
    if product_id:
        query = query.where(ProductImage.product_id == product_id)
    return await paginate(session, query, page, limit, ProductImage.id)


async def list_product_images(
    session: AsyncSession, product_id: uuid.UUID, page: int = 1, limit: int = 10
) -> tuple[list[ProductImage], PaginationMeta]:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return await list_images(session, page, limit, product_id=product_id)


async def all_product_images(session: AsyncSession, product_id: uuid.UUID) -> list[ProductImage]:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    result = await session.execute(
        select(ProductImage)
        .where(ProductImage.product_id == product_id)
        .order_by(ProductImage.position, ProductImage.created_at)
    )
    return list(result.scalars())


async def update_image(session: AsyncSession, image_id: uuid.UUID, payload: ProductImageUpdate) -> ProductImage:
    image = await get_image(session, image_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("image_type") == ProductImageType.MAIN:
        await _demote_main(session, image.product_id, keep_id=image.id)
    queued: list[str] = []
    if data.get("image_url") and data["image_url"] != image.image_url and image.asset_id:
        # The hosted file is no longer referenced once the URL points elsewhere.
        queued = await asset_reconcile.queue_asset_deletions(session, [image.asset_id], source="product_image")
        data["asset_id"] = None
    for field, value in data.items():
        if value is not None or field in ("alt_text", "asset_id"):
            setattr(image, field, value)
    await session.flush()
    await _promote_first_if_no_main(session, [image.product_id])
    await session.commit()
    await asset_reconcile.process_asset_deletions(session, queued)
    await session.refresh(image)
    return image


async def replace_image_file(session: AsyncSession, image_id: uuid.UUID, file: UploadFile) -> ProductImage:
    image = await get_image(session, image_id)
    old_asset_id = image.asset_id
    asset = await assets.get_asset_host().upload_one(file, _folder(image.product_id))
    image.image_url = asset.url
    image.asset_id = asset.asset_id
    image.width = asset.width
    image.height = asset.height
    image.file_size = asset.bytes
    image.mimetype = asset.mimetype
    queued = await asset_reconcile.queue_asset_deletions(session, [old_asset_id], source="product_image")
    await session.commit()
    await asset_reconcile.process_asset_deletions(session, queued)
    await session.refresh(image)
    return image


async def _delete_where(session: AsyncSession, condition) -> tuple[int, int]:
    rows = (await session.execute(select(ProductImage.product_id, ProductImage.asset_id).where(condition))).all()
    if not rows:
        return 0, 0
    queued = await asset_reconcile.queue_asset_deletions(session, [row.asset_id for row in rows], source="product_image")
    await session.execute(delete(ProductImage).where(condition).execution_options(synchronize_session="fetch"))
    await _promote_first_if_no_main(session, [row.product_id for row in rows])
    await session.commit()
    outcome = await asset_reconcile.process_asset_deletions(session, queued)
    return len(rows), outcome.pending


async def delete_image(session: AsyncSession, image_id: uuid.UUID) -> int:
    await get_image(session, image_id)
    _, pending = await _delete_where(session, ProductImage.id == image_id)
    return pending


async def delete_images(session: AsyncSession, image_ids: list[uuid.UUID]) -> int:
    if not image_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No image ids provided")
    deleted, _ = await _delete_where(session, ProductImage.id.in_(image_ids))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No images found")
    return deleted


async def delete_product_images(session: AsyncSession, product_id: uuid.UUID) -> int:
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    deleted, _ = await _delete_where(session, ProductImage.product_id == product_id)
    return deleted


async def _images_of(session: AsyncSession, product_id: uuid.UUID, image_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, ProductImage]:
    result = await session.execute(
        select(ProductImage).where(ProductImage.id.in_(image_ids), ProductImage.product_id == product_id)
    )
    found = {image.id: image for image in result.scalars()}
    if len(found) != len(set(image_ids)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Some images do not belong to this product"
        )
    return found


async def set_positions(session: AsyncSession, product_id: uuid.UUID, order: list[ImageOrderItem]) -> list[ProductImage]:
    await _get_live_product(session, product_id)
    images = await _images_of(session, product_id, [item.id for item in order])
    for item in order:
        images[item.id].position = item.position
    await session.commit()
    return await all_product_images(session, product_id)


async def reorder_images(session: AsyncSession, product_id: uuid.UUID, image_ids: list[uuid.UUID]) -> list[ProductImage]:
    """Assign positions 0..n-1 following the order of ``image_ids``."""
    if not await session.get(Product, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    images = await _images_of(session, product_id, image_ids)
    for index, image_id in enumerate(image_ids):
        images[image_id].position = index
    await session.commit()
    return await all_product_images(session, product_id)


async def set_main_image(session: AsyncSession, product_id: uuid.UUID, image_id: uuid.UUID) -> ProductImage:
    await _get_live_product(session, product_id)
    image = (await _images_of(session, product_id, [image_id]))[image_id]
    await _demote_main(session, product_id, keep_id=image.id)
    image.image_type = ProductImageType.MAIN
    await session.commit()
    await session.refresh(image)
    return image


async def image_stats(session: AsyncSession) -> ProductImageStats:
    total = await session.scalar(select(func.count(ProductImage.id))) or 0
    products = await session.scalar(select(func.count(func.distinct(ProductImage.product_id)))) or 0
    return ProductImageStats(total_images=total, products_with_images=products)
