from uuid import UUID

from pydantic import BaseModel, Field

from app.models.catalog import ProductImageType


class ProductImageCreate(BaseModel):
    product_id: UUID
    image_url: str = Field(min_length=1, max_length=500)
    alt_text: str | None = Field(default=None, max_length=255)
    position: int | None = Field(default=None, ge=0)
    image_type: ProductImageType = ProductImageType.GALLERY


class ProductImageUpdate(BaseModel):
    image_url: str | None = Field(default=None, min_length=1, max_length=500)
    alt_text: str | None = Field(default=None, max_length=255)
    position: int | None = Field(default=None, ge=0)
    image_type: ProductImageType | None = None


class ReorderImagesRequest(BaseModel):
    image_ids: list[UUID] = Field(min_length=1)


class ProductImageStats(BaseModel):
    total_images: int
    products_with_images: int
