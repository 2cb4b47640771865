from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.catalog import ProductImageType, ProductStatus
from app.schemas.common import reject_null


class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    slug: str = Field(min_length=1, max_length=160, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: str | None = None
    brand: str | None = Field(default=None, max_length=120)
    category: str | None = Field(default=None, max_length=120)


class ProductCreate(ProductBase):
    store_id: UUID
    status: ProductStatus = ProductStatus.ACTIVE


class ProductUpdate(BaseModel):
    store_id: UUID | None = None
    name: str | None = Field(default=None, min_length=1, max_length=160)
    slug: str | None = Field(default=None, min_length=1, max_length=160, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: str | None = None
    brand: str | None = Field(default=None, max_length=120)
    category: str | None = Field(default=None, max_length=120)
    status: ProductStatus | None = None


class BulkStatusUpdate(BaseModel):
    ids: list[UUID]
    status: ProductStatus


class InventoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quantity_in_stock: int


class ProductVariantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    price: float = Field(ge=0)
    compare_at_price: float | None = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)


class ProductVariantUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    sku: str | None = Field(default=None, min_length=1, max_length=64)
    price: float | None = Field(default=None, ge=0)
    compare_at_price: float | None = Field(default=None, ge=0)
    stock: int | None = Field(default=None, ge=0)

    @field_validator("name", "price", "stock")
    @classmethod
    def _not_null(cls, value):
        return reject_null(value)


class ProductVariantRead(ProductVariantCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    inventory: InventoryRead | None = None


class ProductImageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    image_url: str
    alt_text: str | None = None
    position: int
    image_type: ProductImageType
    width: int | None = None
    height: int | None = None
    file_size: int | None = None
    mimetype: str | None = None
    created_at: datetime


class ProductImageFromUrl(BaseModel):
    image_url: str = Field(min_length=1, max_length=500)
    alt_text: str | None = Field(default=None, max_length=255)
    position: int | None = Field(default=None, ge=0)
    image_type: ProductImageType = ProductImageType.GALLERY
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)
    file_size: int | None = Field(default=None, ge=0)
    mimetype: str | None = None


class ProductImagesFromUrls(BaseModel):
    images: list[ProductImageFromUrl] = Field(min_length=1, max_length=10)


class ImageOrderItem(BaseModel):
    id: UUID
    position: int = Field(ge=0)


class ImageOrderRequest(BaseModel):
    image_order: list[ImageOrderItem] = Field(min_length=1)


class ImageIdsRequest(BaseModel):
    image_ids: list[UUID] = Field(min_length=1)


class ProductAttributeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    attribute_name: str
    attribute_value: str


class StoreBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    status: ProductStatus
    is_deleted: bool
    deleted_at: datetime | None = None
    deleted_by: UUID | None = None
    created_at: datetime
    updated_at: datetime
    store: StoreBrief | None = None
    images: list[ProductImageRead] = []
    variants: list[ProductVariantRead] = []
    attributes: list[ProductAttributeBrief] = []


class StatusCount(BaseModel):
    status: ProductStatus
    count: int


class ProductStats(BaseModel):
    total_products: int
    active_products: int
    deleted_products: int
    by_status: list[StatusCount]
    total_categories: int
    total_brands: int


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    title: str | None = Field(default=None, max_length=160)
    body: str | None = None


class ReviewRead(ReviewCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    user_id: UUID
    created_at: datetime


class BulkStatusResult(BaseModel):
    updated_count: int
