from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductAttributeCreate(BaseModel):
    product_id: UUID
    attribute_name: str = Field(min_length=1, max_length=120)
    attribute_value: str = Field(min_length=1, max_length=255)


class ProductAttributeUpdate(BaseModel):
    product_id: UUID | None = None
    attribute_name: str | None = Field(default=None, min_length=1, max_length=120)
    attribute_value: str | None = Field(default=None, min_length=1, max_length=255)


class ProductAttributeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    attribute_name: str
    attribute_value: str
    created_at: datetime
    updated_at: datetime


class ProductAttributeStats(BaseModel):
    total_attributes: int
    products_with_attributes: int
    unique_attribute_names: int
