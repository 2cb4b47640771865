from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.store import StoreImageType
from app.schemas.common import reject_null


class StoreBase(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    description: str | None = None
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    state: str | None = Field(default=None, max_length=120)


class StoreCreate(StoreBase):
    pass


class StoreUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=160)
    description: str | None = None
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    state: str | None = Field(default=None, max_length=120)

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value):
        return reject_null(value)


class StoreImageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    image_type: StoreImageType
    image_url: str


class StoreRead(StoreBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    images: list[StoreImageRead] = []
    created_at: datetime
    updated_at: datetime


class StoreStats(BaseModel):
    total_stores: int
    stores_with_products: int
    total_products: int
