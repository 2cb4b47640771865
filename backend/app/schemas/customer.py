from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.order import OrderStatus
from app.models.user import UserStatus
from app.schemas.common import reject_null


class CustomerCreate(BaseModel):
    user_id: UUID
    email: EmailStr
    username: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)
    address: str | None = None


class CustomerUpdate(BaseModel):
    email: EmailStr | None = None
    username: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)
    address: str | None = None

    @field_validator("email")
    @classmethod
    def _email_not_null(cls, value):
        return reject_null(value)


class CustomerUserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str | None = None
    status: UserStatus


class OrderBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    total_amount: float
    status: OrderStatus
    created_at: datetime


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    email: str
    username: str | None = None
    phone: str | None = None
    address: str | None = None
    user: CustomerUserBrief | None = None
    created_at: datetime
    updated_at: datetime


class CustomerDetail(CustomerRead):
    orders: list[OrderBrief] = []


class CustomerStats(BaseModel):
    total_customers: int
    customers_with_orders: int
    active_customers: int
    banned_customers: int
