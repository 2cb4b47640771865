from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    product_id: UUID
    title: str = Field(min_length=1, max_length=200)
    comment: str = Field(min_length=1)
    rating: int = Field(default=0, ge=0, le=5)


class CommentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    comment: str | None = Field(default=None, min_length=1)
    rating: int | None = Field(default=None, ge=0, le=5)


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    product_id: UUID
    title: str
    comment: str
    rating: int
    created_at: datetime
    updated_at: datetime


class RatingCount(BaseModel):
    rating: int
    count: int


class CommentStats(BaseModel):
    total_comments: int
    average_rating: float
    products_with_comments: int
    users_with_comments: int
    comments_by_rating: list[RatingCount]
