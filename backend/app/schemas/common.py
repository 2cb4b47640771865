import math
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

T = TypeVar("T")


def reject_null(value):
    """For PATCH fields backed by NOT NULL columns: omitting them is fine, sending null is not."""
    if value is None:
        raise ValueError("Field may not be null")
    return value


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        return cls(total=total, page=page, limit=limit, pages=math.ceil(total / limit) if limit else 0)


class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: PaginationMeta


class BulkIdsRequest(BaseModel):
    ids: list[UUID] = Field(default_factory=list)


class DeletedCount(BaseModel):
    deleted_count: int


class MessageResponse(BaseModel):
    message: str
