from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BatchFailure(BaseModel):
    id: UUID
    status_code: int
    detail: str


class BatchResult(BaseModel):
    """Per-item outcome of a batch lifecycle operation."""

    succeeded: list[UUID] = []
    failed: list[BatchFailure] = []


class BulkRestoreResult(BatchResult):
    restored_count: int
    failed_ids: list[UUID]


class BulkDeleteResult(BatchResult):
    deleted_count: int
    failed_ids: list[UUID]
    assets_pending: int = 0


class BulkTrashResult(BatchResult):
    trashed_count: int
    failed_ids: list[UUID]


class TrashBulkRequest(BaseModel):
    product_ids: list[UUID] = Field(default_factory=list)
    store_id: UUID | None = None


class CategoryCount(BaseModel):
    category: str | None
    count: int


class TrashStats(BaseModel):
    total: int
    eligible_for_purge: int
    retention_days: int
    oldest_deleted_at: datetime | None = None
    newest_deleted_at: datetime | None = None
    by_category: list[CategoryCount] = []


class EmptyTrashResult(BaseModel):
    deleted_count: int
    deleted_ids: list[UUID]
    assets_pending: int = 0


class PermanentDeleteResult(BaseModel):
    id: UUID
    assets_pending: int = 0
