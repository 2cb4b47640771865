from typing import Any

from pydantic import BaseModel

from app.schemas.trash import BatchFailure


class ErrorResponse(BaseModel):
    """Body of every error response; ``code`` is set for errors raised outside route handlers."""

    detail: Any
    code: str | None = None


class BatchErrorDetail(BaseModel):
    """``detail`` of a batch lifecycle call in which no product succeeded."""

    message: str
    failed: list[BatchFailure]
