from typing import Any

from sqlalchemy import Select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.common import PaginationMeta


async def paginate(
    session: AsyncSession, query: Select, page: int, limit: int, count_column: Any
) -> tuple[list[Any], PaginationMeta]:
    """Run ``query`` for one page and count the full result set with the same filters."""
    count_query = query.with_only_columns(func.count(func.distinct(count_column))).order_by(None)
    total = await session.scalar(count_query) or 0
    result = await session.execute(query.offset((page - 1) * limit).limit(limit))
    items = list(result.scalars().unique())
    return items, PaginationMeta.build(total, page, limit)
