from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from fastapi import FastAPI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.asset import AssetDeletion
from app.services import assets

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    deleted: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)

    @property
    def pending(self) -> int:
        return len(self.failed)


async def queue_asset_deletions(session: AsyncSession, asset_ids: Iterable[str | None], source: str) -> list[str]:
    """Record remote assets to delete. Joins the caller's transaction; nothing is committed here."""
    unique_ids = sorted({asset_id for asset_id in asset_ids if asset_id})
    if not unique_ids:
        return []
    already = set(
        (await session.execute(select(AssetDeletion.asset_id).where(AssetDeletion.asset_id.in_(unique_ids)))).scalars()
    )
    session.add_all(AssetDeletion(asset_id=asset_id, source=source) for asset_id in unique_ids if asset_id not in already)
    return unique_ids


async def process_asset_deletions(
    session: AsyncSession,
    asset_ids: Iterable[str] | None = None,
    max_attempts: int | None = None,
) -> ReconcileResult:
    """Try to delete queued assets from the host; successes leave the queue, failures are retried later."""
    query = select(AssetDeletion).order_by(AssetDeletion.created_at)
    if asset_ids is not None:
        ids = list(asset_ids)
        if not ids:
            return ReconcileResult()
        query = query.where(AssetDeletion.asset_id.in_(ids))
    else:
        query = query.where(AssetDeletion.attempts < (max_attempts or settings.asset_reconcile_max_attempts))
    rows = list((await session.execute(query)).scalars())
    result = ReconcileResult()
    if not rows:
        return result

    try:
        host = assets.get_asset_host()
        outcome = await host.delete_many(row.asset_id for row in rows)
        failures = dict(outcome.failed)
    except assets.AssetHostError as exc:
        failures = {row.asset_id: str(exc) for row in rows}

    now = datetime.now(timezone.utc)
    for row in rows:
        if row.asset_id in failures:
            row.attempts += 1
            row.last_error = failures[row.asset_id]
            row.last_attempt_at = now
            result.failed.append((row.asset_id, failures[row.asset_id]))
        else:
            await session.delete(row)
            result.deleted.append(row.asset_id)
    await session.commit()
    if result.failed:
        logger.warning("asset_deletions_pending", extra={"pending": result.pending, "deleted": len(result.deleted)})
    return result


async def reconcile_once() -> ReconcileResult:
    async with SessionLocal() as session:
        return await process_asset_deletions(session)


async def _reconcile_loop(stop: asyncio.Event) -> None:
    interval = max(30, int(settings.asset_reconcile_interval_seconds))
    while not stop.is_set():
        try:
            result = await reconcile_once()
            if result.deleted:
                logger.info("asset_reconcile_deleted", extra={"deleted": len(result.deleted)})
        except asyncio.CancelledError:
            break
        except Exception as exc:
            logger.warning("asset_reconcile_failed", extra={"error": str(exc)})

        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)


def start(app: FastAPI) -> None:
    if not settings.asset_reconcile_enabled:
        return
    if getattr(app.state, "asset_reconcile_task", None) is not None:
        return
    stop_event = asyncio.Event()
    app.state.asset_reconcile_stop = stop_event
    app.state.asset_reconcile_task = asyncio.create_task(_reconcile_loop(stop_event))


async def stop(app: FastAPI) -> None:
    stop_event = getattr(app.state, "asset_reconcile_stop", None)
    task = getattr(app.state, "asset_reconcile_task", None)
    if stop_event:
        stop_event.set()
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    app.state.asset_reconcile_stop = None
    app.state.asset_reconcile_task = None
