import asyncio
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.ext import asyncio as sa_asyncio

from app.api.v1 import auth as auth_api
from app.core.config import settings

# Engines created during a test are disposed when it finishes.
_engines: list[sa_asyncio.AsyncEngine] = []
_create_async_engine = sa_asyncio.create_async_engine


def _recording_create_async_engine(*args, **kwargs):  # type: ignore[no-untyped-def]
    engine = _create_async_engine(*args, **kwargs)
    _engines.append(engine)
    return engine


sa_asyncio.create_async_engine = _recording_create_async_engine  # type: ignore[assignment]


async def _dispose(engines: list[sa_asyncio.AsyncEngine]) -> None:
    for engine in engines:
        try:
            await engine.dispose()
        except Exception:
            continue


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _dispose_engines() -> Iterator[None]:
    mark = len(_engines)
    yield
    created = _engines[mark:]
    del _engines[mark:]
    if not created:
        return
    try:
        asyncio.run(_dispose(created))
    except RuntimeError:
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(_dispose(created))
        finally:
            loop.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Iterator[None]:
    limiters = (
        auth_api.login_rate_limit,
        auth_api.register_rate_limit,
        auth_api.refresh_rate_limit,
        auth_api.google_rate_limit,
    )
    for limiter in limiters:
        limiter.reset()
    yield
    for limiter in limiters:
        limiter.reset()


@pytest.fixture(autouse=True)
def _local_media(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    media_root = tmp_path / "media"
    media_root.mkdir()
    monkeypatch.setattr(settings, "media_root", str(media_root))
    monkeypatch.setattr(settings, "asset_backend", "local")
    monkeypatch.setattr(settings, "upload_generate_thumbnails", False)
    monkeypatch.setattr(settings, "asset_reconcile_enabled", False)
    return media_root
