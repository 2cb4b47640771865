import os
import uuid

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.db.session import SessionLocal, engine as app_engine
from app.main import app
from app.models.catalog import Product, ProductStatus


if os.environ.get("RUN_POSTGRES_INTEGRATION") != "1":
    pytest.skip("Postgres integration tests are opt-in", allow_module_level=True)

if not settings.database_url.startswith("postgresql"):
    pytest.skip("Postgres integration test requires DATABASE_URL pointing to Postgres", allow_module_level=True)


@pytest.fixture(autouse=True)
async def _dispose_engine_between_tests():
    yield
    await app_engine.dispose()


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.anyio
async def test_postgres_trash_lifecycle() -> None:
    transport = httpx.ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        email = f"pg-{uuid.uuid4().hex[:8]}@example.com"
        register = await client.post("/api/v1/auth/register", json={"email": email, "password": "supersecret"})
        assert register.status_code == 201, register.text
        headers = auth_headers(register.json()["tokens"]["access_token"])

        store = await client.post("/api/v1/stores", json={"name": f"PG {email}"}, headers=headers)
        assert store.status_code == 201, store.text
        slug = f"pg-mug-{uuid.uuid4().hex[:8]}"
        product = await client.post(
            "/api/v1/products", json={"store_id": store.json()["id"], "name": "PG Mug", "slug": slug}, headers=headers
        )
        assert product.status_code == 201, product.text
        product_id = product.json()["id"]

        assert (await client.delete(f"/api/v1/products/{product_id}", headers=headers)).status_code == 200
        async with SessionLocal() as session:
            stored = await session.scalar(select(Product).where(Product.id == uuid.UUID(product_id)))
            assert stored is not None
            assert stored.is_deleted is True
            assert stored.status == ProductStatus.DELETED
            assert stored.deleted_at is not None

            with pytest.raises(IntegrityError):
                await session.execute(
                    text("UPDATE products SET deleted_at = NULL WHERE id = :id"), {"id": uuid.UUID(product_id)}
                )
            await session.rollback()

        restored = await client.patch(f"/api/v1/products/{product_id}/restore", headers=headers)
        assert restored.status_code == 200, restored.text
        assert restored.json()["status"] == "DRAFT"

        await client.delete(f"/api/v1/products/{product_id}", headers=headers)
        purged = await client.delete(f"/api/v1/products/{product_id}/permanent", headers=headers)
        assert purged.status_code == 200, purged.text
        async with SessionLocal() as session:
            assert await session.get(Product, uuid.UUID(product_id)) is None
