import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.base import Base
from app.db.session import get_session
from app.main import app
from app.models.catalog import Product
from app.models.user import User, UserRole


@pytest.fixture
def test_app() -> Dict[str, object]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield {"client": client, "session_factory": SessionLocal}
    client.close()
    app.dependency_overrides.clear()


def _register(client: TestClient, email: str) -> dict[str, str]:
    res = client.post("/api/v1/auth/register", json={"email": email, "password": "password1"})
    assert res.status_code == 201, res.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {res.json()['tokens']['access_token']}"}


def _promote(session_factory, email: str) -> None:
    async def promote() -> None:
        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == email))).scalar_one()
            user.role = UserRole.admin
            await session.commit()

    asyncio.run(promote())


def _create_store(client: TestClient, headers: dict[str, str], name: str = "Mug House") -> str:
    res = client.post("/api/v1/stores", json={"name": name, "city": "Cluj"}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["id"]


def _create_product(client: TestClient, headers: dict[str, str], store_id: str, slug: str, **extra) -> dict:
    payload = {"store_id": store_id, "name": slug.replace("-", " ").title(), "slug": slug, **extra}
    res = client.post("/api/v1/products", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def test_product_crud_and_listing(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner = _register(client, "owner@example.com")
    stranger = _register(client, "stranger@example.com")
    store_id = _create_store(client, owner)

    res = client.post(
        "/api/v1/products", json={"store_id": store_id, "name": "Mug", "slug": "mug"}, headers=stranger
    )
    assert res.status_code == 403

    mug = _create_product(client, owner, store_id, "blue-mug", category="mugs", brand="Acme")
    _create_product(client, owner, store_id, "red-cup", category="cups", status="DRAFT")
    assert mug["status"] == "ACTIVE"
    assert mug["is_deleted"] is False
    assert mug["store"]["id"] == store_id

    res = client.post("/api/v1/products", json={"store_id": store_id, "name": "Dup", "slug": "blue-mug"}, headers=owner)
    assert res.status_code == 400

    res = client.get("/api/v1/products", params={"limit": 1})
    assert res.status_code == 200
    body = res.json()
    assert len(body["data"]) == 1
    assert body["pagination"] == {"total": 2, "page": 1, "limit": 1, "pages": 2}

    assert client.get("/api/v1/products/slug/blue-mug").json()["id"] == mug["id"]
    assert client.get("/api/v1/products/category/mugs").json()["pagination"]["total"] == 1
    assert client.get("/api/v1/products/brand/acme").json()["pagination"]["total"] == 1
    assert client.get("/api/v1/products/status/DRAFT").json()["pagination"]["total"] == 1
    assert client.get("/api/v1/products/search", params={"q": "cup"}).json()["pagination"]["total"] == 1
    assert client.get(f"/api/v1/products/store/{store_id}").json()["pagination"]["total"] == 2

    res = client.patch(f"/api/v1/products/{mug['id']}", json={"name": "Big Blue Mug"}, headers=owner)
    assert res.status_code == 200
    assert res.json()["name"] == "Big Blue Mug"

    res = client.patch(f"/api/v1/products/{mug['id']}", json={"status": "DELETED"}, headers=owner)
    assert res.status_code == 400

    res = client.patch(f"/api/v1/products/{mug['id']}", json={"name": "Mine"}, headers=stranger)
    assert res.status_code == 403


def test_slug_is_unique_across_stores(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    first_owner = _register(client, "first@example.com")
    second_owner = _register(client, "second@example.com")
    first_store = _create_store(client, first_owner, "First Shop")
    second_store = _create_store(client, second_owner, "Second Shop")
    _create_product(client, first_owner, first_store, "travel-mug")

    res = client.post(
        "/api/v1/products",
        json={"store_id": second_store, "name": "Travel Mug", "slug": "travel-mug"},
        headers=second_owner,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Product slug must be unique"
    assert client.get(f"/api/v1/products/store/{second_store}").json()["pagination"]["total"] == 0


def test_variants_keep_inventory_in_sync(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner = _register(client, "owner@example.com")
    store_id = _create_store(client, owner)
    product = _create_product(client, owner, store_id, "mug")

    res = client.post(
        f"/api/v1/products/{product['id']}/variants",
        json={"name": "Large", "sku": "MUG-L", "price": 12.5, "stock": 4},
        headers=owner,
    )
    assert res.status_code == 201, res.text
    variant = res.json()
    assert variant["inventory"]["quantity_in_stock"] == 4

    res = client.patch(f"/api/v1/products/variants/{variant['id']}", json={"stock": 9}, headers=owner)
    assert res.status_code == 200
    assert res.json()["stock"] == 9
    assert res.json()["inventory"]["quantity_in_stock"] == 9

    for field in ("price", "name", "stock"):
        res = client.patch(f"/api/v1/products/variants/{variant['id']}", json={field: None}, headers=owner)
        assert res.status_code == 422, field
        assert res.json()["code"] == "validation_error"
    res = client.patch(f"/api/v1/products/variants/{variant['id']}", json={"compare_at_price": None}, headers=owner)
    assert res.status_code == 200

    res = client.post(
        f"/api/v1/products/{product['id']}/variants",
        json={"name": "Dup", "sku": "MUG-L", "price": 1},
        headers=owner,
    )
    assert res.status_code == 400


def test_trash_lifecycle_over_http(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner = _register(client, "owner@example.com")
    store_id = _create_store(client, owner)
    product = _create_product(client, owner, store_id, "mug")
    pid = product["id"]

    res = client.delete(f"/api/v1/products/{pid}", headers=owner)
    assert res.status_code == 200, res.text
    assert res.json()["status"] == "DELETED"
    assert res.json()["deleted_at"]

    assert client.get(f"/api/v1/products/{pid}").status_code == 404
    assert client.get(f"/api/v1/products/{pid}", params={"include_deleted": True}).status_code == 200
    assert client.get("/api/v1/products").json()["pagination"]["total"] == 0
    assert client.get("/api/v1/products/search", params={"q": "mug"}).json()["pagination"]["total"] == 0

    # Trashed products cannot be edited.
    res = client.patch(f"/api/v1/products/{pid}", json={"name": "Edited"}, headers=owner)
    assert res.status_code == 400

    res = client.get(f"/api/v1/products/trash/{store_id}", headers=owner)
    assert res.status_code == 200
    assert [p["id"] for p in res.json()["data"]] == [pid]

    res = client.get(f"/api/v1/products/trash/{store_id}/stats", headers=owner)
    assert res.json()["total"] == 1

    res = client.patch(f"/api/v1/products/{pid}/restore", headers=owner)
    assert res.status_code == 200
    assert res.json()["status"] == "DRAFT"
    assert res.json()["is_deleted"] is False

    res = client.delete(f"/api/v1/products/{pid}/permanent", headers=owner)
    assert res.status_code == 400
    assert res.json()["detail"] == "Product must be in trash before permanent deletion. Use soft delete first"

    client.delete(f"/api/v1/products/{pid}", headers=owner)
    res = client.delete(f"/api/v1/products/{pid}/permanent", headers=owner)
    assert res.status_code == 200
    assert res.json() == {"id": pid, "assets_pending": 0}

    assert client.get(f"/api/v1/products/{pid}", params={"include_deleted": True}).status_code == 404


def test_trash_endpoints_enforce_ownership(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    SessionLocal = test_app["session_factory"]
    owner = _register(client, "owner@example.com")
    other = _register(client, "other@example.com")
    admin = _register(client, "admin@example.com")
    _promote(SessionLocal, "admin@example.com")
    store_id = _create_store(client, owner)
    other_store = _create_store(client, other, "Other")
    pid = _create_product(client, owner, store_id, "mug")["id"]

    assert client.delete(f"/api/v1/products/{pid}", headers=other).status_code == 403
    res = client.delete(f"/api/v1/products/{pid}", params={"store_id": other_store}, headers=owner)
    assert res.status_code == 403
    assert res.json()["detail"] == "Product does not belong to this store"

    assert client.get(f"/api/v1/products/trash/{store_id}", headers=other).status_code == 403
    assert client.delete(f"/api/v1/products/trash/{store_id}/empty", headers=other).status_code == 403

    assert client.delete(f"/api/v1/products/{pid}", headers=admin).status_code == 200
    assert client.get(f"/api/v1/products/trash/{store_id}", headers=admin).status_code == 200


def test_bulk_trash_endpoints_report_partial_results(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner = _register(client, "owner@example.com")
    store_id = _create_store(client, owner)
    a = _create_product(client, owner, store_id, "a-item")["id"]
    b = _create_product(client, owner, store_id, "b-item")["id"]

    res = client.post("/api/v1/products/bulk-delete", json={"ids": [a]}, headers=owner)
    assert res.status_code == 200
    assert res.json()["trashed_count"] == 1

    res = client.post("/api/v1/products/trash/bulk-restore", json={"product_ids": [a, b]}, headers=owner)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["restored_count"] == 1
    assert body["failed_ids"] == [b]

    res = client.post("/api/v1/products/trash/bulk-delete", json={"product_ids": [a, b]}, headers=owner)
    assert res.status_code == 400
    assert res.json()["detail"]["message"] == "No products were deleted"

    client.delete(f"/api/v1/products/{a}", headers=owner)
    res = client.post(
        "/api/v1/products/trash/bulk-delete", json={"product_ids": [a, b], "store_id": store_id}, headers=owner
    )
    assert res.status_code == 200
    assert res.json()["deleted_count"] == 1
    assert res.json()["failed_ids"] == [b]

    res = client.post("/api/v1/products/trash/bulk-restore", json={"product_ids": []}, headers=owner)
    assert res.status_code == 400
    assert res.json()["detail"] == "Product IDs array is required"


def test_empty_trash_endpoint(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    SessionLocal = test_app["session_factory"]
    owner = _register(client, "owner@example.com")
    store_id = _create_store(client, owner)
    old = _create_product(client, owner, store_id, "old")["id"]
    fresh = _create_product(client, owner, store_id, "fresh")["id"]
    client.delete(f"/api/v1/products/{old}", headers=owner)
    client.delete(f"/api/v1/products/{fresh}", headers=owner)

    async def age_old() -> None:
        async with SessionLocal() as session:
            product = (await session.execute(select(Product).where(Product.slug == "old"))).scalar_one()
            product.mark_deleted(by=product.deleted_by, at=datetime.now(timezone.utc) - timedelta(days=45))
            await session.commit()

    asyncio.run(age_old())

    res = client.delete(f"/api/v1/products/trash/{store_id}/empty", headers=owner)
    assert res.status_code == 200, res.text
    assert res.json()["deleted_count"] == 1
    assert res.json()["deleted_ids"] == [old]

    res = client.delete(f"/api/v1/products/trash/{store_id}/empty", params={"days": -1}, headers=owner)
    assert res.status_code == 400

    res = client.delete(f"/api/v1/products/trash/{store_id}/empty", params={"days": 0}, headers=owner)
    assert res.json()["deleted_ids"] == [fresh]


def test_admin_bulk_status_skips_trashed(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    SessionLocal = test_app["session_factory"]
    owner = _register(client, "owner@example.com")
    admin = _register(client, "admin@example.com")
    _promote(SessionLocal, "admin@example.com")
    store_id = _create_store(client, owner)
    a = _create_product(client, owner, store_id, "a-item")["id"]
    b = _create_product(client, owner, store_id, "b-item")["id"]
    client.delete(f"/api/v1/products/{b}", headers=owner)

    payload = {"ids": [a, b], "status": "INACTIVE"}
    assert client.patch("/api/v1/products/bulk-status", json=payload, headers=owner).status_code == 403
    res = client.patch("/api/v1/products/bulk-status", json=payload, headers=admin)
    assert res.status_code == 200
    assert res.json() == {"updated_count": 1}

    res = client.patch("/api/v1/products/bulk-status", json={"ids": [a], "status": "DELETED"}, headers=admin)
    assert res.status_code == 400

    stats = client.get("/api/v1/products/stats", params={"store_id": store_id}).json()
    assert stats["total_products"] == 1
    assert stats["deleted_products"] == 1
    assert stats["active_products"] == 0


def test_reviews_and_popular(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner = _register(client, "owner@example.com")
    buyer = _register(client, "buyer@example.com")
    store_id = _create_store(client, owner)
    quiet = _create_product(client, owner, store_id, "quiet")["id"]
    loud = _create_product(client, owner, store_id, "loud")["id"]

    res = client.post(f"/api/v1/products/{loud}/reviews", json={"rating": 5, "title": "Great"}, headers=buyer)
    assert res.status_code == 201
    assert client.get(f"/api/v1/products/{loud}/reviews").json()["pagination"]["total"] == 1

    res = client.post("/api/v1/comments", json={"product_id": loud, "title": "Hi", "comment": "Nice", "rating": 4}, headers=buyer)
    assert res.status_code == 201

    popular = client.get(f"/api/v1/products/popular/{store_id}").json()
    assert [p["id"] for p in popular] == [loud, quiet]
