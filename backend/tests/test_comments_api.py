import asyncio
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.base import Base
from app.db.session import get_session
from app.main import app
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


def _register(client: TestClient, email: str) -> tuple[dict[str, str], str]:
    res = client.post("/api/v1/auth/register", json={"email": email, "password": "password1"})
    assert res.status_code == 201, res.text
    client.cookies.clear()
    body = res.json()
    return {"Authorization": f"Bearer {body['tokens']['access_token']}"}, body["user"]["id"]


def _promote(session_factory, email: str) -> None:
    async def run() -> None:
        async with session_factory() as session:
            user = (await session.execute(select(User).where(User.email == email))).scalar_one()
            user.role = UserRole.admin
            await session.commit()

    asyncio.run(run())


def _product(client: TestClient, headers: dict[str, str], slug: str) -> str:
    store = client.get("/api/v1/stores", params={"search": "Shop"}).json()["data"]
    if store:
        store_id = store[0]["id"]
    else:
        store_id = client.post("/api/v1/stores", json={"name": "Shop"}, headers=headers).json()["id"]
    res = client.post("/api/v1/products", json={"store_id": store_id, "name": slug.title(), "slug": slug}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["id"]


def _comment(client: TestClient, headers: dict[str, str], pid: str, rating: int, title: str = "Nice") -> dict:
    res = client.post(
        "/api/v1/comments",
        json={"product_id": pid, "title": title, "comment": f"{title} product", "rating": rating},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_comment_author_rules(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner, _ = _register(client, "owner@example.com")
    author, author_id = _register(client, "author@example.com")
    other, _ = _register(client, "other@example.com")
    admin, _ = _register(client, "admin@example.com")
    _promote(test_app["session_factory"], "admin@example.com")
    pid = _product(client, owner, "mug")

    res = client.post("/api/v1/comments", json={"product_id": pid, "title": "Hi", "comment": "x", "rating": 3})
    assert res.status_code == 401
    res = client.post("/api/v1/comments", json={"product_id": pid, "title": "Hi", "comment": "x", "rating": 9}, headers=author)
    assert res.status_code == 422

    comment = _comment(client, author, pid, 4)
    assert comment["user_id"] == author_id

    res = client.patch(f"/api/v1/comments/{comment['id']}", json={"title": "Hijacked"}, headers=other)
    assert res.status_code == 403
    assert res.json()["detail"] == "You can only modify your own comments"

    res = client.patch(f"/api/v1/comments/{comment['id']}", json={"rating": 5}, headers=author)
    assert res.status_code == 200
    assert res.json()["rating"] == 5
    assert res.json()["title"] == "Nice"

    assert client.delete(f"/api/v1/comments/{comment['id']}", headers=other).status_code == 403
    assert client.delete(f"/api/v1/comments/{comment['id']}", headers=admin).status_code == 204
    assert client.get(f"/api/v1/comments/{comment['id']}").status_code == 404


def test_comments_on_trashed_product_are_rejected(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner, _ = _register(client, "owner@example.com")
    author, _ = _register(client, "author@example.com")
    pid = _product(client, owner, "mug")
    client.delete(f"/api/v1/products/{pid}", headers=owner)

    res = client.post("/api/v1/comments", json={"product_id": pid, "title": "Hi", "comment": "x", "rating": 3}, headers=author)
    assert res.status_code == 404


def test_rating_filters_search_and_stats(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner, _ = _register(client, "owner@example.com")
    alice, alice_id = _register(client, "alice@example.com")
    bob, _ = _register(client, "bob@example.com")
    mug = _product(client, owner, "mug")
    cup = _product(client, owner, "cup")

    _comment(client, alice, mug, 5, "Great")
    _comment(client, alice, cup, 2, "Chipped")
    _comment(client, bob, mug, 4, "Solid")

    res = client.get("/api/v1/comments/rating", params={"min_rating": 4, "max_rating": 5})
    assert res.json()["pagination"]["total"] == 2
    assert client.get("/api/v1/comments/rating", params={"min_rating": 4}).status_code == 422
    assert client.get("/api/v1/comments/rating", params={"min_rating": 5, "max_rating": 1}).status_code == 400
    assert client.get("/api/v1/comments", params={"min_rating": 7}).status_code == 400

    assert client.get(f"/api/v1/comments/product/{mug}").json()["pagination"]["total"] == 2
    assert client.get(f"/api/v1/comments/user/{alice_id}").json()["pagination"]["total"] == 2
    res = client.get("/api/v1/comments/search", params={"q": "chip"})
    assert [c["title"] for c in res.json()["data"]] == ["Chipped"]
    assert client.get("/api/v1/comments/search", params={"q": ""}).status_code == 400

    stats = client.get("/api/v1/comments/stats").json()
    assert stats["total_comments"] == 3
    assert stats["average_rating"] == 3.7
    assert stats["products_with_comments"] == 2
    assert stats["users_with_comments"] == 2
    by_rating = {row["rating"]: row["count"] for row in stats["comments_by_rating"]}
    assert by_rating == {0: 0, 1: 0, 2: 1, 3: 0, 4: 1, 5: 1}


def test_admin_bulk_comment_deletes(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    owner, _ = _register(client, "owner@example.com")
    alice, alice_id = _register(client, "alice@example.com")
    admin, _ = _register(client, "admin@example.com")
    _promote(test_app["session_factory"], "admin@example.com")
    mug = _product(client, owner, "mug")
    cup = _product(client, owner, "cup")

    first = _comment(client, alice, mug, 5)
    _comment(client, alice, mug, 3)
    _comment(client, alice, cup, 1)
    _comment(client, owner, cup, 2)

    assert client.post("/api/v1/comments/bulk-delete", json={"ids": [first["id"]]}, headers=alice).status_code == 403
    res = client.post("/api/v1/comments/bulk-delete", json={"ids": [first["id"]]}, headers=admin)
    assert res.json() == {"deleted_count": 1}
    assert client.post("/api/v1/comments/bulk-delete", json={"ids": []}, headers=admin).status_code == 400

    assert client.delete(f"/api/v1/comments/product/{mug}", headers=admin).json() == {"deleted_count": 1}
    assert client.delete(f"/api/v1/comments/user/{alice_id}", headers=admin).json() == {"deleted_count": 1}
    assert client.get("/api/v1/comments").json()["pagination"]["total"] == 1
