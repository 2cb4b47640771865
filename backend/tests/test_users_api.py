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


def test_admin_user_management(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    SessionLocal = test_app["session_factory"]
    admin, _ = _register(client, "admin@example.com")
    seller, seller_id = _register(client, "seller@example.com")
    _, buyer_id = _register(client, "buyer@example.com")

    async def promote() -> None:
        async with SessionLocal() as session:
            user = (await session.execute(select(User).where(User.email == "admin@example.com"))).scalar_one()
            user.role = UserRole.admin
            await session.commit()

    asyncio.run(promote())
    client.post("/api/v1/stores", json={"name": "Shop"}, headers=seller)

    assert len(client.get("/api/v1/users", headers=admin).json()) == 3
    sellers = client.get("/api/v1/users", params={"role": "seller"}, headers=admin).json()
    assert [u["id"] for u in sellers] == [seller_id]

    res = client.patch(f"/api/v1/users/{buyer_id}", json={"status": "BANNED", "name": "Blocked"}, headers=admin)
    assert res.status_code == 200
    assert res.json()["name"] == "Blocked"
    res = client.post("/api/v1/auth/login", json={"email": "buyer@example.com", "password": "password1"})
    assert res.status_code == 403

    res = client.delete(f"/api/v1/users/{seller_id}", headers=admin)
    assert res.status_code == 400
    assert res.json()["detail"] == "User still owns a store"

    assert client.delete(f"/api/v1/users/{buyer_id}", headers=admin).status_code == 204
    assert client.get(f"/api/v1/users/{buyer_id}", headers=admin).status_code == 404
    assert client.get(f"/api/v1/users/{seller_id}", headers=seller).status_code == 403
