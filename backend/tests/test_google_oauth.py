import asyncio
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.db.base import Base
from app.db.session import get_session
from app.main import app
from app.models.user import User, UserStatus
from app.services import auth as auth_service

CALLBACK = "/api/v1/auth/google/callback"


@pytest.fixture
def google(monkeypatch: pytest.MonkeyPatch):
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    monkeypatch.setattr(settings, "google_client_id", "storefront-client")
    monkeypatch.setattr(settings, "google_client_secret", "storefront-secret")
    monkeypatch.setattr(settings, "google_redirect_uri", "http://localhost/callback")
    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield client, SessionLocal
    client.close()
    app.dependency_overrides.clear()


def _state(client: TestClient) -> str:
    res = client.get("/api/v1/auth/google/start")
    assert res.status_code == 200, res.text
    return parse_qs(urlparse(res.json()["auth_url"]).query)["state"][0]


def _profile_returned(monkeypatch: pytest.MonkeyPatch, profile: dict[str, Any]) -> None:
    async def exchange(code: str) -> dict[str, Any]:
        assert code == "auth-code"
        return profile

    monkeypatch.setattr(auth_service, "exchange_google_code", exchange)


def _add_user(SessionLocal, **fields: Any) -> None:
    async def add() -> None:
        async with SessionLocal() as session:
            session.add(User(hashed_password="hashed", **fields))
            await session.commit()

    asyncio.run(add())


def _user_count(SessionLocal) -> int:
    async def count() -> int:
        async with SessionLocal() as session:
            return await session.scalar(select(func.count()).select_from(User))

    return asyncio.run(count())


def test_start_url_carries_client_settings(google) -> None:
    client, _ = google
    query = parse_qs(urlparse(client.get("/api/v1/auth/google/start").json()["auth_url"]).query)

    assert query["client_id"] == ["storefront-client"]
    assert query["redirect_uri"] == ["http://localhost/callback"]
    assert query["scope"] == ["openid email profile"]
    assert query["response_type"] == ["code"]


def test_login_endpoint_redirects_to_google(google) -> None:
    client, _ = google
    res = client.get("/api/v1/auth/google/login", follow_redirects=False)
    assert res.status_code == 307
    assert res.headers["location"].startswith("https://accounts.google.com/")


def test_code_exchange_against_mocked_google(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = google
    hits: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request.url.host)
        if request.url.host == "oauth2.googleapis.com":
            assert b"code=auth-code" in request.content
            return httpx.Response(200, json={"access_token": "google-access"})
        assert request.headers["Authorization"] == "Bearer google-access"
        return httpx.Response(
            200, json={"sub": "g-1", "email": "mocked@example.com", "email_verified": True, "name": "Mocked"}
        )

    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(auth_service.httpx, "AsyncClient", factory)

    res = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)})
    assert res.status_code == 200, res.text
    assert res.json()["user"]["email"] == "mocked@example.com"
    assert hits == ["oauth2.googleapis.com", "www.googleapis.com"]


def test_google_outage_is_bad_gateway(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = google
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(lambda request: httpx.Response(503))
        return real_client(*args, **kwargs)

    monkeypatch.setattr(auth_service.httpx, "AsyncClient", factory)
    res = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)})
    assert res.status_code == 502
    assert res.json()["detail"] == "Google authentication failed"


def test_known_subject_signs_in(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, SessionLocal = google
    _add_user(SessionLocal, email="known@example.com", google_sub="sub-known", email_verified=True)
    _profile_returned(monkeypatch, {"sub": "sub-known", "email": "known@example.com", "email_verified": True})

    body = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)}).json()
    assert body["user"]["google_sub"] == "sub-known"
    assert body["tokens"]["access_token"]
    assert _user_count(SessionLocal) == 1


def test_new_subject_creates_verified_user(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, SessionLocal = google
    _profile_returned(
        monkeypatch,
        {
            "sub": "sub-new",
            "email": "Fresh@Example.com",
            "email_verified": True,
            "name": "Fresh",
            "picture": "https://example.com/fresh.png",
        },
    )

    res = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)})
    assert res.status_code == 200, res.text
    assert res.json()["user"]["email"] == "fresh@example.com"

    async def stored() -> User | None:
        async with SessionLocal() as session:
            return await auth_service.get_user_by_google_sub(session, "sub-new")

    user = asyncio.run(stored())
    assert user is not None
    assert user.email_verified is True
    assert user.google_email == "fresh@example.com"
    assert user.avatar_url == "https://example.com/fresh.png"


def test_matching_email_links_existing_account(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, SessionLocal = google
    _add_user(SessionLocal, email="shopper@example.com", name="Shopper", avatar_url="https://example.com/own.png")
    _profile_returned(
        monkeypatch,
        {
            "sub": "sub-link",
            "email": "SHOPPER@example.com",
            "email_verified": True,
            "name": "Someone Else",
            "picture": "https://example.com/google.png",
        },
    )

    user = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)}).json()["user"]
    assert user["google_sub"] == "sub-link"
    assert user["name"] == "Shopper"
    assert user["avatar_url"] == "https://example.com/own.png"
    assert _user_count(SessionLocal) == 1


@pytest.mark.parametrize(
    ("profile", "detail"),
    [
        ({"sub": "sub-x", "email": "x@example.com", "email_verified": False}, "Google email is not verified"),
        ({"sub": "sub-x", "email_verified": True}, "Google profile is incomplete"),
        ({"email": "x@example.com", "email_verified": True}, "Google profile is incomplete"),
    ],
)
def test_unusable_profiles_are_rejected(
    google, monkeypatch: pytest.MonkeyPatch, profile: dict[str, Any], detail: str
) -> None:
    client, SessionLocal = google
    _profile_returned(monkeypatch, profile)
    res = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)})
    assert res.status_code == 400
    assert res.json()["detail"] == detail
    assert _user_count(SessionLocal) == 0


def test_banned_account_cannot_use_google(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, SessionLocal = google
    _add_user(SessionLocal, email="banned@example.com", google_sub="sub-banned", status=UserStatus.BANNED)
    _profile_returned(monkeypatch, {"sub": "sub-banned", "email": "banned@example.com", "email_verified": True})
    res = client.post(CALLBACK, json={"code": "auth-code", "state": _state(client)})
    assert res.status_code == 403


@pytest.mark.parametrize("state", ["forged", ""])
def test_callback_requires_signed_state(google, state: str) -> None:
    client, _ = google
    res = client.post(CALLBACK, json={"code": "auth-code", "state": state})
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid OAuth state"


def test_unconfigured_google_is_unavailable(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = google
    monkeypatch.setattr(settings, "google_client_secret", None)
    assert client.get("/api/v1/auth/google/start").status_code == 503
    assert client.get("/api/v1/auth/google/login", follow_redirects=False).status_code == 503


def test_browser_redirect_sets_session_cookies(google, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _ = google
    monkeypatch.setattr(settings, "frontend_origin", "http://front.test")
    _profile_returned(monkeypatch, {"sub": "sub-redirect", "email": "redirect@example.com", "email_verified": True})

    res = client.get(
        "/api/v1/auth/google/redirect",
        params={"code": "auth-code", "state": _state(client)},
        follow_redirects=False,
    )
    assert res.status_code == 302
    assert res.headers["location"] == "http://front.test"
    assert res.cookies.get("access_token")
    assert res.cookies.get("refresh_token")
