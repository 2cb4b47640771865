import asyncio
import hashlib
from urllib.parse import parse_qs

import httpx
import pytest

from app.core.config import settings
from app.services import assets, storage


def _mock_client(monkeypatch: pytest.MonkeyPatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []
    real_client = httpx.AsyncClient

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(recording)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(assets.httpx, "AsyncClient", factory)
    return seen


def _image() -> storage.ValidatedImage:
    return storage.ValidatedImage(content=b"\x89PNG fake", mimetype="image/png", width=4, height=3, filename="mug.png")


def _host() -> assets.CloudinaryAssetHost:
    return assets.CloudinaryAssetHost("demo", "key123", "secret456")


def test_sign_sorts_params_and_skips_empty_values() -> None:
    host = _host()
    expected = hashlib.sha1(b"folder=products&timestamp=100secret456").hexdigest()
    assert host.sign({"timestamp": 100, "folder": "products", "eager": ""}) == expected


def test_upload_posts_signed_multipart(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1_1/demo/image/upload"
        return httpx.Response(
            200, json={"secure_url": "https://res.cloudinary.com/demo/mug.png", "public_id": "products/mug", "width": 40}
        )

    seen = _mock_client(monkeypatch, handler)
    uploaded = asyncio.run(_host().upload_image(_image(), "products"))

    assert uploaded.url == "https://res.cloudinary.com/demo/mug.png"
    assert uploaded.asset_id == "products/mug"
    assert uploaded.width == 40
    assert uploaded.height == 3
    body = seen[0].content
    assert b'name="signature"' in body
    assert b'name="api_key"' in body
    assert b"key123" in body


def test_upload_without_public_id_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_client(monkeypatch, lambda request: httpx.Response(200, json={"secure_url": "https://x"}))
    with pytest.raises(assets.AssetHostError):
        asyncio.run(_host().upload_image(_image(), "products"))


def test_delete_accepts_missing_assets(monkeypatch: pytest.MonkeyPatch) -> None:
    results = {"products/a": "ok", "products/b": "not found", "products/c": "error"}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1_1/demo/image/destroy"
        public_id = parse_qs(request.content.decode())["public_id"][0]
        return httpx.Response(200, json={"result": results[public_id]})

    _mock_client(monkeypatch, handler)
    outcome = asyncio.run(_host().delete_many(["products/a", "products/b", "products/c"]))

    assert outcome.deleted == ["products/a", "products/b"]
    assert [asset_id for asset_id, _ in outcome.failed] == ["products/c"]


def test_http_errors_become_asset_host_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_client(monkeypatch, lambda request: httpx.Response(500, json={"error": {"message": "boom"}}))
    with pytest.raises(assets.AssetHostError):
        asyncio.run(_host().delete_one("products/a"))


def test_non_json_reply_is_an_asset_host_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_client(monkeypatch, lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    with pytest.raises(assets.AssetHostError):
        asyncio.run(_host().upload_image(_image(), "products"))
    with pytest.raises(assets.AssetHostError):
        asyncio.run(_host().delete_one("products/a"))


def test_transformation_url() -> None:
    url = _host().transformation_url("products/mug", width=300, height=200)
    assert url == "https://res.cloudinary.com/demo/image/upload/c_fill,w_300,h_200/products/mug"


def test_get_asset_host_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "asset_backend", "cloudinary")
    monkeypatch.setattr(settings, "cloudinary_cloud_name", None)
    with pytest.raises(assets.AssetHostError):
        assets.get_asset_host()

    monkeypatch.setattr(settings, "cloudinary_cloud_name", "demo")
    monkeypatch.setattr(settings, "cloudinary_api_key", "key")
    monkeypatch.setattr(settings, "cloudinary_api_secret", "secret")
    host = assets.get_asset_host()
    assert isinstance(host, assets.CloudinaryAssetHost)
    assert host.base_url == "https://api.cloudinary.com/v1_1/demo"

    monkeypatch.setattr(settings, "asset_backend", "local")
    assert isinstance(assets.get_asset_host(), assets.LocalAssetHost)
