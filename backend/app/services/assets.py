"""Remote asset hosting for uploaded images.

Two hosts share one interface: files on local disk served from ``/media`` and
Cloudinary through its signed upload API. Every call can fail independently of
the database, so callers treat them as best-effort and record what is left to
clean up (see :mod:`app.services.asset_reconcile`).
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx
from fastapi import UploadFile

from app.core.config import settings
from app.services import storage

logger = logging.getLogger(__name__)


class AssetHostError(Exception):
    """Raised when the asset host rejects or fails a request."""


@dataclass(frozen=True)
class UploadedAsset:
    url: str
    asset_id: str
    width: int | None = None
    height: int | None = None
    bytes: int | None = None
    mimetype: str | None = None


@dataclass
class DeleteManyResult:
    deleted: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


class AssetHost:
    name = "base"

    async def upload_image(self, image: storage.ValidatedImage, folder: str) -> UploadedAsset:
        raise NotImplementedError

    async def delete_one(self, asset_id: str) -> None:
        raise NotImplementedError

    async def upload_one(self, file: UploadFile, folder: str) -> UploadedAsset:
        image = storage.read_image_upload(file)
        return await self.upload_image(image, folder)

    async def upload_many(self, files: Iterable[UploadFile], folder: str) -> list[UploadedAsset]:
        # Validate everything first so a bad file does not leave earlier ones uploaded.
        images = [storage.read_image_upload(file) for file in files]
        return [await self.upload_image(image, folder) for image in images]

    async def delete_many(self, asset_ids: Iterable[str]) -> DeleteManyResult:
        result = DeleteManyResult()
        for asset_id in asset_ids:
            try:
                await self.delete_one(asset_id)
            except AssetHostError as exc:
                logger.warning("asset_delete_failed", extra={"asset_id": asset_id, "error": str(exc)})
                result.failed.append((asset_id, str(exc)))
            else:
                result.deleted.append(asset_id)
        return result

    async def replace(self, asset_id: str | None, file: UploadFile, folder: str) -> UploadedAsset:
        uploaded = await self.upload_one(file, folder)
        if asset_id:
            try:
                await self.delete_one(asset_id)
            except AssetHostError as exc:
                logger.warning("asset_replace_cleanup_failed", extra={"asset_id": asset_id, "error": str(exc)})
        return uploaded


class LocalAssetHost(AssetHost):
    name = "local"

    def __init__(self, generate_thumbnails: bool = True) -> None:
        self.generate_thumbnails = generate_thumbnails

    async def upload_image(self, image: storage.ValidatedImage, folder: str) -> UploadedAsset:
        rel_path = storage.save_image(image, folder, generate_thumbnails=self.generate_thumbnails)
        return UploadedAsset(
            url=storage.media_url(rel_path),
            asset_id=rel_path,
            width=image.width,
            height=image.height,
            bytes=len(image.content),
            mimetype=image.mimetype,
        )

    async def delete_one(self, asset_id: str) -> None:
        try:
            storage.delete_file(asset_id)
        except (OSError, ValueError) as exc:
            raise AssetHostError(f"Could not delete {asset_id}: {exc}") from exc


class CloudinaryAssetHost(AssetHost):
    name = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, timeout: float = 20) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}"

    def sign(self, params: dict[str, Any]) -> str:
        to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {**params, "timestamp": int(time.time())}
        return {**params, "api_key": self.api_key, "signature": self.sign(params)}

    async def _post(self, path: str, data: dict[str, Any], files: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                resp = await client.post(path, data=data, files=files)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AssetHostError(f"Cloudinary request {path} failed: {exc}") from exc

    async def upload_image(self, image: storage.ValidatedImage, folder: str) -> UploadedAsset:
        data = self._signed({"folder": folder})
        files = {"file": (image.filename or f"upload{image.suffix}", image.content, image.mimetype)}
        body = await self._post("/image/upload", data, files)
        if not body.get("secure_url") or not body.get("public_id"):
            raise AssetHostError("Cloudinary upload response is missing secure_url/public_id")
        return UploadedAsset(
            url=body["secure_url"],
            asset_id=body["public_id"],
            width=body.get("width", image.width),
            height=body.get("height", image.height),
            bytes=body.get("bytes", len(image.content)),
            mimetype=image.mimetype,
        )

    async def delete_one(self, asset_id: str) -> None:
        body = await self._post("/image/destroy", self._signed({"public_id": asset_id}))
        # An asset that is already gone counts as deleted.
        if body.get("result") not in ("ok", "not found"):
            raise AssetHostError(f"Cloudinary refused to delete {asset_id}: {body.get('result')}")

    def transformation_url(self, asset_id: str, width: int | None = None, height: int | None = None, crop: str = "fill") -> str:
        parts = [f"c_{crop}"]
        if width:
            parts.append(f"w_{width}")
        if height:
            parts.append(f"h_{height}")
        return f"https://res.cloudinary.com/{self.cloud_name}/image/upload/{','.join(parts)}/{asset_id}"


def get_asset_host() -> AssetHost:
    if settings.asset_backend == "cloudinary":
        if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
            raise AssetHostError("Cloudinary credentials are not configured")
        return CloudinaryAssetHost(
            settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret
        )
    return LocalAssetHost(generate_thumbnails=settings.upload_generate_thumbnails)
