import logging
import uuid
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from fastapi import HTTPException, UploadFile, status

from app.core.config import settings

logger = logging.getLogger(__name__)

_FORMAT_TO_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}
_MIME_TO_SUFFIX = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
THUMBNAIL_SIZES = {"sm": (320, 320), "md": (640, 640), "lg": (1024, 1024)}


@dataclass(frozen=True)
class ValidatedImage:
    content: bytes
    mimetype: str
    width: int
    height: int
    filename: str | None

    @property
    def suffix(self) -> str:
        return _MIME_TO_SUFFIX.get(self.mimetype, ".bin")


def ensure_media_root(root: str | Path | None = None) -> Path:
    path = Path(root or settings.media_root)
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_image_upload(
    file: UploadFile,
    allowed_content_types: tuple[str, ...] | list[str] | None = None,
    max_bytes: int | None = None,
) -> ValidatedImage:
    """Read an upload into memory and check its size and real image type."""
    allowed = tuple(allowed_content_types or settings.upload_allowed_types)
    limit = max_bytes if max_bytes is not None else settings.upload_max_bytes
    content = file.file.read(limit + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(content) > limit:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File too large")
    if file.content_type and file.content_type not in allowed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")
    detected = _detect_image(content)
    if detected is None or detected[0] not in allowed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")
    mimetype, width, height = detected
    return ValidatedImage(content=content, mimetype=mimetype, width=width, height=height, filename=file.filename)


def save_image(image: ValidatedImage, folder: str, generate_thumbnails: bool = False) -> str:
    """Write the image under ``media_root/folder`` and return its path relative to the media root."""
    base_root = ensure_media_root().resolve()
    dest_root = (base_root / folder).resolve()
    try:
        dest_root.relative_to(base_root)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid upload destination")
    dest_root.mkdir(parents=True, exist_ok=True)
    destination = dest_root / f"{uuid.uuid4().hex}{image.suffix}"
    destination.write_bytes(image.content)
    if generate_thumbnails:
        _generate_thumbnails(destination)
    return destination.relative_to(base_root).as_posix()


def media_url(rel_path: str) -> str:
    return f"/media/{rel_path}"


def resolve_media_path(rel_or_url: str) -> Path:
    base_root = Path(settings.media_root).resolve()
    rel = rel_or_url.removeprefix("/media/")
    path = (base_root / rel).resolve()
    path.relative_to(base_root)
    return path


def delete_file(rel_or_url: str) -> bool:
    """Remove a stored file and its thumbnails. Returns False when nothing was there."""
    path = resolve_media_path(rel_or_url)
    if not path.exists():
        return False
    path.unlink()
    for suffix in THUMBNAIL_SIZES:
        sibling = path.with_name(f"{path.stem}-{suffix}{path.suffix}")
        if sibling.exists():
            sibling.unlink()
    return True


def _generate_thumbnails(path: Path) -> None:
    try:
        with Image.open(path) as img:
            for suffix, size in THUMBNAIL_SIZES.items():
                thumb = img.copy()
                thumb.thumbnail(size)
                thumb.save(path.with_name(f"{path.stem}-{suffix}{path.suffix}"), optimize=True)
    except (OSError, ValueError) as exc:  # pragma: no cover
        logger.warning("thumbnail_generation_failed", extra={"path": str(path), "error": str(exc)})


def _detect_image(content: bytes) -> tuple[str, int, int] | None:
    try:
        with Image.open(BytesIO(content)) as img:
            image_format = img.format
            width, height = img.size
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    mimetype = _FORMAT_TO_MIME.get((image_format or "").upper())
    if mimetype is None:
        return None
    return mimetype, width, height
