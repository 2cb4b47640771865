from io import BytesIO
from pathlib import Path

import pytest
from fastapi import HTTPException
from PIL import Image

from app.services.storage import delete_file, media_url, read_image_upload, resolve_media_path, save_image


class DummyUpload:
    def __init__(self, content: bytes, *, filename: str, content_type: str | None):
        self.file = BytesIO(content)
        self.filename = filename
        self.content_type = content_type


def _png_bytes(size: tuple[int, int] = (1, 1)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color=(255, 0, 0)).save(buf, format="PNG")
    return buf.getvalue()


def test_read_image_upload_accepts_valid_image() -> None:
    upload = DummyUpload(_png_bytes((3, 2)), filename="test.png", content_type="image/png")

    image = read_image_upload(upload)

    assert image.mimetype == "image/png"
    assert (image.width, image.height) == (3, 2)
    assert image.suffix == ".png"
    assert image.filename == "test.png"


def test_save_image_normalizes_extension_to_detected_mime(_local_media: Path) -> None:
    upload = DummyUpload(_png_bytes(), filename="test.jpg", content_type="image/png")

    rel_path = save_image(read_image_upload(upload), "products/abc")

    assert rel_path.startswith("products/abc/")
    assert rel_path.endswith(".png")
    assert (_local_media / rel_path).exists()
    assert media_url(rel_path) == f"/media/{rel_path}"


def test_save_image_with_thumbnails_and_delete(_local_media: Path) -> None:
    upload = DummyUpload(_png_bytes((800, 600)), filename="big.png", content_type="image/png")
    rel_path = save_image(read_image_upload(upload), "stores", generate_thumbnails=True)
    stored = _local_media / rel_path
    thumbs = [stored.with_name(f"{stored.stem}-{suffix}{stored.suffix}") for suffix in ("sm", "md", "lg")]
    assert all(thumb.exists() for thumb in thumbs)

    assert delete_file(media_url(rel_path)) is True
    assert not stored.exists()
    assert not any(thumb.exists() for thumb in thumbs)
    assert delete_file(rel_path) is False


def test_save_image_rejects_escaping_folder() -> None:
    image = read_image_upload(DummyUpload(_png_bytes(), filename="x.png", content_type="image/png"))

    with pytest.raises(HTTPException) as exc:
        save_image(image, "../outside")

    assert exc.value.status_code == 400


def test_resolve_media_path_rejects_traversal() -> None:
    with pytest.raises(ValueError):
        resolve_media_path("/media/../../etc/passwd")


def test_read_image_upload_rejects_oversized_file() -> None:
    upload = DummyUpload(_png_bytes((20, 20)), filename="test.png", content_type="image/png")

    with pytest.raises(HTTPException) as exc:
        read_image_upload(upload, max_bytes=10)

    assert exc.value.status_code == 400
    assert exc.value.detail == "File too large"


def test_read_image_upload_rejects_empty_file() -> None:
    with pytest.raises(HTTPException) as exc:
        read_image_upload(DummyUpload(b"", filename="empty.png", content_type="image/png"))

    assert exc.value.detail == "Empty file"


def test_read_image_upload_rejects_non_image_bytes() -> None:
    upload = DummyUpload(b"definitely-not-an-image", filename="bad.png", content_type="image/png")

    with pytest.raises(HTTPException) as exc:
        read_image_upload(upload)

    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid file type"


def test_read_image_upload_rejects_disallowed_actual_mime() -> None:
    upload = DummyUpload(_png_bytes(), filename="test.png", content_type="image/jpeg")

    with pytest.raises(HTTPException) as exc:
        read_image_upload(upload, allowed_content_types=("image/jpeg",))

    assert exc.value.status_code == 400
