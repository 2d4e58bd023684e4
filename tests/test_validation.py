from __future__ import annotations

import io
from typing import Callable

import pytest
from PIL import Image

from listing_pipeline.core.exceptions import ValidationFailure
from listing_pipeline.models import ImageItem
from listing_pipeline.services.validation import validate_batch, validate_image


def _item(content: bytes, media_type: str = "image/jpeg", name: str = "photo.jpg") -> ImageItem:
    return ImageItem(content=content, media_type=media_type, size=len(content), name=name)


def test_valid_jpeg_passes(make_image: Callable[..., bytes]) -> None:
    validate_image(_item(make_image()), 0)


def test_png_declared_as_png_passes(make_image: Callable[..., bytes]) -> None:
    validate_image(_item(make_image(format="PNG"), "image/png", "photo.png"), 0)


@pytest.mark.parametrize(
    "media_type,name,message",
    [
        ("image/gif", "photo.gif", "Unsupported file type"),
        ("image/jpeg", "photo.png", "does not match"),
    ],
)
def test_type_problems_are_rejected(
    make_image: Callable[..., bytes], media_type: str, name: str, message: str
) -> None:
    with pytest.raises(ValidationFailure, match=message):
        validate_image(_item(make_image(), media_type, name), 3)


def test_oversized_file_is_rejected(make_image: Callable[..., bytes]) -> None:
    with pytest.raises(ValidationFailure, match="exceeds maximum"):
        validate_image(_item(make_image()), 0, max_file_size=100)


def test_empty_buffer_is_rejected() -> None:
    with pytest.raises(ValidationFailure, match="Invalid file buffer"):
        validate_image(_item(b""), 0)


def test_undecodable_content_is_rejected() -> None:
    with pytest.raises(ValidationFailure, match="Unreadable image"):
        validate_image(_item(b"\xff\xd8 definitely not a jpeg"), 0)


def test_content_must_match_declared_type(make_image: Callable[..., bytes]) -> None:
    with pytest.raises(ValidationFailure, match="not image/jpeg"):
        validate_image(_item(make_image(format="PNG"), "image/jpeg", "photo.jpg"), 0)


def test_batch_keeps_valid_items_in_order(make_image: Callable[..., bytes]) -> None:
    first = _item(make_image(color=(1, 1, 1)), name="first.jpg")
    broken = _item(b"garbage", name="broken.jpg")
    second = _item(make_image(color=(2, 2, 2)), name="second.jpg")

    valid, errors = validate_batch([first, broken, second])

    assert valid == [first, second]
    assert [error.to_dict()["index"] for error in errors] == [1]
    assert errors[0].filename == "broken.jpg"


def test_multi_picture_jpeg_passes_as_jpeg() -> None:
    front = Image.new("RGB", (64, 48), (200, 30, 30))
    depth = Image.new("RGB", (64, 48), (30, 30, 200))
    buffer = io.BytesIO()
    front.save(buffer, format="MPO", save_all=True, append_images=[depth])

    valid, errors = validate_batch([_item(buffer.getvalue(), "image/jpeg", "phone.jpg")])

    assert errors == []
    assert len(valid) == 1
