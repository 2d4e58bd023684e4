from __future__ import annotations

import io
from typing import Callable, List

import pytest
from PIL import Image

from listing_pipeline.models import ImageItem

MEDIA_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}
EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp"}


def _image_bytes(
    color: tuple = (255, 0, 0),
    size: tuple[int, int] = (64, 48),
    format: str = "JPEG",
    mode: str = "RGB",
) -> bytes:
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    return _image_bytes


@pytest.fixture
def make_batch() -> Callable[..., List[ImageItem]]:
    def _make(count: int, format: str = "JPEG", size: tuple[int, int] = (64, 48)) -> List[ImageItem]:
        items = []
        for index in range(count):
            content = _image_bytes(color=(40 * index % 256, 120, 200), size=size, format=format)
            items.append(
                ImageItem(
                    content=content,
                    media_type=MEDIA_TYPES[format],
                    size=len(content),
                    name=f"product-{index + 1}.{EXTENSIONS[format]}",
                )
            )
        return items

    return _make
