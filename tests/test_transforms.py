from __future__ import annotations

import io
from typing import Callable

import pytest
from PIL import Image

from listing_media import (
    CollageOptions,
    InsufficientInputError,
    TransformError,
    WatermarkOptions,
    WebOptimizeOptions,
    calculate_grid_layout,
    create_collage,
    get_metadata,
    optimize_for_web,
    watermark,
)


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def _close_to(pixel: tuple, expected: tuple, tolerance: int = 12) -> bool:
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))


def test_watermark_keeps_dimensions_and_encodes_jpeg(make_image: Callable[..., bytes]) -> None:
    source = make_image(color=(10, 10, 10), size=(320, 200))

    result = watermark(source, WatermarkOptions(text="SAMPLE", opacity=0.8, font_size=24, spacing=20))

    output = _open(result)
    assert output.format == "JPEG"
    assert output.size == (320, 200)


def test_watermark_tiles_text_across_whole_image(make_image: Callable[..., bytes]) -> None:
    source = make_image(color=(0, 0, 0), size=(400, 400))
    options = WatermarkOptions(text="MARK", opacity=1.0, color="#FFFFFF", font_size=20, angle=0, spacing=10)

    output = _open(watermark(source, options)).convert("L")

    # Every quadrant carries some of the light text, not just one corner.
    for box in [(0, 0, 200, 200), (200, 0, 400, 200), (0, 200, 200, 400), (200, 200, 400, 400)]:
        assert output.crop(box).getextrema()[1] > 100


def test_watermark_is_deterministic(make_image: Callable[..., bytes]) -> None:
    source = make_image(color=(90, 140, 30), size=(200, 150))
    options = WatermarkOptions(text="Shop", angle=-45, spacing=30)

    assert watermark(source, options) == watermark(source, options)


def test_watermark_rejects_malformed_input() -> None:
    with pytest.raises(TransformError):
        watermark(b"definitely not an image", WatermarkOptions())


def test_optimize_for_web_downsizes_preserving_aspect_ratio(make_image: Callable[..., bytes]) -> None:
    source = make_image(size=(400, 200))

    result = optimize_for_web(source, WebOptimizeOptions(max_width=100, max_height=100, quality=70))

    assert _open(result).size == (100, 50)


def test_optimize_for_web_never_upsizes(make_image: Callable[..., bytes]) -> None:
    source = make_image(size=(80, 60))

    result = optimize_for_web(source, WebOptimizeOptions(max_width=2000, max_height=2000, format="png"))

    output = _open(result)
    assert output.size == (80, 60)
    assert output.format == "PNG"


def test_get_metadata_reports_alpha_and_channels(make_image: Callable[..., bytes]) -> None:
    png = make_image(color=(1, 2, 3, 128), size=(30, 20), format="PNG", mode="RGBA")
    jpeg = make_image(size=(30, 20))

    png_info = get_metadata(png)
    jpeg_info = get_metadata(jpeg)

    assert (png_info.width, png_info.height, png_info.format) == (30, 20, "png")
    assert png_info.channels == 4
    assert png_info.has_alpha is True
    assert jpeg_info.format == "jpeg"
    assert jpeg_info.channels == 3
    assert jpeg_info.has_alpha is False
    assert jpeg_info.size == len(jpeg)


@pytest.mark.parametrize(
    "count,expected",
    [(1, (1, 1)), (2, (1, 2)), (3, (2, 2)), (4, (2, 2)), (6, (2, 3)), (9, (3, 3)), (10, (3, 4))],
)
def test_grid_layout_auto(count: int, expected: tuple[int, int]) -> None:
    assert tuple(calculate_grid_layout(count)) == expected


def test_grid_layout_leaves_no_empty_row_or_column() -> None:
    for count in range(1, 37):
        rows, cols = calculate_grid_layout(count, "auto")
        assert rows * cols >= count
        assert (rows - 1) * cols < count
        assert rows * (cols - 1) < count


def test_grid_layout_horizontal_and_vertical() -> None:
    assert tuple(calculate_grid_layout(5, "horizontal")) == (1, 5)
    assert tuple(calculate_grid_layout(5, "vertical")) == (5, 1)


@pytest.mark.parametrize("count", [0, 1])
def test_collage_requires_two_images(make_image: Callable[..., bytes], count: int) -> None:
    images = [make_image() for _ in range(count)]

    with pytest.raises(InsufficientInputError):
        create_collage(images, CollageOptions(width=400, height=400))


def test_collage_places_images_on_background(make_image: Callable[..., bytes]) -> None:
    images = [make_image(color=(255, 0, 0)) for _ in range(4)]
    options = CollageOptions(width=410, height=410, spacing=10, background_color="#0000FF")

    output = _open(create_collage(images, options)).convert("RGB")

    assert output.size == (410, 410)
    assert _close_to(output.getpixel((3, 3)), (0, 0, 255))
    # cells are 190px wide; the centre of the bottom-right one is at 305,305
    assert _close_to(output.getpixel((305, 305)), (255, 0, 0))


def test_collage_substitutes_placeholder_for_corrupt_image(make_image: Callable[..., bytes]) -> None:
    images = [make_image(color=(255, 0, 0)), b"corrupted bytes", make_image(color=(255, 0, 0))]
    options = CollageOptions(layout="horizontal", width=640, height=220, spacing=10)

    output = _open(create_collage(images, options)).convert("RGB")

    # three 200x200 cells on one row
    assert _close_to(output.getpixel((110, 110)), (255, 0, 0))
    assert _close_to(output.getpixel((320, 110)), (200, 200, 200))
    assert _close_to(output.getpixel((530, 110)), (255, 0, 0))


def test_collage_rejects_canvas_smaller_than_grid(make_image: Callable[..., bytes]) -> None:
    images = [make_image() for _ in range(3)]

    with pytest.raises(TransformError):
        create_collage(images, CollageOptions(layout="horizontal", width=30, height=30, spacing=10))


def test_decompression_bomb_is_a_transform_error(
    make_image: Callable[..., bytes], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    oversized = make_image(color=0, size=(100, 100), format="PNG", mode="1")

    with pytest.raises(TransformError, match="decode"):
        get_metadata(oversized)
    with pytest.raises(TransformError):
        watermark(oversized, WatermarkOptions())


def test_collage_substitutes_placeholder_for_oversized_image(
    make_image: Callable[..., bytes], monkeypatch: pytest.MonkeyPatch
) -> None:
    images = [make_image(color=(255, 0, 0)), make_image(color=0, size=(200, 200), format="PNG", mode="1")]
    options = CollageOptions(layout="horizontal", width=430, height=220, spacing=10)

    with monkeypatch.context() as patch:
        patch.setattr(Image, "MAX_IMAGE_PIXELS", 5000)
        result = create_collage(images, options)

    output = _open(result).convert("RGB")
    assert _close_to(output.getpixel((110, 110)), (255, 0, 0))
    assert _close_to(output.getpixel((320, 110)), (200, 200, 200))
