"""Utility helpers for the listing media library."""

from __future__ import annotations

import io
import re
from pathlib import Path

from PIL import Image, ImageFont, UnidentifiedImageError

from .exceptions import TransformError

FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "DejaVuSans.ttf", "Arial.ttf", "arial.ttf")

_hex_color_re = re.compile(r"^#?([0-9A-Fa-f]{6})$")
_named_colors = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
}


def normalize_file_name(path: str | Path) -> str:
    """Normalize an arbitrary file path or name into a filesystem friendly stem.

    The result is lowercase, stripped of leading/trailing underscores, and only
    contains ASCII letters, numbers, hyphens, and underscores.
    """

    stem = Path(path).stem
    normalized = re.sub(r"[^a-zA-Z0-9_-]+", "_", stem).strip("_").lower()
    return normalized or "image"


def parse_color(value: str | tuple[int, int, int]) -> tuple[int, int, int]:
    """Return an RGB tuple for ``#RRGGBB`` strings, a few names, or a tuple."""

    if isinstance(value, tuple):
        return value
    named = _named_colors.get(value.strip().lower())
    if named:
        return named
    match = _hex_color_re.match(value.strip())
    if not match:
        raise ValueError(f"Invalid color value '{value}'")
    digits = match.group(1)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a scalable TrueType font, falling back to Pillow's bundled font."""

    for candidate in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def open_image(data: bytes) -> Image.Image:
    """Decode ``data`` into a fully loaded Pillow image.

    Raises
    ------
    TransformError
        If the buffer is empty, cannot be decoded, or exceeds Pillow's
        decompression bomb limit.
    """

    if not isinstance(data, (bytes, bytearray, memoryview)) or not data:
        raise TransformError("Image buffer is empty or not binary")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise TransformError(f"Failed to decode image: {exc}") from exc
    return image


def encode_image(image: Image.Image, format: str = "JPEG", quality: int = 90, **params) -> bytes:
    """Encode a Pillow image into bytes, converting modes the target format can't hold."""

    format = format.upper()
    if format == "JPG":
        format = "JPEG"
    if format == "JPEG" and image.mode not in ("RGB", "L"):
        image = ensure_rgb(image)
    buffer = io.BytesIO()
    try:
        if format == "PNG":
            image.save(buffer, format="PNG", optimize=True, **params)
        else:
            image.save(buffer, format=format, quality=quality, **params)
    except (OSError, ValueError, KeyError) as exc:
        raise TransformError(f"Failed to encode image as {format}: {exc}") from exc
    return buffer.getvalue()


def ensure_rgba(image: Image.Image) -> Image.Image:
    """Ensure that a Pillow image is in RGBA mode."""

    if image.mode == "RGBA":
        return image
    return image.convert("RGBA")


def ensure_rgb(image: Image.Image, background: tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    """Flatten any alpha channel onto ``background`` and return an RGB image."""

    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = ensure_rgba(image)
        canvas = Image.new("RGB", rgba.size, background)
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas
    return image.convert("RGB")
