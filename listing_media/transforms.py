"""Single-image transforms used to prepare listing photos."""

from __future__ import annotations

import math
from dataclasses import dataclass

from PIL import Image, ImageDraw

from .exceptions import TransformError
from .utils import encode_image, ensure_rgba, load_font, open_image, parse_color

WATERMARK_QUALITY = 90
WEB_FORMATS = {"jpeg", "jpg", "png", "webp"}


@dataclass(frozen=True, slots=True)
class WatermarkOptions:
    """How the watermark text is laid out over an image."""

    text: str = "DigiGoods"
    opacity: float = 0.2
    color: str = "#FFFFFF"
    font_size: int = 40
    angle: float = -30.0
    spacing: int = 120


@dataclass(frozen=True, slots=True)
class WebOptimizeOptions:
    max_width: int = 2000
    max_height: int = 2000
    quality: int = 85
    format: str = "jpeg"


@dataclass(frozen=True, slots=True)
class ImageInfo:
    """Basic facts about an encoded image."""

    width: int
    height: int
    format: str | None
    channels: int
    has_alpha: bool
    size: int

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "channels": self.channels,
            "has_alpha": self.has_alpha,
            "size": self.size,
        }


def watermark(image: bytes, options: WatermarkOptions) -> bytes:
    """Tile ``options.text`` across the whole image and return JPEG bytes.

    The text is repeated on a regular grid whose pitch is the rendered text
    extent plus ``options.spacing``. The tiled layer is rotated by
    ``options.angle`` degrees about the image centre before compositing, so
    it is drawn on a square canvas as wide as the image diagonal and cropped
    back afterwards. The output keeps the source dimensions.
    """

    source = open_image(image)
    try:
        base = ensure_rgba(source)
        width, height = base.size
        if not options.text:
            return encode_image(base, "JPEG", quality=WATERMARK_QUALITY)

        font = load_font(options.font_size)
        probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, right, bottom = probe.textbbox((0, 0), options.text, font=font)
        text_width = max(1, right - left)
        text_height = max(1, bottom - top)

        side = int(math.ceil(math.hypot(width, height)))
        layer = Image.new("RGBA", (side, side), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        alpha = int(round(255 * min(max(options.opacity, 0.0), 1.0)))
        fill = (*parse_color(options.color), alpha)

        step_x = text_width + max(options.spacing, 0)
        step_y = text_height + max(options.spacing, 0)
        for y in range(0, side, step_y):
            for x in range(0, side, step_x):
                draw.text((x - left, y - top), options.text, font=font, fill=fill)

        if options.angle:
            layer = layer.rotate(options.angle, resample=Image.BICUBIC, center=(side / 2, side / 2))
        offset_x = (side - width) // 2
        offset_y = (side - height) // 2
        layer = layer.crop((offset_x, offset_y, offset_x + width, offset_y + height))

        composited = Image.alpha_composite(base, layer)
    except (OSError, ValueError) as exc:
        raise TransformError(f"Watermarking failed: {exc}") from exc
    return encode_image(composited, "JPEG", quality=WATERMARK_QUALITY)


def optimize_for_web(image: bytes, options: WebOptimizeOptions | None = None) -> bytes:
    """Shrink ``image`` to fit the configured bounds and re-encode it.

    Images already inside ``max_width`` x ``max_height`` keep their size; the
    aspect ratio is always preserved.
    """

    options = options or WebOptimizeOptions()
    target_format = options.format.lower()
    if target_format not in WEB_FORMATS:
        raise TransformError(f"Unsupported output format '{options.format}'")

    source = open_image(image)
    try:
        optimized = source.copy()
        if optimized.width > options.max_width or optimized.height > options.max_height:
            optimized.thumbnail((options.max_width, options.max_height), Image.LANCZOS)
    except (OSError, ValueError) as exc:
        raise TransformError(f"Image optimization failed: {exc}") from exc

    if target_format == "png":
        return encode_image(optimized, "PNG")
    if target_format == "webp":
        return encode_image(optimized, "WEBP", quality=options.quality)
    return encode_image(optimized, "JPEG", quality=options.quality, progressive=True)


def get_metadata(image: bytes) -> ImageInfo:
    source = open_image(image)
    bands = source.getbands()
    return ImageInfo(
        width=source.width,
        height=source.height,
        format=source.format.lower() if source.format else None,
        channels=len(bands),
        has_alpha="A" in bands or "transparency" in source.info,
        size=len(image),
    )
