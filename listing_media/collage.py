"""Grid collage composition."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple, Sequence

from PIL import Image, ImageOps

from .exceptions import InsufficientInputError, TransformError
from .utils import encode_image, ensure_rgb, open_image, parse_color

COLLAGE_QUALITY = 90
PLACEHOLDER_COLOR = (200, 200, 200)


@dataclass(frozen=True, slots=True)
class CollageOptions:
    layout: str = "auto"
    width: int = 2000
    height: int = 2000
    spacing: int = 10
    background_color: str = "#FFFFFF"


class GridLayout(NamedTuple):
    rows: int
    cols: int


def calculate_grid_layout(count: int, layout: str = "auto") -> GridLayout:
    """Return the grid used to arrange ``count`` images.

    ``horizontal`` puts everything on one row, ``vertical`` in one column.
    Any other layout picks the most square arrangement: ``ceil(sqrt(n))``
    columns and as many rows as needed to hold the rest.
    """

    if count < 1:
        raise ValueError("count must be at least 1")
    if count == 1:
        return GridLayout(1, 1)
    if layout == "horizontal":
        return GridLayout(1, count)
    if layout == "vertical":
        return GridLayout(count, 1)
    cols = math.ceil(math.sqrt(count))
    rows = math.ceil(count / cols)
    return GridLayout(rows, cols)


def create_collage(images: Sequence[bytes], options: CollageOptions | None = None) -> bytes:
    """Compose ``images`` left-to-right, top-to-bottom onto one JPEG canvas.

    Each source is scaled and centre-cropped to fill its cell. A source that
    cannot be decoded is replaced with a gray placeholder cell.

    Raises
    ------
    InsufficientInputError
        If fewer than two images are supplied.
    TransformError
        If the canvas is too small for the grid or cannot be encoded.
    """

    options = options or CollageOptions()
    if len(images) < 2:
        raise InsufficientInputError("At least 2 images are required to create a collage")

    rows, cols = calculate_grid_layout(len(images), options.layout)
    cell_width = (options.width - options.spacing * (cols + 1)) // cols
    cell_height = (options.height - options.spacing * (rows + 1)) // rows
    if cell_width < 1 or cell_height < 1:
        raise TransformError(
            f"Canvas {options.width}x{options.height} is too small for a {rows}x{cols} grid"
        )

    try:
        background = parse_color(options.background_color)
    except ValueError as exc:
        raise TransformError(str(exc)) from exc

    canvas = Image.new("RGB", (options.width, options.height), background)
    for index, data in enumerate(images):
        row, col = divmod(index, cols)
        x = options.spacing + col * (cell_width + options.spacing)
        y = options.spacing + row * (cell_height + options.spacing)
        canvas.paste(_fit_cell(data, cell_width, cell_height), (x, y))

    return encode_image(canvas, "JPEG", quality=COLLAGE_QUALITY, progressive=True)


def _fit_cell(data: bytes, width: int, height: int) -> Image.Image:
    try:
        source = open_image(data)
        return ImageOps.fit(ensure_rgb(source), (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))
    except (TransformError, OSError, ValueError):
        return Image.new("RGB", (width, height), PLACEHOLDER_COLOR)
