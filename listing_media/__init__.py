"""Public API for the listing media package."""

from .archive import ArchiveItem, pack
from .collage import CollageOptions, GridLayout, calculate_grid_layout, create_collage
from .exceptions import (
    ArchiveError,
    EmptyInputError,
    InsufficientInputError,
    InvalidItemError,
    MediaError,
    TransformError,
)
from .slideshow import SlideshowOptions, create_slideshow, expected_duration
from .transforms import ImageInfo, WatermarkOptions, WebOptimizeOptions, get_metadata, optimize_for_web, watermark
from . import utils

__all__ = [
    "ArchiveError",
    "ArchiveItem",
    "CollageOptions",
    "EmptyInputError",
    "GridLayout",
    "ImageInfo",
    "InsufficientInputError",
    "InvalidItemError",
    "MediaError",
    "SlideshowOptions",
    "TransformError",
    "WatermarkOptions",
    "WebOptimizeOptions",
    "calculate_grid_layout",
    "create_collage",
    "create_slideshow",
    "expected_duration",
    "get_metadata",
    "optimize_for_web",
    "pack",
    "utils",
    "watermark",
]
