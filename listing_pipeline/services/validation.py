from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from listing_media import TransformError, get_metadata

from listing_pipeline.core.config import ALLOWED_MEDIA_TYPES, MAX_FILE_SIZE
from listing_pipeline.core.exceptions import ValidationFailure
from listing_pipeline.models import ImageItem

EXTENSIONS_BY_TYPE = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/jpg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/webp": {".webp"},
}

# Multi-picture JPEGs written by phone cameras decode as "mpo".
DECODED_FORMATS = {
    "image/jpeg": {"jpeg", "mpo"},
    "image/jpg": {"jpeg", "mpo"},
    "image/png": {"png"},
    "image/webp": {"webp"},
}


def validate_image(
    item: ImageItem,
    index: int,
    max_file_size: int = MAX_FILE_SIZE,
    allowed_media_types: Iterable[str] = ALLOWED_MEDIA_TYPES,
) -> None:
    """Check one submitted image, raising ``ValidationFailure`` on the first problem.

    Besides type and size limits the content is decoded far enough to confirm
    it really is an image of the declared type.
    """

    filename = item.name or f"file-{index}"
    media_type = (item.media_type or "").lower()

    if not isinstance(item.content, (bytes, bytearray)) or not item.content:
        raise ValidationFailure("Invalid file buffer", filename=filename, index=index)

    size = len(item.content)
    if size > max_file_size or item.size > max_file_size:
        raise ValidationFailure(
            f"File size {size / 1024 / 1024:.2f}MB exceeds maximum allowed size of "
            f"{max_file_size / 1024 / 1024:.0f}MB",
            filename=filename,
            index=index,
        )

    allowed = {value.lower() for value in allowed_media_types}
    if media_type not in allowed or media_type not in EXTENSIONS_BY_TYPE:
        raise ValidationFailure(
            f"Unsupported file type: {item.media_type}. Supported types: JPEG, PNG, WebP",
            filename=filename,
            index=index,
        )

    extension = Path(filename).suffix.lower()
    if extension and extension not in EXTENSIONS_BY_TYPE[media_type]:
        raise ValidationFailure(
            f"File extension '{extension}' does not match type {media_type}",
            filename=filename,
            index=index,
        )

    try:
        info = get_metadata(bytes(item.content))
    except TransformError as exc:
        raise ValidationFailure(f"Unreadable image: {exc}", filename=filename, index=index) from exc
    if info.format not in DECODED_FORMATS[media_type]:
        raise ValidationFailure(
            f"Content is {info.format or 'unknown'}, not {media_type}",
            filename=filename,
            index=index,
        )


def validate_batch(
    items: Sequence[ImageItem],
    max_file_size: int = MAX_FILE_SIZE,
    allowed_media_types: Iterable[str] = ALLOWED_MEDIA_TYPES,
) -> Tuple[List[ImageItem], List[ValidationFailure]]:
    """Split ``items`` into valid images and per-item failures, keeping order."""

    allowed = list(allowed_media_types)
    valid: List[ImageItem] = []
    errors: List[ValidationFailure] = []
    for index, item in enumerate(items):
        try:
            validate_image(item, index, max_file_size, allowed)
        except ValidationFailure as exc:
            errors.append(exc)
            continue
        valid.append(item)
    return valid, errors
