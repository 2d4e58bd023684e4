"""Packaging of binary blobs into a single ZIP archive."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Tuple

from .exceptions import EmptyInputError, InvalidItemError

COMPRESSION_LEVEL = 6
# Fixed entry timestamp keeps the archive byte-identical for identical input.
ENTRY_TIMESTAMP = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True, slots=True)
class ArchiveItem:
    content: bytes
    name: str | None = None


def default_item_name(index: int) -> str:
    return f"image-{index + 1}.jpg"


def pack(items: Sequence[ArchiveItem | Mapping[str, Any]]) -> bytes:
    """Return a ZIP archive holding every item in order.

    Items may be ``ArchiveItem`` instances or mappings with ``content`` and
    an optional ``name``. Unnamed items get ``image-<n>.jpg``. Duplicate names
    are written as-is.

    Raises
    ------
    EmptyInputError
        If ``items`` is empty.
    InvalidItemError
        If an item's content is not bytes-like; ``index`` names the item.
    """

    if not items:
        raise EmptyInputError("Items array is required and must not be empty")
    entries = [_coerce_item(item, index) for index, item in enumerate(items)]

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL) as archive:
        for name, content in entries:
            info = zipfile.ZipInfo(name, date_time=ENTRY_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            archive.writestr(info, content, compresslevel=COMPRESSION_LEVEL)
    return buffer.getvalue()


def _coerce_item(item: Any, index: int) -> Tuple[str, bytes]:
    if isinstance(item, Mapping):
        content = item.get("content")
        name = item.get("name") or item.get("filename")
    else:
        content = getattr(item, "content", None)
        name = getattr(item, "name", None)

    if not isinstance(content, (bytes, bytearray, memoryview)):
        raise InvalidItemError(index, f"Invalid item content at index {index}: expected bytes")
    return name or default_item_name(index), bytes(content)
