from __future__ import annotations

import re
from pathlib import PureWindowsPath
from typing import Collection

_unsafe_chars_re = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str, default: str = "file") -> str:
    """Reduce an uploaded name or user identity to a bare, portable file name.

    Directory parts are dropped whichever separator the client used, and a
    leading dot is removed so the result can never be hidden or relative.
    """
    name = PureWindowsPath(filename or "").name
    name = _unsafe_chars_re.sub("_", name).lstrip(".")
    return name or default


def dedupe_name(taken: Collection[str], desired: str) -> str:
    """Return ``desired``, or ``stem_<n>.ext`` with the first free ``n``."""
    if desired not in taken:
        return desired
    stem, dot, suffix = desired.rpartition(".")
    if not dot:
        stem, suffix = desired, ""
    counter = 1
    while True:
        candidate = f"{stem}_{counter}{dot}{suffix}"
        if candidate not in taken:
            return candidate
        counter += 1
