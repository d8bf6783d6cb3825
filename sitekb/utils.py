"""Utility functions for the knowledge base."""

from __future__ import annotations

import hashlib
import json
import os
import secrets
import tempfile
from datetime import datetime, timezone
from typing import Iterable, List, Sequence

TRUNCATION_MARKER = "\n\n[Content truncated due to size limit]"


def sha1_text(text: str) -> str:
    """Calculate SHA1 hash of a text string."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def hash_url(url: str) -> str:
    """Stable page key: MD5 of the URL."""
    return hashlib.md5(url.encode("utf-8")).hexdigest()


def generate_id() -> str:
    """Opaque 16-character hex identifier."""
    return secrets.token_hex(8)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_text(text: str) -> str:
    """Normalize whitespace in text."""
    return " ".join(text.replace("\u00a0", " ").split())


def iter_batches(items: List, batch_size: int) -> Iterable[List]:
    """Yield batches of items."""
    for start in range(0, len(items), batch_size):
        yield items[start : start + batch_size]


def atomic_write_text(path: str, text: str) -> None:
    """Write text to path via a temp file in the same directory and os.replace."""
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: str, data: object) -> None:
    atomic_write_text(path, json.dumps(data, ensure_ascii=False, indent=2))


def join_capped(
    parts: Sequence[str],
    separator: str,
    limit: int,
    marker: str = TRUNCATION_MARKER,
) -> str:
    """
    Join parts with separator, never exceeding limit characters.

    When the joined text would exceed limit, it is cut and marker is
    appended exactly once; the result including the marker fits in limit.
    """
    if limit < len(marker):
        raise ValueError("limit must be at least the length of the truncation marker")

    pieces: List[str] = []
    total = 0
    truncated = False

    for part in parts:
        piece = part if not pieces else separator + part
        if total + len(piece) > limit:
            pieces.append(piece)
            truncated = True
            break
        pieces.append(piece)
        total += len(piece)

    text = "".join(pieces)
    if not truncated:
        return text
    return text[: limit - len(marker)] + marker
