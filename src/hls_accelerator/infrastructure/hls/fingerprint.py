"""Stable identifiers derived from source URLs."""

from __future__ import annotations

import hashlib


def fingerprint(url: str) -> str:
    """Return the task id for a source playlist URL (md5 hex digest).

    The raw string is hashed as-is: two spellings of the same URL (query
    order, escaping) are two different tasks.
    """
    return hashlib.md5(url.encode("utf-8")).hexdigest()
