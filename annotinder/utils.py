"""Utility helpers for annotinder."""
from __future__ import annotations

import hashlib


def stable_hash(*parts: str) -> str:
    """Return SHA256 hex digest of the UTF-8 encoded parts."""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part.encode("utf-8"))
    return hasher.hexdigest()
