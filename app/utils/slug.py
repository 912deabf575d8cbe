"""
Inkhouse - Slug Utility
Derives the URL-safe normalized title used in public post URLs.
"""

import re
import time
from typing import Optional

MAX_SLUG_LENGTH = 100
FALLBACK_SLUG = "post"

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")


def slugify(title: str) -> str:
    """Lowercase, drop anything outside [a-z0-9 -], hyphenate spaces, cap at 100 chars."""
    slug = _DISALLOWED.sub("", title.strip().lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = slug[:MAX_SLUG_LENGTH]
    return slug or FALLBACK_SLUG


def disambiguate(slug: str, timestamp_ms: Optional[int] = None) -> str:
    """Append a millisecond timestamp to a colliding slug."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{slug}-{timestamp_ms}"
