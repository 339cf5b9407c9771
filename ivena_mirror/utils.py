"""Utility helpers for label normalization and cache filenames."""

from __future__ import annotations

import posixpath
from urllib.parse import urlsplit

NBSP = "\u00a0"


def normalize_label(value: str) -> str:
    """Collapse non-breaking spaces, trim and lower-case visible link text."""
    return value.replace(NBSP, " ").strip().lower()


def strip_query(url: str) -> str:
    """Drop any query string and fragment from a URL or path."""
    return url.split("#", 1)[0].split("?", 1)[0]


def cache_filename(url: str) -> str:
    """Lower-cased basename of the URL path, without query string."""
    path = strip_query(url.strip())
    if "://" in path or path.startswith("//"):
        path = urlsplit(path).path
    return posixpath.basename(path.rstrip("/")).lower()
