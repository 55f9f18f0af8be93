"""Hashing and path helpers."""

from __future__ import annotations

import hashlib
import posixpath

MAX_EMBED_STRING_LENGTH = 25_000
SUPPORTED_FILE_TYPES = ("md", "canvas")


def content_key(text: str) -> str:
    """Return the store key for a file path or block path."""
    return hashlib.sha256(text.encode()).hexdigest()


def content_hash(text: str) -> str:
    """Return the content hash of *text* after trimming surrounding whitespace."""
    return hashlib.sha256(text.strip().encode()).hexdigest()


def path_to_breadcrumbs(path: str) -> str:
    """Turn ``"folder/note.md"`` into ``"folder > note"``."""
    return path.replace(".md", "", 1).replace("/", " > ")


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path.

    - Converts backslashes to forward slashes
    - Resolves .. and . references
    - Removes leading and trailing slashes

    Examples:
        normalize_path("notes/a.md") -> "notes/a.md"
        normalize_path("/notes//a.md") -> "notes/a.md"
        normalize_path("notes/../a.md") -> "a.md"
        normalize_path("") -> ""
    """
    path = path.replace("\\", "/").strip()
    if not path:
        return ""

    path = posixpath.normpath(path).strip("/")

    return "" if path == "." else path


def matches_any(path: str, patterns: tuple[str, ...] | list[str]) -> str | None:
    """Return the first pattern that occurs in *path* as a substring, else None."""
    for pattern in patterns:
        if pattern and pattern in path:
            return pattern
    return None
