"""Utility helpers for the addon proxy."""

from __future__ import annotations

import re
import unicodedata
from typing import Hashable, Iterable, TypeVar

T = TypeVar("T", bound=Hashable)

MANIFEST_SUFFIX_RE = re.compile(r"/manifest\.json$", re.IGNORECASE)


def slugify(value: str) -> str:
    """Return a URL-friendly slug."""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower() or "tenant"


def unique_in_order(values: Iterable[T]) -> list[T]:
    """Drop repeated values while keeping first-seen order."""

    seen: set[T] = set()
    unique: list[T] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        unique.append(value)
    return unique


def normalize_base_url(value: str | None) -> str | None:
    """Return the add-on base endpoint for a configured URL.

    Whitespace, trailing slashes and a trailing ``/manifest.json`` are removed so
    that ``https://a.example/x/manifest.json`` and ``https://a.example/x/``
    resolve to the same endpoint.
    """

    if not value:
        return None
    normalized = value.strip().rstrip("/")
    normalized = MANIFEST_SUFFIX_RE.sub("", normalized).rstrip("/")
    return normalized or None


def normalize_base_urls(values: Iterable[object]) -> list[str]:
    """Normalise a configured endpoint list, dropping blanks and duplicates."""

    normalized = (
        normalize_base_url(value) for value in values if isinstance(value, str)
    )
    return unique_in_order(value for value in normalized if value)
