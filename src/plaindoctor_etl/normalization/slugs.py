"""URL slug helpers shared by ingestion and aggregation."""

import re
from typing import AbstractSet, MutableSet

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to '-', trim edge hyphens."""
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


def resolve_unique(candidate: str, seen: AbstractSet[str]) -> str:
    """Return ``candidate`` if unused, else the first free ``candidate-N`` (N = 1, 2, ...)."""
    if candidate not in seen:
        return candidate
    suffix = 1
    while f"{candidate}-{suffix}" in seen:
        suffix += 1
    return f"{candidate}-{suffix}"


def claim_unique(candidate: str, seen: MutableSet[str]) -> str:
    """Resolve ``candidate`` against ``seen`` and record the result."""
    slug = resolve_unique(candidate, seen)
    seen.add(slug)
    return slug
