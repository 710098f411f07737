"""
Slug generation and validation for organization and fund subdomains.
"""

from __future__ import annotations

import re
from typing import Optional

MAX_SLUG_LENGTH = 63  # DNS label limit

RESERVED_SLUGS = frozenset(
    {
        "www", "api", "app", "admin", "login", "register", "portal",
        "dashboard", "settings", "pricing", "docs", "help", "support",
        "status", "blog", "mail", "ftp", "ssh", "cdn", "static",
    }
)

_SLUG_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(name: str) -> str:
    """Generate a URL-safe slug from a display name."""
    slug = _NON_ALNUM.sub("-", (name or "").lower().strip())
    return slug.strip("-")[:MAX_SLUG_LENGTH]


def validate_slug(slug: str) -> Optional[str]:
    """Return an error message for an unusable slug, or None when it is valid."""
    if not slug:
        return "Slug cannot be empty"
    if len(slug) > MAX_SLUG_LENGTH:
        return "Slug must be 63 characters or fewer"
    if not _SLUG_PATTERN.match(slug):
        return (
            "Slug must contain only lowercase letters, numbers, and hyphens, "
            "and cannot start or end with a hyphen"
        )
    if slug in RESERVED_SLUGS:
        return f'"{slug}" is a reserved name and cannot be used'
    return None
