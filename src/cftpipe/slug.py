"""Subdomain label generation and validation."""

from __future__ import annotations

import random
import re
import secrets
import time

_INVALID_CHARS_RE = re.compile(r"[^a-z0-9-]")
_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

_FALLBACK_PREFIX = "slug"


def _random_part() -> str:
    try:
        return secrets.token_hex(3)
    except (NotImplementedError, OSError):
        # No OS entropy source; a weak value is fine for a subdomain label
        return f"{random.randint(0, 99999):05d}"  # noqa: S311


def _sanitize(text: str) -> str:
    return _INVALID_CHARS_RE.sub("", text.lower())


def generate_slug(prefix: str = _FALLBACK_PREFIX) -> str:
    """Return ``<prefix>-<HHMMSS>-<random>`` reduced to ``[a-z0-9-]``.

    Unique enough for a handful of people starting tunnels at the same
    second, not cryptographically unique.
    """
    clean_prefix = _sanitize(prefix).strip("-") or _FALLBACK_PREFIX
    stamp = time.strftime("%H%M%S")
    return _sanitize(f"{clean_prefix}-{stamp}-{_random_part()}")


def normalize_slug(slug: str) -> str:
    return slug.strip().lower()


def is_valid_slug(slug: str) -> bool:
    """Return True if *slug* is usable as a single DNS label."""
    return _LABEL_RE.match(normalize_slug(slug)) is not None


def slug_from_hostname(hostname: str) -> str:
    """Return the leftmost label of *hostname*."""
    return hostname.split(".", 1)[0]
