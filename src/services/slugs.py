import logging
import re
import time
from typing import Callable, Optional

from services.text_normalizer import normalize_text

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "category"

_SEPARATOR_RE = re.compile(r"[ ,]")
_SLUG_DISALLOWED_RE = re.compile(r"[^a-zA-Z0-9\u0600-\u06ff\-]")
_REPEATED_HYPHEN_RE = re.compile(r"-+")


def base_slug(name: str, now: Optional[Callable[[], float]] = None) -> str:
    slug = normalize_text(name)
    slug = _SEPARATOR_RE.sub("-", slug)
    slug = _SLUG_DISALLOWED_RE.sub("", slug)
    slug = _REPEATED_HYPHEN_RE.sub("-", slug)
    slug = slug.strip("-")

    if slug:
        return slug

    clock = now or time.time
    return f"{FALLBACK_PREFIX}-{int(clock())}"


def unique_slug(name: str, exists: Callable[[str], bool]) -> str:
    """Return the base slug of ``name``, suffixed ``-1``, ``-2``... until ``exists`` is false.

    The check and the later insert are separate statements, so two writers can
    still pick the same slug; the store's unique index catches that case.
    """
    original = base_slug(name)
    slug = original
    counter = 1

    while exists(slug):
        slug = f"{original}-{counter}"
        counter += 1

    logger.debug(f"Unique slug for '{name}': {slug}")
    return slug
