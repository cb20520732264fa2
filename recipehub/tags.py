# recipehub/tags.py
from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import quote, unquote

from recipehub.models import Tag

LOG = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fa5]+")

TagLookup = Callable[[str], Awaitable[Optional[Tag]]]


def generate_tag_slug(name: str) -> str:
    """
    URL-friendly slug for a tag name; CJK characters are kept as-is.
    Must stay in line with the database's generate_slug() function.
    """
    slug = (name or "").strip()
    if not slug:
        return ""
    slug = _NON_SLUG.sub("-", slug).strip("-")
    slug = re.sub(r"-+", "-", slug)
    if not slug:
        return quote(name, safe="")
    return slug.lower()


def decode_tag_slug(slug: str) -> str:
    try:
        return unquote(slug, errors="strict")
    except UnicodeDecodeError:
        return slug


def legacy_tag(name: str, usage_count: int = 0) -> Tag:
    """Stand-in for tags that only live in the old recipes.tags array."""
    return Tag(
        id="",
        name=name,
        slug=_NON_SLUG.sub("-", name.lower()),
        description=None,
        usage_count=usage_count,
    )


class TagResolver:
    """
    Ordered chain of tag lookups. The first strategy that returns a tag wins;
    later strategies are not called.
    """

    def __init__(self, strategies: Sequence[Tuple[str, TagLookup]]):
        self.strategies: List[Tuple[str, TagLookup]] = list(strategies)

    async def resolve(self, key: str) -> Optional[Tag]:
        hit = await self.resolve_with_source(key)
        return hit[1] if hit else None

    async def resolve_with_source(self, key: str) -> Optional[Tuple[str, Tag]]:
        key = (key or "").strip()
        if not key:
            return None
        for name, lookup in self.strategies:
            tag = await lookup(key)
            if tag is not None:
                LOG.debug("tag %r resolved by %s", key, name)
                return name, tag
        LOG.debug("tag %r not resolved by %d strategies", key, len(self.strategies))
        return None
