"""
Cache Tags Response Header

Responses served through the proxy carry their cache tags in a header
(Section-Cache-Tags by default). Ban expressions are matched against it:

- single tag bans match the tags themselves
- bundled tag bans match the tag hashes

so the header value holds both: the space-separated tags followed by their
digest.

Usage:
    @router.get("/news/{article_id}")
    @cache_tags_header(["node_list", "config:system.site"])
    async def get_article(article_id: str, response: Response):
        ...

    # or explicitly
    CacheTagsHeader().apply(response, ["node:1", "node_list"])
"""

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Dict, Iterable, List, Optional

from fastapi import Response

from section_purger.purge.config import DEFAULT_TAGS_HEADER
from section_purger.purge.hashing import TagDigest, TagHasher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheTagsHeaderValue:
    """Header value: the tags followed by their hashes."""

    tags: tuple
    digest: TagDigest

    def __str__(self) -> str:
        return " ".join(list(self.tags) + list(self.digest.hashes))


class CacheTagsHeader:
    """Formats the cache tags header for responses."""

    def __init__(self, header_name: str = DEFAULT_TAGS_HEADER, hasher: Optional[TagHasher] = None):
        self.header_name = header_name
        self.hasher = hasher or TagHasher()

    def get_value(self, tags: Iterable[str]) -> CacheTagsHeaderValue:
        # Keep first occurrence order, drop duplicates and blanks
        unique = tuple(dict.fromkeys(tag for tag in tags if tag))
        return CacheTagsHeaderValue(tags=unique, digest=self.hasher.digest(unique))

    def build(self, tags: Iterable[str]) -> Dict[str, str]:
        value = self.get_value(tags)
        if not value.tags:
            return {}
        return {self.header_name: str(value)}

    def apply(self, response: Response, tags: Iterable[str]) -> Response:
        """Apply the header to a FastAPI Response."""
        for key, value in self.build(tags).items():
            response.headers[key] = value
        return response


def cache_tags_header(tags: List[str], header_name: str = DEFAULT_TAGS_HEADER):
    """
    Decorator adding the cache tags header to a FastAPI endpoint.

    The endpoint must accept a `response: Response` parameter.
    """
    header = CacheTagsHeader(header_name)

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            response = kwargs.get("response")
            if response is None:
                for arg in args:
                    if isinstance(arg, Response):
                        response = arg
                        break

            if response is not None:
                header.apply(response, tags)
            else:
                logger.warning(f"{func.__name__} has no Response parameter, cache tags not set")

            return result

        return wrapper

    return decorator
