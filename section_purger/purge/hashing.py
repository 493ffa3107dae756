"""
Cache Tag Hashing

Bundled tag bans must not grow with the length of the tags themselves, so
tags are replaced by short fixed-length hashes. A response carries the
hashes of its tags in the cache tags header, and a bundled ban matches any
of the hashes of the tags being invalidated.

The digest of a tag set is order-independent and ignores duplicates.
"""

import hashlib
from dataclasses import dataclass
from typing import Iterable, Tuple


DEFAULT_HASH_LENGTH = 8


@dataclass(frozen=True)
class TagDigest:
    """Sorted, de-duplicated hashes of a set of cache tags."""

    hashes: Tuple[str, ...]

    def __str__(self) -> str:
        return " ".join(self.hashes)

    def __len__(self) -> int:
        return len(self.hashes)

    @property
    def pattern(self) -> str:
        """Alternation of all hashes, for use inside a ban regex."""
        return "|".join(self.hashes)


class TagHasher:
    """
    Deterministic hashing of cache tags.

    Usage:
        hasher = TagHasher()
        digest = hasher.digest(["node:1", "config:system.site"])
        str(digest)    # "<hash1> <hash2>"
        digest.pattern # "<hash1>|<hash2>"
    """

    def __init__(self, length: int = DEFAULT_HASH_LENGTH):
        if not 4 <= length <= 32:
            raise ValueError(f"hash length must be between 4 and 32, got {length}")
        self.length = length

    def hash_tag(self, tag: str) -> str:
        """Hash a single tag to a fixed-length hex string."""
        return hashlib.md5(tag.encode("utf-8")).hexdigest()[: self.length]

    def digest(self, tags: Iterable[str]) -> TagDigest:
        """Compute the digest of a set of tags."""
        return TagDigest(hashes=tuple(sorted({self.hash_tag(tag) for tag in tags})))
