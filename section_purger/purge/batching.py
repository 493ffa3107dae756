"""
Tag Invalidation Batching

Groups tag invalidations into batches of at most BATCH_LIMIT so that many
tags can be banned with a single request. Invalid invalidations are marked
FAILED individually and left out of every batch; they never abort the group.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from section_purger.purge.errors import InvalidExpressionError
from section_purger.purge.invalidation import (
    InvalidationLike,
    InvalidationState,
    InvalidationType,
)


logger = logging.getLogger(__name__)

BATCH_LIMIT = 250


@dataclass
class Batch:
    """Tag invalidations sent together, with their tags in input order."""

    invalidations: List[InvalidationLike] = field(default_factory=list)
    expressions: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.invalidations)

    def add(self, invalidation: InvalidationLike) -> None:
        self.invalidations.append(invalidation)
        self.expressions.append(invalidation.expression)

    def set_state(self, state: InvalidationState) -> None:
        for invalidation in self.invalidations:
            invalidation.state = state


class Batcher:
    """
    Splits tag invalidations into consecutive fixed-size batches.

    Usage:
        batches = Batcher().group(invalidations)
        for batch in batches:
            digest = hasher.digest(batch.expressions)
    """

    def __init__(self, limit: int = BATCH_LIMIT):
        if limit < 1:
            raise ValueError(f"batch limit must be positive, got {limit}")
        self.limit = limit

    def group(self, invalidations: Iterable[InvalidationLike]) -> List[Batch]:
        """
        Group tag invalidations, validating each one.

        Returns:
            Non-empty batches in input order
        """
        batches: List[Batch] = []
        current = Batch()
        rejected = 0

        for invalidation in invalidations:
            try:
                if invalidation.type is not InvalidationType.TAG:
                    raise InvalidExpressionError(
                        f"cannot batch a {invalidation.type.value} invalidation with tags",
                        expression=invalidation.expression,
                    )
                invalidation.validate_expression()
            except InvalidExpressionError as e:
                logger.error(f"Invalid expression: {invalidation.expression!r} - {e}")
                invalidation.state = InvalidationState.FAILED
                rejected += 1
                continue

            if len(current) >= self.limit:
                batches.append(current)
                current = Batch()
            current.add(invalidation)

        if current.invalidations:
            batches.append(current)

        logger.debug(
            f"Grouped {sum(len(b) for b in batches)} tag invalidations into "
            f"{len(batches)} batches ({rejected} rejected)"
        )
        return batches
