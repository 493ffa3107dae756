"""
Invalidation Router

Maps invalidation types to the purger method that handles them. The queue
consumer calls process() with whatever it dequeued; the router groups the
invalidations by type and hands each group to the right method.

Types without a dedicated method fall back to the generic "invalidate"
method.
"""

import logging
from typing import Dict, List, Sequence, Union

from section_purger.purge.invalidation import InvalidationLike, InvalidationType


logger = logging.getLogger(__name__)

UNSUPPORTED_METHOD = "invalidate"

ROUTES: Dict[InvalidationType, str] = {
    InvalidationType.TAG: "invalidate_tags",
    InvalidationType.DOMAIN: "invalidate_domain",
    InvalidationType.URL: "invalidate_urls",
    InvalidationType.WILDCARD_URL: "invalidate_wildcard_urls",
    InvalidationType.EVERYTHING: "invalidate_everything",
    InvalidationType.WILDCARD_PATH: "invalidate_wildcard_paths",
    InvalidationType.PATH: "invalidate_paths",
    InvalidationType.REGEX: "invalidate_regex",
    InvalidationType.RAW: "invalidate_raw_expression",
}


def route_type_to_method(invalidation_type: Union[InvalidationType, str]) -> str:
    """Name of the purger method handling the given type."""
    try:
        return ROUTES[InvalidationType(invalidation_type)]
    except (ValueError, KeyError):
        return UNSUPPORTED_METHOD


async def dispatch(
    purger,
    invalidation_type: Union[InvalidationType, str],
    invalidations: Sequence[InvalidationLike],
) -> None:
    """Hand same-type invalidations to the purger method responsible for them."""
    method_name = purger.route_type_to_method(invalidation_type)
    handler = getattr(purger, method_name)
    logger.debug(f"Routing {len(invalidations)} {invalidation_type} invalidations to {method_name}()")
    await handler(list(invalidations))


async def process(purger, invalidations: Sequence[InvalidationLike]) -> List[InvalidationLike]:
    """
    Process a mixed list of invalidations.

    Groups by type (in order of first appearance) and dispatches each group.
    Per-item failures end up in the invalidation states; only router misuse
    raises.

    Returns:
        The same invalidations, with updated states
    """
    groups: Dict[InvalidationType, List[InvalidationLike]] = {}
    for invalidation in invalidations:
        groups.setdefault(invalidation.type, []).append(invalidation)

    for invalidation_type, group in groups.items():
        await dispatch(purger, invalidation_type, group)

    return list(invalidations)
