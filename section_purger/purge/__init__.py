"""
Section Purge Layer

Translates invalidation instructions into Varnish ban expressions and sends
them to the Section proxy state API.

Key components:
- ExpressionCompiler: per-type ban expressions with safe escaping
- TagHasher: order-independent digests of cache tag sets
- Batcher: groups tag invalidations into batches of 250
- RequestBuilder: URI, headers, auth and timeouts for one request
- Dispatcher: sends the request and records the invalidation outcome
- Router: maps invalidation types to purger methods
- CacheTagsHeader: the response header bans are matched against

Usage:
    settings = get_purger_settings()
    purger = SectionBundledPurger(settings)

    invalidations = [
        Invalidation(InvalidationType.TAG, "node:1"),
        Invalidation(InvalidationType.PATH, "news/*"),
    ]
    await process(purger, invalidations)

    for invalidation in invalidations:
        print(invalidation.state)  # SUCCEEDED or FAILED

    # Pacing hints for the scheduler
    purger.get_time_hint()
    purger.get_cooldown_time()
    purger.get_ideal_conditions_limit()
"""

from section_purger.purge.batching import BATCH_LIMIT, Batch, Batcher
from section_purger.purge.config import (
    DEFAULT_TAGS_HEADER,
    HeaderSetting,
    PurgerSettings,
    get_purger_settings,
)
from section_purger.purge.dispatcher import (
    Dispatcher,
    DispatchError,
    DispatchErrorKind,
    DispatchResult,
)
from section_purger.purge.errors import (
    ConfigurationError,
    InvalidExpressionError,
    PurgerError,
    RouterMisuseError,
)
from section_purger.purge.expressions import (
    BanExpression,
    ExpressionCompiler,
    escape_ban_pattern,
)
from section_purger.purge.hashing import TagDigest, TagHasher
from section_purger.purge.headers import (
    CacheTagsHeader,
    CacheTagsHeaderValue,
    cache_tags_header,
)
from section_purger.purge.invalidation import (
    Invalidation,
    InvalidationLike,
    InvalidationState,
    InvalidationType,
)
from section_purger.purge.purger import (
    SectionBundledPurger,
    SectionPurger,
    SectionPurgerBase,
    create_purger,
)
from section_purger.purge.request import PurgeRequest, RequestBuilder
from section_purger.purge.router import ROUTES, dispatch, process, route_type_to_method
from section_purger.purge.runtime import RuntimeMeasurement
from section_purger.purge.tokens import (
    EnvKeyRepository,
    InvalidationTokens,
    KeyRepository,
    StaticKeyRepository,
    TokenReplacer,
)

__all__ = [
    # Config
    "PurgerSettings",
    "HeaderSetting",
    "get_purger_settings",
    "DEFAULT_TAGS_HEADER",
    # Model
    "Invalidation",
    "InvalidationLike",
    "InvalidationState",
    "InvalidationType",
    # Errors
    "PurgerError",
    "InvalidExpressionError",
    "RouterMisuseError",
    "ConfigurationError",
    # Compilation
    "BanExpression",
    "ExpressionCompiler",
    "escape_ban_pattern",
    "TagDigest",
    "TagHasher",
    "Batch",
    "Batcher",
    "BATCH_LIMIT",
    # Requests
    "PurgeRequest",
    "RequestBuilder",
    "Dispatcher",
    "DispatchError",
    "DispatchErrorKind",
    "DispatchResult",
    "RuntimeMeasurement",
    # Collaborators
    "TokenReplacer",
    "InvalidationTokens",
    "KeyRepository",
    "EnvKeyRepository",
    "StaticKeyRepository",
    # Purgers
    "SectionPurgerBase",
    "SectionPurger",
    "SectionBundledPurger",
    "create_purger",
    "ROUTES",
    "route_type_to_method",
    "dispatch",
    "process",
    # Response header
    "CacheTagsHeader",
    "CacheTagsHeaderValue",
    "cache_tags_header",
]
