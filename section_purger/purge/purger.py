"""
Section Purgers

Two purgers share the same compilation, request and dispatch machinery:

- SectionPurger: one HTTP request per invalidation, any mix of types,
  through the generic invalidate() method.
- SectionBundledPurger: routes each invalidation type to its own method.
  Tags are bundled into digest-based bans of up to 250 tags per request and
  "everything" is sent once for all queued items. Other types cannot be
  combined in a single ban and get one request each.

Usage:
    purger = SectionBundledPurger(get_purger_settings())
    await process(purger, invalidations)
"""

import logging
from typing import List, Optional, Sequence

import httpx

from section_purger.purge.batching import Batcher
from section_purger.purge.config import PurgerSettings
from section_purger.purge.dispatcher import Dispatcher, DispatchResult
from section_purger.purge.errors import (
    ConfigurationError,
    InvalidExpressionError,
    RouterMisuseError,
)
from section_purger.purge.expressions import BanExpression, ExpressionCompiler
from section_purger.purge.hashing import TagDigest, TagHasher
from section_purger.purge.invalidation import (
    InvalidationLike,
    InvalidationState,
    InvalidationType,
)
from section_purger.purge.request import RequestBuilder
from section_purger.purge.router import UNSUPPORTED_METHOD, route_type_to_method
from section_purger.purge.runtime import RuntimeMeasurement
from section_purger.purge.tokens import EnvKeyRepository, KeyRepository, TokenReplacer


logger = logging.getLogger(__name__)


class SectionPurgerBase:
    """Shared behaviour of the Section purgers."""

    default_label = "Section Purger"

    def __init__(
        self,
        settings: PurgerSettings,
        keys: Optional[KeyRepository] = None,
        tokens: Optional[TokenReplacer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        runtime: Optional[RuntimeMeasurement] = None,
        hasher: Optional[TagHasher] = None,
    ):
        """
        Initialize the purger.

        Args:
            settings: Immutable purger configuration
            keys: Key repository resolving the API password (default: environment)
            tokens: Token service for paths and header values
            transport: httpx transport override (tests, proxies)
            runtime: Runtime measurement used for time hints
            hasher: Tag hasher for bundled tag bans
        """
        self.settings = settings
        self.runtime = runtime or RuntimeMeasurement(
            initial_hint=settings.timeout + settings.connect_timeout
        )
        self.hasher = hasher or TagHasher()
        self.compiler = ExpressionCompiler(
            site_name=settings.site_name,
            tags_header=settings.tags_header,
        )
        self.requests = RequestBuilder(settings, keys=keys or EnvKeyRepository(), tokens=tokens)
        self.dispatcher = Dispatcher(
            transport=transport,
            runtime=self.runtime if settings.runtime_measurement else None,
        )

    @property
    def label(self) -> str:
        return self.settings.name or self.default_label

    # -------------------------------------------------------------------------
    # Capacity
    # -------------------------------------------------------------------------

    def get_types(self) -> List[InvalidationType]:
        return list(InvalidationType)

    def get_cooldown_time(self) -> float:
        """Seconds the caller should wait after a burst of requests."""
        return self.settings.cooldown_time

    def get_ideal_conditions_limit(self) -> int:
        """Maximum number of requests per execution window."""
        return self.settings.max_requests

    def has_runtime_measurement(self) -> bool:
        return bool(self.settings.runtime_measurement)

    def get_time_hint(self) -> float:
        """Estimated seconds per request."""
        if self.settings.runtime_measurement:
            return self.runtime.get_time_hint()
        # Connection and request timeouts can add up, assume the worst
        return self.settings.connect_timeout + self.settings.timeout

    def route_type_to_method(self, invalidation_type) -> str:
        return route_type_to_method(invalidation_type)

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def _session(self):
        """One HTTP client for all bans of a handler call."""
        s = self.settings
        return self.dispatcher.session(
            timeout=s.timeout,
            connect_timeout=s.connect_timeout,
            verify=bool(s.verify) if s.is_https else None,
        )

    async def _send(
        self,
        invalidation: InvalidationLike,
        expression: BanExpression,
        digest: Optional[TagDigest] = None,
    ) -> Optional[DispatchResult]:
        try:
            request = self.requests.build(invalidation, digest=digest)
        except ConfigurationError as e:
            invalidation.state = InvalidationState.FAILED
            logger.critical(f"Cannot build purge request for {self.label}: {e}")
            return None
        return await self.dispatcher.send(invalidation, request, expression)

    async def _invalidate_each(self, invalidations: Sequence[InvalidationLike]) -> None:
        """Compile and send one ban per invalidation, by its own type."""
        async with self._session():
            for invalidation in invalidations:
                invalidation.state = InvalidationState.PROCESSING
                label = invalidation.type.value.upper()
                try:
                    invalidation.validate_expression()
                    expression = self.compiler.compile(invalidation.type, invalidation.expression)
                except InvalidExpressionError as e:
                    invalidation.state = InvalidationState.FAILED
                    logger.error(f"[{label}] Invalid expression: {invalidation.expression!r} - {e}")
                    continue

                logger.debug(
                    f"[{label}] expression `{invalidation.expression}` was replaced to be: `{expression}`"
                )
                await self._send(invalidation, expression)

    # -------------------------------------------------------------------------
    # Per-type handlers (see router.ROUTES)
    # -------------------------------------------------------------------------

    async def invalidate_tags(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self._invalidate_each(invalidations)

    async def invalidate_urls(self, invalidations: Sequence[InvalidationLike]) -> None:
        """
        Invalidate absolute URLs, e.g. https://example.com/favicon.ico.

        The scheme is specific: purging an http URL keeps the https one.
        """
        await self._invalidate_each(invalidations)

    async def invalidate_wildcard_urls(self, invalidations: Sequence[InvalidationLike]) -> None:
        # URLs already support "*"
        await self.invalidate_urls(invalidations)

    async def invalidate_paths(self, invalidations: Sequence[InvalidationLike]) -> None:
        """Invalidate paths without host, e.g. news/article-1."""
        await self._invalidate_each(invalidations)

    async def invalidate_wildcard_paths(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self.invalidate_paths(invalidations)

    async def invalidate_domain(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self._invalidate_each(invalidations)

    async def invalidate_regex(self, invalidations: Sequence[InvalidationLike]) -> None:
        """
        Send complete ban expressions, e.g. req.url ~ "\\.(jpg|css)$".

        The site clause is never appended; the expression is used as given.
        """
        await self._invalidate_each(invalidations)

    async def invalidate_raw_expression(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self._invalidate_each(invalidations)

    async def invalidate_everything(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self._invalidate_each(invalidations)


class SectionPurger(SectionPurgerBase):
    """Purger that sends one HTTP request per invalidation."""

    default_label = "Section Purger"

    def route_type_to_method(self, invalidation_type) -> str:
        # Every type goes through the generic entry point
        return UNSUPPORTED_METHOD

    async def invalidate(self, invalidations: Sequence[InvalidationLike]) -> None:
        await self._invalidate_each(invalidations)


class SectionBundledPurger(SectionPurgerBase):
    """Purger that bundles tag and "everything" invalidations."""

    default_label = "Section Bundled Purger"

    def __init__(self, settings: PurgerSettings, batcher: Optional[Batcher] = None, **kwargs):
        super().__init__(settings, **kwargs)
        self.batcher = batcher or Batcher()

    async def invalidate(self, invalidations: Sequence[InvalidationLike]) -> None:
        # Every supported type has its own method, reaching this is a caller bug
        message = (
            "invalidate() called on a multi-type purger which routes each "
            "invalidation type to its own method"
        )
        logger.critical(message)
        raise RouterMisuseError(message)

    async def invalidate_tags(self, invalidations: Sequence[InvalidationLike]) -> None:
        """Send one digest-based ban per batch of up to 250 tags."""
        for invalidation in invalidations:
            invalidation.state = InvalidationState.PROCESSING

        batches = self.batcher.group(invalidations)
        async with self._session():
            for batch in batches:
                digest = self.hasher.digest(batch.expressions)
                expression = self.compiler.bundled_tags(digest)
                lead = batch.invalidations[0]
                logger.debug(
                    f"[TAG] {len(batch)} tag invalidations were bundled to be: `{expression}`"
                )
                await self._send(lead, expression, digest=digest)
                batch.set_state(lead.state)

    async def invalidate_everything(self, invalidations: Sequence[InvalidationLike]) -> None:
        """Ban everything once, however many "everything" items are queued."""
        if not invalidations:
            return
        for invalidation in invalidations:
            invalidation.state = InvalidationState.PROCESSING

        expression = self.compiler.everything()
        lead = invalidations[0]
        logger.debug(f"[EVERYTHING] invalidating with expression `{expression}`")
        await self._send(lead, expression)

        for invalidation in invalidations:
            invalidation.state = lead.state


def create_purger(
    settings: PurgerSettings,
    bundled: bool = True,
    **kwargs,
) -> SectionPurgerBase:
    """Create a bundled or a one-request-per-item purger."""
    if bundled:
        return SectionBundledPurger(settings, **kwargs)
    return SectionPurger(settings, **kwargs)
