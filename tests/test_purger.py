"""
Tests for the Section purgers and the invalidation router.

These tests verify:
- State transitions for every invalidation handed to a purger
- Per-item failure isolation
- Tag bundling and the digest header
- Routing of invalidation types to purger methods
- Capacity reporting (time hint, cooldown, request limit)
"""

from unittest.mock import patch

import httpx
import pytest

from section_purger.purge import (
    Invalidation,
    InvalidationState,
    InvalidationType,
    PurgerSettings,
    RouterMisuseError,
    SectionBundledPurger,
    SectionPurger,
    StaticKeyRepository,
    TagHasher,
    create_purger,
    process,
    route_type_to_method,
)
from section_purger.purge.router import ROUTES, UNSUPPORTED_METHOD


# =============================================================================
# STATE TRANSITION TESTS
# =============================================================================

class TestStateTransitions:
    """Test invalidation states through a full purge."""

    @pytest.mark.asyncio
    async def test_everything_succeeds(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidation = Invalidation(InvalidationType.EVERYTHING)
        assert invalidation.state is InvalidationState.NEW

        await process(purger, [invalidation])

        assert invalidation.state is InvalidationState.SUCCEEDED
        assert transport.ban_expressions == ["obj.status != 0"]

    @pytest.mark.asyncio
    async def test_processing_while_in_flight(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidation = Invalidation(InvalidationType.PATH, "news/*")
        in_flight = []

        original = transport.handler

        def handler(request):
            in_flight.append(invalidation.state)
            return original(request)

        transport.handler = handler
        await process(purger, [invalidation])

        assert in_flight == [InvalidationState.PROCESSING]
        assert invalidation.state is InvalidationState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_every_item_reaches_terminal_state(self, settings, make_purger, tag_invalidations):
        purger = make_purger(settings)
        invalidations = tag_invalidations(3) + [
            Invalidation(InvalidationType.URL, "not a url"),
            Invalidation(InvalidationType.DOMAIN, "example.com"),
            Invalidation(InvalidationType.EVERYTHING),
            Invalidation(InvalidationType.REGEX, 'req.url ~ "\\.css$"'),
        ]

        await process(purger, invalidations)

        assert all(inv.state.is_terminal for inv in invalidations)

    @pytest.mark.asyncio
    async def test_invalid_url_does_not_abort_siblings(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidations = [
            Invalidation(InvalidationType.URL, "https://example.com/a"),
            Invalidation(InvalidationType.URL, "not a url"),
            Invalidation(InvalidationType.URL, "https://example.com/b"),
        ]

        await process(purger, invalidations)

        assert [inv.state for inv in invalidations] == [
            InvalidationState.SUCCEEDED,
            InvalidationState.FAILED,
            InvalidationState.SUCCEEDED,
        ]
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_connection_failure_fails_items(self, settings, make_purger, make_transport):
        purger = make_purger(settings, transport=make_transport(error=httpx.ConnectError("refused")))
        invalidations = [Invalidation(InvalidationType.PATH, "a"), Invalidation(InvalidationType.PATH, "b")]

        await process(purger, invalidations)

        assert all(inv.state is InvalidationState.FAILED for inv in invalidations)

    @pytest.mark.asyncio
    async def test_missing_key_fails_item(self, settings, make_purger, transport):
        purger = make_purger(settings, keys=StaticKeyRepository({}))
        invalidation = Invalidation(InvalidationType.DOMAIN, "example.com")

        await process(purger, [invalidation])

        assert invalidation.state is InvalidationState.FAILED
        assert transport.requests == []


# =============================================================================
# BUNDLED PURGER TESTS
# =============================================================================

class TestBundledPurger:
    """Test tag bundling and single-shot everything bans."""

    @pytest.mark.asyncio
    async def test_tags_bundled_into_one_request(self, settings, make_purger, transport, tag_invalidations):
        purger = make_purger(settings)
        invalidations = tag_invalidations(10)

        await process(purger, invalidations)

        assert len(transport.requests) == 1
        assert all(inv.state is InvalidationState.SUCCEEDED for inv in invalidations)

        digest = TagHasher().digest(inv.expression for inv in invalidations)
        assert transport.ban_expressions == [
            f'obj.http.Section-Cache-Tags ~ "({digest.pattern})+"'
        ]
        assert transport.requests[0].headers["section-cache-tags"] == str(digest)

    @pytest.mark.asyncio
    async def test_tag_batches(self, settings, make_purger, transport, tag_invalidations):
        purger = make_purger(settings)
        invalidations = tag_invalidations(600)
        invalidations[10].expression = ""

        await process(purger, invalidations)

        assert len(transport.requests) == 3
        failed = [inv for inv in invalidations if inv.state is InvalidationState.FAILED]
        assert failed == [invalidations[10]]

    @pytest.mark.asyncio
    async def test_batch_failure_fails_whole_batch(self, settings, make_purger, make_transport, tag_invalidations):
        purger = make_purger(settings, transport=make_transport(status_code=503))
        invalidations = tag_invalidations(5)

        await process(purger, invalidations)

        assert all(inv.state is InvalidationState.FAILED for inv in invalidations)

    @pytest.mark.asyncio
    async def test_everything_sent_once(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidations = [Invalidation(InvalidationType.EVERYTHING) for _ in range(3)]

        await process(purger, invalidations)

        assert len(transport.requests) == 1
        assert all(inv.state is InvalidationState.SUCCEEDED for inv in invalidations)

    @pytest.mark.asyncio
    async def test_other_types_one_request_each(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidations = [
            Invalidation(InvalidationType.PATH, "a"),
            Invalidation(InvalidationType.WILDCARD_PATH, "b/*"),
            Invalidation(InvalidationType.RAW, "obj.status == 404"),
        ]

        await process(purger, invalidations)

        assert transport.ban_expressions == [
            'req.url ~ "^/a$"',
            'req.url ~ "^/b/.*$"',
            "obj.status == 404",
        ]

    @pytest.mark.asyncio
    async def test_site_name_scoping(self, make_purger, transport):
        purger = make_purger(PurgerSettings(site_name="www.example.com"))

        await process(purger, [Invalidation(InvalidationType.PATH, "news")])

        assert transport.ban_expressions == [
            'req.url ~ "^/news$" && req.http.host == "www.example.com"'
        ]

    @pytest.mark.asyncio
    async def test_generic_invalidate_raises(self, settings, make_purger):
        purger = make_purger(settings)
        with pytest.raises(RouterMisuseError):
            await purger.invalidate([Invalidation(InvalidationType.TAG, "node:1")])


# =============================================================================
# SINGLE PURGER TESTS
# =============================================================================

class TestSinglePurger:
    """Test the one-request-per-item purger."""

    @pytest.mark.asyncio
    async def test_one_request_per_tag(self, settings, make_purger, transport, tag_invalidations):
        purger = make_purger(settings, bundled=False)
        invalidations = tag_invalidations(3)

        await process(purger, invalidations)

        assert len(transport.requests) == 3
        assert transport.ban_expressions[0] == 'obj.http.Section-Cache-Tags ~ "(tag:0)+"'
        assert "section-cache-tags" not in transport.requests[0].headers

    @pytest.mark.asyncio
    async def test_mixed_types(self, settings, make_purger, transport):
        purger = make_purger(settings, bundled=False)
        invalidations = [
            Invalidation(InvalidationType.DOMAIN, "example.com"),
            Invalidation(InvalidationType.EVERYTHING),
        ]

        await process(purger, invalidations)

        assert transport.ban_expressions == ['req.http.host == "example.com"', "obj.status != 0"]
        assert all(inv.state is InvalidationState.SUCCEEDED for inv in invalidations)

    @pytest.mark.asyncio
    async def test_one_client_per_call(self, settings, make_purger, transport, tag_invalidations):
        purger = make_purger(settings, bundled=False)
        dispatcher = purger.dispatcher

        with patch.object(dispatcher, "_client", wraps=dispatcher._client) as client_factory:
            await process(purger, tag_invalidations(3))

        assert client_factory.call_count == 1
        assert len(transport.requests) == 3

    def test_routes_everything_to_invalidate(self, settings, make_purger):
        purger = make_purger(settings, bundled=False)
        for invalidation_type in InvalidationType:
            assert purger.route_type_to_method(invalidation_type) == "invalidate"


# =============================================================================
# ROUTER TESTS
# =============================================================================

class TestRouter:
    """Test type-to-method routing."""

    @pytest.mark.parametrize(
        "invalidation_type,method",
        [
            ("tag", "invalidate_tags"),
            ("domain", "invalidate_domain"),
            ("url", "invalidate_urls"),
            ("wildcardurl", "invalidate_wildcard_urls"),
            ("everything", "invalidate_everything"),
            ("wildcardpath", "invalidate_wildcard_paths"),
            ("path", "invalidate_paths"),
            ("regex", "invalidate_regex"),
            ("raw", "invalidate_raw_expression"),
        ],
    )
    def test_route(self, invalidation_type, method):
        assert route_type_to_method(invalidation_type) == method

    def test_unknown_type(self):
        assert route_type_to_method("surrogate") == UNSUPPORTED_METHOD

    def test_every_route_has_a_handler(self, settings, make_purger):
        purger = make_purger(settings)
        for method in ROUTES.values():
            assert callable(getattr(purger, method))

    @pytest.mark.asyncio
    async def test_groups_by_type_in_first_seen_order(self, settings, make_purger, transport):
        purger = make_purger(settings)
        invalidations = [
            Invalidation(InvalidationType.PATH, "a"),
            Invalidation(InvalidationType.DOMAIN, "example.com"),
            Invalidation(InvalidationType.PATH, "b"),
        ]

        result = await process(purger, invalidations)

        assert result == invalidations
        assert transport.ban_expressions == [
            'req.url ~ "^/a$"',
            'req.url ~ "^/b$"',
            'req.http.host == "example.com"',
        ]


# =============================================================================
# CAPACITY TESTS
# =============================================================================

class TestCapacity:
    """Test pacing hints reported to the scheduler."""

    def test_static_time_hint(self, make_purger):
        purger = make_purger(
            PurgerSettings(runtime_measurement=False, timeout=2.0, connect_timeout=1.5)
        )
        assert not purger.has_runtime_measurement()
        assert purger.get_time_hint() == 3.5

    @pytest.mark.asyncio
    async def test_measured_time_hint(self, settings, make_purger):
        purger = make_purger(settings)
        assert purger.has_runtime_measurement()

        await process(purger, [Invalidation(InvalidationType.PATH, "a")])

        assert purger.runtime.sample_count == 1
        assert 0.1 <= purger.get_time_hint() <= 10.0

    @pytest.mark.asyncio
    async def test_no_measurement_when_disabled(self, make_purger, transport):
        purger = make_purger(PurgerSettings(runtime_measurement=False))
        invalidation = Invalidation(InvalidationType.PATH, "a")

        await process(purger, [invalidation])

        assert len(transport.requests) == 1
        assert invalidation.state is InvalidationState.SUCCEEDED
        assert purger.runtime.sample_count == 0

    def test_cooldown_and_limit(self, make_purger):
        purger = make_purger(PurgerSettings(cooldown_time=1.5, max_requests=20))
        assert purger.get_cooldown_time() == 1.5
        assert purger.get_ideal_conditions_limit() == 20

    def test_label(self, settings, make_purger):
        assert make_purger(settings).label == "Test Purger"
        assert make_purger(PurgerSettings()).label == "Section Bundled Purger"

    def test_supported_types(self, settings, make_purger):
        assert set(make_purger(settings).get_types()) == set(InvalidationType)

    def test_create_purger(self, settings, keys):
        assert isinstance(create_purger(settings, keys=keys), SectionBundledPurger)
        assert isinstance(create_purger(settings, bundled=False, keys=keys), SectionPurger)
