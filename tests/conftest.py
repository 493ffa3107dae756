"""
Pytest Configuration and Shared Fixtures

Provides purger settings, an in-memory key repository and a recording
httpx transport so purgers can be exercised without a network.
"""

from typing import Callable, List, Optional

import httpx
import pytest

from section_purger.purge import (
    Invalidation,
    InvalidationType,
    PurgerSettings,
    SectionBundledPurger,
    SectionPurger,
    StaticKeyRepository,
)


# ============================================================================
# Transport
# ============================================================================

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it receives."""

    def __init__(self, status_code: int = 200, error: Optional[Exception] = None):
        self.requests: List[httpx.Request] = []
        self.status_code = status_code
        self.error = error
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"status": "ok"})

    @property
    def ban_expressions(self) -> List[str]:
        return [request.url.params.get("banExpression") for request in self.requests]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def make_transport() -> Callable:
    """Factory for transports answering with a status code or raising an error."""
    return RecordingTransport


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture
def settings() -> PurgerSettings:
    """Purger settings pointing at a test proxy."""
    return PurgerSettings(
        name="Test Purger",
        account="1234",
        application="5678",
        environment="Production",
        proxy_name="varnish",
        username="api-user",
        password_key="section_api",
    )


@pytest.fixture
def keys() -> StaticKeyRepository:
    """Resolves the test key and the default password_key of PurgerSettings."""
    return StaticKeyRepository({"section_api": "s3cret", "password": "s3cret"})


# ============================================================================
# Purgers
# ============================================================================

@pytest.fixture
def make_purger(keys, transport) -> Callable:
    """Factory for purgers wired to the recording transport."""

    def _make(settings: PurgerSettings, bundled: bool = True, **kwargs):
        kwargs.setdefault("keys", keys)
        kwargs.setdefault("transport", transport)
        cls = SectionBundledPurger if bundled else SectionPurger
        return cls(settings, **kwargs)

    return _make


@pytest.fixture
def tag_invalidations() -> Callable:
    """Factory for tag invalidations named tag:0 .. tag:n-1."""

    def _make(count: int) -> List[Invalidation]:
        return [Invalidation(InvalidationType.TAG, f"tag:{i}") for i in range(count)]

    return _make
