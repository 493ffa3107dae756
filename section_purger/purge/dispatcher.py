"""
Purge Dispatcher

Sends ban requests to the Section proxy state API and records the outcome
on the invalidation:

- Connection failures (DNS, refused, timeouts) -> FAILED, critical log
- HTTP error statuses (when http_errors is on) and other client errors
  -> FAILED, critical log with a JSON diagnostic record
- Anything else -> SUCCEEDED

send() never raises. Callers process invalidations in bulk and one failure
must not abort the rest, so every outcome is returned as a DispatchResult.
There are no retries here; the caller's queue re-enqueues failed items.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import httpx

from section_purger.purge.expressions import BanExpression
from section_purger.purge.invalidation import InvalidationLike, InvalidationState
from section_purger.purge.request import PurgeRequest
from section_purger.purge.runtime import RuntimeMeasurement


logger = logging.getLogger(__name__)


class DispatchErrorKind(Enum):
    """Why a ban request failed."""

    CONNECTION = "connection"  # Proxy API unreachable or timed out
    REMOTE = "remote"  # Proxy API answered with an error, or the client failed


@dataclass
class DispatchError:
    kind: DispatchErrorKind
    message: str
    status_code: Optional[int] = None


@dataclass
class DispatchResult:
    """Outcome of one ban request."""

    url: str
    status_code: Optional[int] = None
    error: Optional[DispatchError] = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def state(self) -> InvalidationState:
        return InvalidationState.SUCCEEDED if self.success else InvalidationState.FAILED


class Dispatcher:
    """
    Performs ban requests with httpx.

    Usage:
        dispatcher = Dispatcher(runtime=RuntimeMeasurement())
        result = await dispatcher.send(invalidation, request, expression)
        if not result.success:
            ...  # invalidation.state is already FAILED

    Inside session() all bans share one client and its connection pool:

        async with dispatcher.session(timeout=1.0, connect_timeout=1.0):
            for invalidation, request, expression in work:
                await dispatcher.send(invalidation, request, expression)

    A custom transport (e.g. httpx.MockTransport) can be injected for tests.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        runtime: Optional[RuntimeMeasurement] = None,
    ):
        self._transport = transport
        self.runtime = runtime
        self._shared: Optional[httpx.AsyncClient] = None

    def _client(
        self,
        timeout: float,
        connect_timeout: float,
        verify: Optional[bool] = None,
    ) -> httpx.AsyncClient:
        kwargs = {
            "timeout": httpx.Timeout(timeout, connect=connect_timeout),
        }
        if verify is not None:
            kwargs["verify"] = verify
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    @asynccontextmanager
    async def session(
        self,
        timeout: float,
        connect_timeout: float,
        verify: Optional[bool] = None,
    ) -> AsyncIterator[httpx.AsyncClient]:
        """Share one client between the send() calls made inside the block."""
        if self._shared is not None:
            yield self._shared
            return

        async with self._client(timeout, connect_timeout, verify) as client:
            self._shared = client
            try:
                yield client
            finally:
                self._shared = None

    async def _request(self, client: httpx.AsyncClient, request: PurgeRequest, url: str) -> httpx.Response:
        return await client.request(
            request.method,
            url,
            headers=request.headers,
            auth=request.auth,
        )

    async def send(
        self,
        invalidation: InvalidationLike,
        request: PurgeRequest,
        expression: BanExpression,
    ) -> DispatchResult:
        """
        Send one ban expression and update the invalidation state.

        Args:
            invalidation: Invalidation whose state reflects the outcome
            request: Prepared request (URI ends with "banExpression=")
            expression: Ban expression, percent-encoded onto the URI

        Returns:
            DispatchResult describing the outcome
        """
        url = request.url_for(expression)
        result = DispatchResult(url=url)
        started = time.monotonic()

        try:
            if self._shared is not None:
                response = await self._request(self._shared, request, url)
            else:
                async with self._client(request.timeout, request.connect_timeout, request.verify) as client:
                    response = await self._request(client, request, url)

            result.status_code = response.status_code
            if request.http_errors:
                response.raise_for_status()

        except (httpx.TimeoutException, httpx.NetworkError) as e:
            # Usually timeouts or other connection issues
            message = f"{type(e).__name__}: {e}"
            result.error = DispatchError(DispatchErrorKind.CONNECTION, message)
            logger.critical(f"http request for {url} responded with {message}")

        except Exception as e:
            result.error = DispatchError(DispatchErrorKind.REMOTE, str(e), result.status_code)
            # Log as much useful information as we can
            debug = json.dumps(
                {
                    "msg": str(e).replace("\n", " "),
                    "uri": url,
                    "method": request.method,
                    "options": request.options(),
                    "headers": request.headers,
                    "response": result.status_code,
                }
            )
            logger.critical(f"item failed due {type(e).__name__}, details (JSON): {debug}")

        result.duration_ms = (time.monotonic() - started) * 1000
        if self.runtime is not None:
            self.runtime.record(result.duration_ms / 1000)

        invalidation.state = result.state
        if result.success:
            logger.debug(
                f"Ban sent: {request.method} {url} -> {result.status_code} "
                f"({result.duration_ms:.1f}ms)"
            )
        return result
