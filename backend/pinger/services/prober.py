"""Prober service - performs one HTTP check against an endpoint.

Latency is time to first byte: it is taken when the response head arrives,
before the body is downloaded, so it reflects how quickly the server
answers rather than how large the payload is.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..schemas import Endpoint, Hit, HitStatus
from .storage import Storage

logger = logging.getLogger(__name__)


class FirstByteTimer:
    """Measures time from dispatch to the first response of a request."""

    def __init__(self):
        self.started_at: Optional[float] = None
        self.first_byte_at: Optional[float] = None

    def start(self):
        self.started_at = time.perf_counter()

    def mark(self):
        """Record the first response. Later calls (e.g. redirect hops) are ignored."""
        if self.first_byte_at is None:
            self.first_byte_at = time.perf_counter()

    async def trace(self, event_name: str, info: dict):
        """httpcore trace hook, fires for http11 and http2 connections."""
        if event_name.endswith(".receive_response_headers.complete"):
            self.mark()

    @property
    def latency_ms(self) -> int:
        """Milliseconds to first byte, 0 if nothing arrived.

        A response that did arrive is never reported as 0 so that it stays
        distinguishable from a timeout.
        """
        if self.started_at is None or self.first_byte_at is None:
            return 0
        return max(1, int((self.first_byte_at - self.started_at) * 1000))


class Prober:
    """Executes HTTP GET checks and records them as hits."""

    def __init__(
        self,
        storage: Storage,
        client: Optional[httpx.AsyncClient] = None,
        record_transport_errors: bool = True,
    ):
        self.storage = storage
        self.record_transport_errors = record_transport_errors
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self):
        """Close the HTTP client if this prober created it."""
        if self._owns_client:
            await self._client.aclose()

    async def probe(self, endpoint: Endpoint) -> Optional[Hit]:
        """Check an endpoint and persist the resulting hit.

        Insert failures are logged and do not propagate; the hit is still returned.
        """
        hit = await self.check(endpoint)
        if hit is None:
            return None

        try:
            await self.storage.insert_hit(hit)
        except Exception:
            logger.exception(f"Inserting hit for endpoint {endpoint.id} failed: {hit!r}")
        return hit

    async def check(self, endpoint: Endpoint) -> Optional[Hit]:
        """Perform a single GET and classify the outcome.

        Returns None only for a transport error when transport errors are not
        recorded.
        """
        timer = FirstByteTimer()
        try:
            status_code = await asyncio.wait_for(
                self._fetch(endpoint, timer),
                timeout=endpoint.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.info(f"Check timed out: endpoint {endpoint.id} ({endpoint.domain}) after {endpoint.timeout}s")
            return self._hit(endpoint, HitStatus.DOWN, 0)
        except (httpx.TransportError, httpx.InvalidURL) as e:
            logger.error(f"Requesting domain failed: endpoint {endpoint.id} ({endpoint.domain}): {e!r}")
            if not self.record_transport_errors:
                return None
            return self._hit(endpoint, HitStatus.DOWN, 0)

        latency = timer.latency_ms
        if status_code != endpoint.code_ok:
            logger.info(
                f"Check returned down: endpoint {endpoint.id} ({endpoint.domain}) "
                f"status {status_code}, expected {endpoint.code_ok}"
            )
            return self._hit(endpoint, HitStatus.DOWN, latency)

        return self._hit(endpoint, HitStatus.UP, latency)

    async def _fetch(self, endpoint: Endpoint, timer: FirstByteTimer) -> int:
        """Send the request, drain the body and return the status code."""
        request = self._client.build_request(
            "GET",
            endpoint.domain,
            timeout=endpoint.timeout,
            extensions={"trace": timer.trace},
        )
        timer.start()
        response = await self._client.send(request, stream=True)
        # Transports that emit no trace events (e.g. mocks) are timed here,
        # once the response head is available and before the body is read
        timer.mark()
        try:
            async for _ in response.aiter_raw():
                pass
        finally:
            await response.aclose()
        return response.status_code

    def _hit(self, endpoint: Endpoint, status: HitStatus, latency: int) -> Hit:
        return Hit(
            endpoint_id=endpoint.id,
            status=status,
            latency=latency,
            created_at=datetime.now(timezone.utc),
        )
