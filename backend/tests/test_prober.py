"""Tests for the HTTP prober."""
import asyncio
import socket
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from pinger.schemas import Hit, HitStatus
from pinger.services.prober import FirstByteTimer, Prober


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def respond(status_code: int, delay: float = 0.02):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        return httpx.Response(status_code, text="body")

    return handler


class TrackingStream(httpx.AsyncByteStream):
    """Response body that records whether it was read to the end and closed."""

    def __init__(self):
        self.consumed = False
        self.closed = False

    async def __aiter__(self):
        for chunk in (b"a" * 4096, b"b" * 4096):
            yield chunk
        self.consumed = True

    async def aclose(self):
        self.closed = True


# ── FirstByteTimer ───────────────────────────────────────────────────────────


class TestFirstByteTimer:
    def test_latency_zero_without_response(self) -> None:
        timer = FirstByteTimer()
        timer.start()
        assert timer.latency_ms == 0

    def test_first_mark_wins(self) -> None:
        timer = FirstByteTimer()
        timer.start()
        timer.mark()
        first = timer.first_byte_at
        timer.mark()
        assert timer.first_byte_at == first

    def test_received_response_reports_at_least_one_ms(self) -> None:
        timer = FirstByteTimer()
        timer.started_at = 10.0
        timer.first_byte_at = 10.0001
        assert timer.latency_ms == 1

    def test_latency_in_milliseconds(self) -> None:
        timer = FirstByteTimer()
        timer.started_at = 10.0
        timer.first_byte_at = 10.25
        assert timer.latency_ms == 250

    @pytest.mark.asyncio
    async def test_trace_marks_on_response_headers(self) -> None:
        timer = FirstByteTimer()
        timer.start()
        await timer.trace("http11.send_request_headers.complete", {})
        assert timer.first_byte_at is None
        await timer.trace("http11.receive_response_headers.complete", {})
        assert timer.first_byte_at is not None


# ── Classification ───────────────────────────────────────────────────────────


class TestCheck:
    @pytest.mark.asyncio
    async def test_expected_status_is_up_with_latency(self, make_endpoint) -> None:
        client = make_client(respond(200, delay=0.05))
        prober = Prober(AsyncMock(), client=client)

        hit = await prober.check(make_endpoint(code_ok=200))

        assert hit.status == HitStatus.UP
        assert 1 <= hit.latency <= 1000
        assert hit.endpoint_id == 1
        assert hit.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_unexpected_status_is_down_with_latency(self, make_endpoint) -> None:
        client = make_client(respond(500))
        prober = Prober(AsyncMock(), client=client)

        hit = await prober.check(make_endpoint(code_ok=200))

        assert hit.status == HitStatus.DOWN
        assert hit.latency > 0

    @pytest.mark.asyncio
    async def test_code_ok_other_than_200(self, make_endpoint) -> None:
        client = make_client(respond(204))
        prober = Prober(AsyncMock(), client=client)

        assert (await prober.check(make_endpoint(code_ok=204))).status == HitStatus.UP
        assert (await prober.check(make_endpoint(code_ok=200))).status == HitStatus.DOWN

    @pytest.mark.asyncio
    async def test_transport_timeout_is_down_with_zero_latency(self, make_endpoint) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        prober = Prober(AsyncMock(), client=make_client(handler))

        hit = await prober.check(make_endpoint())

        assert hit.status == HitStatus.DOWN
        assert hit.latency == 0

    @pytest.mark.asyncio
    async def test_server_that_never_answers_is_down_with_zero_latency(self, make_endpoint) -> None:
        client = make_client(respond(200, delay=5))
        prober = Prober(AsyncMock(), client=client)
        loop = asyncio.get_running_loop()

        started = loop.time()
        hit = await prober.check(make_endpoint(timeout=0.1))

        assert hit.status == HitStatus.DOWN
        assert hit.latency == 0
        assert loop.time() - started < 2

    @pytest.mark.asyncio
    async def test_connection_error_recorded_as_down(self, make_endpoint) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        prober = Prober(AsyncMock(), client=make_client(handler))

        hit = await prober.check(make_endpoint())

        assert hit.status == HitStatus.DOWN
        assert hit.latency == 0

    @pytest.mark.asyncio
    async def test_connection_error_dropped_when_not_recorded(self, make_endpoint) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        prober = Prober(AsyncMock(), client=make_client(handler), record_transport_errors=False)

        assert await prober.check(make_endpoint()) is None

    @pytest.mark.asyncio
    async def test_body_is_drained_and_closed(self, make_endpoint) -> None:
        stream = TrackingStream()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, stream=stream)

        prober = Prober(AsyncMock(), client=make_client(handler))

        await prober.check(make_endpoint())

        assert stream.consumed
        assert stream.closed

    @pytest.mark.asyncio
    async def test_follows_redirects(self, make_endpoint) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "http://ok.test/new"})
            return httpx.Response(200)

        prober = Prober(AsyncMock(), client=make_client(handler))

        hit = await prober.check(make_endpoint(domain="http://ok.test/old"))

        assert hit.status == HitStatus.UP

    @pytest.mark.asyncio
    async def test_request_is_a_get_to_the_domain(self, make_endpoint) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        prober = Prober(AsyncMock(), client=make_client(handler))

        await prober.check(make_endpoint(domain="http://ok.test/status?x=1"))

        assert len(seen) == 1
        assert seen[0].method == "GET"
        assert str(seen[0].url) == "http://ok.test/status?x=1"


# ── Persistence ──────────────────────────────────────────────────────────────


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_inserts_hit(self, make_endpoint) -> None:
        storage = AsyncMock()
        prober = Prober(storage, client=make_client(respond(200)))

        hit = await prober.probe(make_endpoint())

        storage.insert_hit.assert_awaited_once_with(hit)
        assert isinstance(hit, Hit)

    @pytest.mark.asyncio
    async def test_insert_failure_is_swallowed(self, make_endpoint) -> None:
        storage = AsyncMock()
        storage.insert_hit.side_effect = RuntimeError("disk full")
        prober = Prober(storage, client=make_client(respond(200)))

        hit = await prober.probe(make_endpoint())

        assert hit.status == HitStatus.UP

    @pytest.mark.asyncio
    async def test_dropped_check_inserts_nothing(self, make_endpoint) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no such host", request=request)

        storage = AsyncMock()
        prober = Prober(storage, client=make_client(handler), record_transport_errors=False)

        assert await prober.probe(make_endpoint()) is None
        storage.insert_hit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_aclose_leaves_shared_client_open(self) -> None:
        client = make_client(respond(200))
        prober = Prober(AsyncMock(), client=client)

        await prober.aclose()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_own_client(self) -> None:
        prober = Prober(AsyncMock())

        await prober.aclose()

        assert prober._client.is_closed


# ── Real sockets ─────────────────────────────────────────────────────────────


@asynccontextmanager
async def http_server(handler):
    """Serve raw responses from ``handler`` on a free local port."""
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}/"
    finally:
        server.close()
        await server.wait_closed()


def unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestOverNetwork:
    @pytest_asyncio.fixture
    async def client(self):
        client = httpx.AsyncClient(follow_redirects=True, trust_env=False)
        yield client
        await client.aclose()

    @pytest.mark.asyncio
    async def test_latency_excludes_slow_body(self, client, make_endpoint) -> None:
        async def handler(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\nConnection: close\r\n\r\n")
            await writer.drain()
            await asyncio.sleep(0.6)
            writer.write(b"hello")
            await writer.drain()
            writer.close()

        prober = Prober(AsyncMock(), client=client)
        loop = asyncio.get_running_loop()

        async with http_server(handler) as url:
            started = loop.time()
            hit = await prober.check(make_endpoint(domain=url, timeout=3))
            elapsed = loop.time() - started

        assert hit.status == HitStatus.UP
        assert 1 <= hit.latency < 300
        # Body was read before returning
        assert elapsed >= 0.6

    @pytest.mark.asyncio
    async def test_error_status_is_down_with_latency(self, client, make_endpoint) -> None:
        async def handler(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(b"HTTP/1.1 500 Internal Server Error\r\nContent-Length: 0\r\nConnection: close\r\n\r\n")
            await writer.drain()
            writer.close()

        prober = Prober(AsyncMock(), client=client)

        async with http_server(handler) as url:
            hit = await prober.check(make_endpoint(domain=url, timeout=3))

        assert hit.status == HitStatus.DOWN
        assert hit.latency >= 1

    @pytest.mark.asyncio
    async def test_silent_server_is_down_with_zero_latency(self, client, make_endpoint) -> None:
        release = asyncio.Event()

        async def handler(reader, writer):
            await release.wait()
            writer.close()

        prober = Prober(AsyncMock(), client=client)
        loop = asyncio.get_running_loop()

        async with http_server(handler) as url:
            try:
                started = loop.time()
                hit = await prober.check(make_endpoint(domain=url, timeout=0.3))
                elapsed = loop.time() - started
            finally:
                release.set()

        assert hit.status == HitStatus.DOWN
        assert hit.latency == 0
        assert elapsed < 2

    @pytest.mark.asyncio
    async def test_refused_connection_is_down_with_zero_latency(self, client, make_endpoint) -> None:
        prober = Prober(AsyncMock(), client=client)
        endpoint = make_endpoint(domain=f"http://127.0.0.1:{unused_port()}/", timeout=3)

        hit = await prober.check(endpoint)

        assert hit.status == HitStatus.DOWN
        assert hit.latency == 0

    @pytest.mark.asyncio
    async def test_refused_connection_dropped_when_not_recorded(self, client, make_endpoint) -> None:
        prober = Prober(AsyncMock(), client=client, record_transport_errors=False)
        endpoint = make_endpoint(domain=f"http://127.0.0.1:{unused_port()}/", timeout=3)

        assert await prober.check(endpoint) is None
