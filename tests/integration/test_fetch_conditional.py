"""Integration tests for conditional fetches against a local HTTP server."""

import json
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

import pytest

from refetch.fetch.client import ConditionalFetcher
from refetch.fetch.config import FetchConfig
from refetch.fetch.metrics import FetchMetrics
from refetch.fetch.models import UnchangedReason
from refetch.store.store import CacheStore


def get_server_url(server: HTTPServer, path: str = "/resource") -> str:
    """Get the URL for a test server.

    Args:
        server: The HTTP server instance.
        path: The URL path.

    Returns:
        Complete URL for the server.
    """
    host, port = server.server_address[0], server.server_address[1]
    if isinstance(host, bytes):
        host = host.decode("utf-8")
    return f"http://{host}:{port}{path}"


class CachingHTTPHandler(BaseHTTPRequestHandler):
    """HTTP handler that supports ETag and Last-Modified validators."""

    response_body: bytes = b"id,title\n1,first\n2,second\n"
    etag: str | None = '"rev-1"'
    last_modified: str | None = "Tue, 13 Jun 2017 00:00:00 GMT"
    requests: list[dict[str, str | None]] = []

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        """Suppress log messages during tests."""

    def do_GET(self) -> None:  # noqa: N802
        """Handle GET requests with conditional caching support."""
        if_none_match = self.headers.get("If-None-Match")
        if_modified_since = self.headers.get("If-Modified-Since")
        type(self).requests.append(
            {
                "path": self.path,
                "if_none_match": if_none_match,
                "if_modified_since": if_modified_since,
            }
        )

        if self.path == "/missing":
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        if self.path == "/landing":
            body = (
                b'<html><head><meta http-equiv="refresh" '
                b'content="0; url=/resource"></head></html>'
            )
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return

        if (self.etag and if_none_match == self.etag) or (
            self.last_modified and if_modified_since == self.last_modified
        ):
            self.send_response(304)
            self._send_validators()
            self.end_headers()
            return

        self.send_response(200)
        self.send_header("Content-Type", "text/csv; charset=utf-8")
        self.send_header("Content-Length", str(len(self.response_body)))
        self._send_validators()
        self.end_headers()
        self.wfile.write(self.response_body)

    def _send_validators(self) -> None:
        if self.etag:
            self.send_header("ETag", self.etag)
        if self.last_modified:
            self.send_header("Last-Modified", self.last_modified)


@pytest.fixture
def caching_server() -> Generator[HTTPServer]:
    """Start a local HTTP server with caching support."""
    CachingHTTPHandler.response_body = b"id,title\n1,first\n2,second\n"
    CachingHTTPHandler.etag = '"rev-1"'
    CachingHTTPHandler.last_modified = "Tue, 13 Jun 2017 00:00:00 GMT"
    CachingHTTPHandler.requests = []
    server = HTTPServer(("127.0.0.1", 0), CachingHTTPHandler)
    thread = threading.Thread(target=server.serve_forever)
    thread.daemon = True
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def config(tmp_path: Path) -> FetchConfig:
    """Create a configuration with a temporary cache directory."""
    FetchMetrics.reset()
    return FetchConfig(cache_dir=tmp_path / "cache", timeout_seconds=5)


class TestConditionalRequests:
    """Integration tests for ETag/Last-Modified conditional requests."""

    @pytest.mark.asyncio
    async def test_first_fetch_stores_record(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that the first fetch decodes content and persists validators."""
        url = get_server_url(caching_server)

        async with ConditionalFetcher(config) as fetcher:
            outcome = await fetcher.fetch(url, cache=True, format="csv")

        assert outcome.changed
        assert outcome.data == [
            {"id": "1", "title": "first"},
            {"id": "2", "title": "second"},
        ]

        record = CacheStore(config.cache_dir).load_sync(outcome.cache_key)
        assert record is not None
        assert record.etag == '"rev-1"'
        assert record.last_modified == "Tue, 13 Jun 2017 00:00:00 GMT"
        assert record.content_length == len(CachingHTTPHandler.response_body)

        path = config.cache_dir / f"{outcome.cache_key}.json"
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert set(on_disk) == {"last", "hash", "hashp", "modified", "etag", "size"}

    @pytest.mark.asyncio
    async def test_second_fetch_gets_304(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that a second fetch sends If-None-Match and reports cache-hit."""
        url = get_server_url(caching_server)

        async with ConditionalFetcher(config) as fetcher:
            first = await fetcher.fetch(url, cache=True, format="csv")
            second = await fetcher.fetch(url, cache=True, format="csv")

        assert first.changed
        assert second.unchanged
        assert second.reason == UnchangedReason.CACHE_HIT
        assert CachingHTTPHandler.requests[1]["if_none_match"] == '"rev-1"'

        metrics = FetchMetrics.get_instance()
        assert metrics.fetch_unchanged_total == {"cache-hit": 1}
        assert metrics.fetch_changed_total == 1

    @pytest.mark.asyncio
    async def test_last_modified_only(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that If-Modified-Since is used when the server sends no ETag."""
        CachingHTTPHandler.etag = None
        url = get_server_url(caching_server)

        async with ConditionalFetcher(config) as fetcher:
            await fetcher.fetch(url, cache=True)
            second = await fetcher.fetch(url, cache=True)

        assert second.reason == UnchangedReason.CACHE_HIT
        assert CachingHTTPHandler.requests[1]["if_none_match"] is None
        assert (
            CachingHTTPHandler.requests[1]["if_modified_since"]
            == "Tue, 13 Jun 2017 00:00:00 GMT"
        )

    @pytest.mark.asyncio
    async def test_updated_resource_is_changed(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that a new revision on the server is reported as changed."""
        url = get_server_url(caching_server)

        async with ConditionalFetcher(config) as fetcher:
            await fetcher.fetch(url, cache=True, format="csv")
            CachingHTTPHandler.response_body = b"id,title\n3,third\n"
            CachingHTTPHandler.etag = '"rev-2"'
            outcome = await fetcher.fetch(url, cache=True, format="csv")

        assert outcome.changed
        assert outcome.data == [{"id": "3", "title": "third"}]

    @pytest.mark.asyncio
    async def test_status_error(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that a 404 produces a failed outcome and no record."""
        url = get_server_url(caching_server, "/missing")

        async with ConditionalFetcher(config) as fetcher:
            outcome = await fetcher.fetch(url, cache=True)

        assert outcome.failed
        assert outcome.error is not None
        assert outcome.error.message == "Got Status Code 404"
        cache_dir = config.cache_dir
        assert not cache_dir.exists() or not any(cache_dir.iterdir())

    @pytest.mark.asyncio
    async def test_meta_refresh_then_304(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test that redirected fetches keep using conditional headers."""
        url = get_server_url(caching_server, "/landing")

        async with ConditionalFetcher(config) as fetcher:
            first = await fetcher.fetch(url, cache=True, follow_meta_refresh=True)
            second = await fetcher.fetch(url, cache=True, follow_meta_refresh=True)

        assert first.changed
        assert first.meta is not None
        assert first.meta.url == get_server_url(caching_server)
        assert second.reason == UnchangedReason.CACHE_HIT

    @pytest.mark.asyncio
    async def test_streaming_fetch(
        self, caching_server: HTTPServer, config: FetchConfig
    ) -> None:
        """Test streaming a body and a cache-hit on the next fetch."""
        url = get_server_url(caching_server)

        async with ConditionalFetcher(config) as fetcher:
            first = await fetcher.fetch_stream(url, cache=True)
            chunks = [chunk async for chunk in first.data]
            second = await fetcher.fetch_stream(url, cache=True)

        assert b"".join(chunks) == CachingHTTPHandler.response_body
        assert second.reason == UnchangedReason.CACHE_HIT
