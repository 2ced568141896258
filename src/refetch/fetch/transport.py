"""Scheme-dispatching transport for network, FTP, and local resources.

Every scheme is normalized to a ``TransportResponse`` carrying a status code,
lowercase headers (etag, last-modified, content-length, content-type when
known) and either a buffered body or a lazy byte stream.
"""

import asyncio
import ftplib
import mimetypes
import os
import stat
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from email.utils import format_datetime, parsedate_to_datetime
from io import BytesIO
from pathlib import Path
from typing import Any
from urllib.parse import SplitResult, unquote, urlsplit
from urllib.request import url2pathname

import httpx
import structlog

from refetch.errors import (
    RefetchError,
    ResponseSizeExceededError,
    TransportError,
    UnsupportedProtocolError,
)
from refetch.fetch.config import FetchConfig
from refetch.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    FILE_SCHEMES,
    FTP_SCHEMES,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_TYPE,
    HEADER_ETAG,
    HEADER_IF_MODIFIED_SINCE,
    HEADER_IF_NONE_MATCH,
    HEADER_LAST_MODIFIED,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK,
    NETWORK_SCHEMES,
)
from refetch.fetch.metrics import FetchMetrics
from refetch.fetch.models import FetchRequest, TransportResponse
from refetch.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()

DEFAULT_FTP_PORT = 21
DEFAULT_CONTENT_TYPE = "application/octet-stream"
FTP_MDTM_FORMAT = "%Y%m%d%H%M%S"


def file_etag(st: os.stat_result) -> str:
    """Build a synthetic ETag for a local file.

    Args:
        st: Result of ``os.stat`` for the file.

    Returns:
        Quoted tag encoding size, inode and modification time in hex.
    """
    return f'"{st.st_size:x}-{st.st_ino:x}-{st.st_mtime_ns:x}"'


def guess_content_type(path: str) -> str:
    """Guess a content type from a path extension."""
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


def parse_http_date(value: str | None) -> datetime | None:
    """Parse an HTTP date header into an aware UTC datetime.

    Args:
        value: Header value such as ``Mon, 01 Jan 2024 00:00:00 GMT``.

    Returns:
        Parsed datetime, or None if missing or unparseable.
    """
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_http_date(value: datetime) -> str:
    """Format a datetime as an HTTP date header value."""
    return format_datetime(value.astimezone(UTC), usegmt=True)


async def _iter_bytes(body: bytes) -> AsyncIterator[bytes]:
    for offset in range(0, len(body), DEFAULT_CHUNK_SIZE):
        yield body[offset : offset + DEFAULT_CHUNK_SIZE]


async def _iter_file(path: Path) -> AsyncIterator[bytes]:
    handle = await asyncio.to_thread(path.open, "rb")
    try:
        while chunk := await asyncio.to_thread(handle.read, DEFAULT_CHUNK_SIZE):
            yield chunk
    finally:
        handle.close()


class ProtocolTransport:
    """Retrieves resources over HTTP(S), FTP, or the local filesystem.

    Transport-level redirects are followed by the HTTP client. Status
    allowlists are not applied here; the controller decides what a status
    means. Any failure to talk to the remote end is a ``TransportError``.
    """

    def __init__(
        self,
        config: FetchConfig,
        http_transport: httpx.AsyncBaseTransport | None = None,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Fetch configuration.
            http_transport: Optional httpx transport (e.g. MockTransport in tests).
            ftp_factory: Factory returning an unconnected FTP client.
        """
        self._config = config
        self._http_transport = http_transport
        self._ftp_factory = ftp_factory
        self._client: httpx.AsyncClient | None = None
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="transport")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self._config.user_agent},
                transport=self._http_transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def retrieve(
        self,
        request: FetchRequest,
        conditional_headers: dict[str, str],
        url: str | None = None,
        stream: bool = False,
    ) -> TransportResponse:
        """Retrieve a resource.

        Args:
            request: The fetch request.
            conditional_headers: If-None-Match / If-Modified-Since headers.
            url: Locator to use instead of ``request.url`` (redirect hops).
            stream: Return a lazy byte stream instead of a buffered body.

        Returns:
            Normalized response. A not-modified response has status 304.

        Raises:
            UnsupportedProtocolError: If the scheme has no transport.
            TransportError: If the resource could not be retrieved.
        """
        target = url or request.url
        scheme = urlsplit(target).scheme.lower()

        if scheme in NETWORK_SCHEMES:
            handler = self._retrieve_http
        elif scheme in FTP_SCHEMES:
            handler = self._retrieve_ftp
        elif scheme in FILE_SCHEMES:
            handler = self._retrieve_file
        else:
            raise UnsupportedProtocolError(scheme, url=redact_url_credentials(target))

        try:
            response = await handler(request, target, conditional_headers, stream)
        except RefetchError:
            raise
        except Exception as e:  # noqa: BLE001
            msg = f"Unexpected error: {e}"
            raise TransportError(msg, url=redact_url_credentials(target)) from e

        self._metrics.record_request(scheme, len(response.body or b""))
        self._log.debug(
            "transport_response",
            url=redact_url_credentials(response.url),
            status_code=response.status_code,
            streaming=response.stream is not None,
        )
        return response

    async def _retrieve_http(
        self,
        request: FetchRequest,
        url: str,
        conditional_headers: dict[str, str],
        stream: bool,
    ) -> TransportResponse:
        client = self._get_client()
        headers = {**request.headers, **conditional_headers}
        content, data = self._request_body(request)
        safe_url = redact_url_credentials(url)

        self._log.debug(
            "http_request",
            method=request.method,
            url=safe_url,
            headers=redact_headers(headers),
        )

        http_request = client.build_request(
            request.method, url, headers=headers, content=content, data=data
        )
        try:
            response = await client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            msg = f"Request timed out: {e}"
            raise TransportError(msg, url=safe_url) from e
        except httpx.HTTPError as e:
            msg = f"Request failed: {e}"
            raise TransportError(msg, url=safe_url) from e

        headers_out = TransportResponse.normalize_headers(response.headers)
        final_url = str(response.url)

        if stream and response.status_code != HTTP_STATUS_NOT_MODIFIED:
            return TransportResponse(
                url=final_url,
                status_code=response.status_code,
                headers=headers_out,
                stream=response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE),
                close=response.aclose,
            )

        try:
            body = await self._read_body_with_limit(response, safe_url)
        except httpx.HTTPError as e:
            msg = f"Failed reading response body: {e}"
            raise TransportError(msg, url=safe_url) from e
        finally:
            await response.aclose()

        return TransportResponse(
            url=final_url,
            status_code=response.status_code,
            headers=headers_out,
            body=None if response.status_code == HTTP_STATUS_NOT_MODIFIED else body,
        )

    @staticmethod
    def _request_body(
        request: FetchRequest,
    ) -> tuple[bytes | str | None, dict[str, Any] | None]:
        if request.data is None:
            return None, None
        if isinstance(request.data, dict):
            return None, request.data
        return request.data, None

    async def _read_body_with_limit(self, response: httpx.Response, url: str) -> bytes:
        """Read response body with size limit.

        Raises:
            ResponseSizeExceededError: If the body exceeds the configured limit.
        """
        max_size = self._config.max_response_size_bytes

        content_length = response.headers.get(HEADER_CONTENT_LENGTH, "")
        if content_length.isdigit() and int(content_length) > max_size:
            raise ResponseSizeExceededError(max_size, int(content_length), url=url)

        buffer = BytesIO()
        total_read = 0
        async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                raise ResponseSizeExceededError(max_size, total_read, url=url)
            buffer.write(chunk)

        return buffer.getvalue()

    async def _retrieve_ftp(
        self,
        request: FetchRequest,  # noqa: ARG002
        url: str,
        conditional_headers: dict[str, str],
        stream: bool,
    ) -> TransportResponse:
        parts = urlsplit(url)
        safe_url = redact_url_credentials(url)
        since = parse_http_date(conditional_headers.get(HEADER_IF_MODIFIED_SINCE))

        try:
            body, modified = await asyncio.to_thread(
                self._ftp_download, parts, since, safe_url
            )
        except ftplib.all_errors as e:
            msg = f"FTP transfer failed: {e}"
            raise TransportError(msg, url=safe_url) from e

        headers: dict[str, str] = {}
        if modified is not None:
            headers[HEADER_LAST_MODIFIED] = format_http_date(modified)

        if body is None:
            return TransportResponse(
                url=url, status_code=HTTP_STATUS_NOT_MODIFIED, headers=headers
            )

        headers[HEADER_CONTENT_TYPE] = guess_content_type(parts.path)
        headers[HEADER_CONTENT_LENGTH] = str(len(body))

        if stream:
            return TransportResponse(
                url=url,
                status_code=HTTP_STATUS_OK,
                headers=headers,
                stream=_iter_bytes(body),
            )
        return TransportResponse(
            url=url, status_code=HTTP_STATUS_OK, headers=headers, body=body
        )

    def _ftp_download(
        self,
        parts: SplitResult,
        since: datetime | None,
        safe_url: str,
    ) -> tuple[bytes | None, datetime | None]:
        """Download a file over FTP (blocking).

        Returns:
            Tuple of (body or None when unmodified since ``since``, mtime).
        """
        path = unquote(parts.path) or "/"
        max_size = self._config.max_response_size_bytes

        ftp = self._ftp_factory()
        try:
            ftp.connect(
                parts.hostname or "",
                parts.port or DEFAULT_FTP_PORT,
                timeout=self._config.timeout_seconds,
            )
            ftp.login(
                user=unquote(parts.username or "anonymous"),
                passwd=unquote(parts.password or "anonymous@"),
            )

            modified = self._ftp_modified_time(ftp, path)
            if since is not None and modified is not None and modified <= since:
                return None, modified

            buffer = BytesIO()

            def collect(chunk: bytes) -> None:
                if buffer.tell() + len(chunk) > max_size:
                    raise ResponseSizeExceededError(
                        max_size, buffer.tell() + len(chunk), url=safe_url
                    )
                buffer.write(chunk)

            ftp.retrbinary(f"RETR {path}", collect, blocksize=DEFAULT_CHUNK_SIZE)
            return buffer.getvalue(), modified
        finally:
            ftp.close()

    @staticmethod
    def _ftp_modified_time(ftp: ftplib.FTP, path: str) -> datetime | None:
        """Ask the server for the file's modification time (MDTM).

        Servers without MDTM support yield None.
        """
        try:
            reply = ftp.sendcmd(f"MDTM {path}")
        except ftplib.error_perm:
            return None
        value = reply.split()[-1] if reply else ""
        try:
            return datetime.strptime(value[:14], FTP_MDTM_FORMAT).replace(tzinfo=UTC)
        except ValueError:
            return None

    async def _retrieve_file(
        self,
        request: FetchRequest,  # noqa: ARG002
        url: str,
        conditional_headers: dict[str, str],
        stream: bool,
    ) -> TransportResponse:
        path = self.local_path(url)

        try:
            st = await asyncio.to_thread(path.stat)
        except OSError as e:
            msg = f"Cannot stat {path}: {e}"
            raise TransportError(msg, url=url) from e
        if stat.S_ISDIR(st.st_mode):
            msg = f"Not a file: {path}"
            raise TransportError(msg, url=url)

        etag = file_etag(st)
        headers = {
            HEADER_ETAG: etag,
            HEADER_LAST_MODIFIED: format_http_date(
                datetime.fromtimestamp(st.st_mtime, tz=UTC)
            ),
            HEADER_CONTENT_LENGTH: str(st.st_size),
            HEADER_CONTENT_TYPE: guess_content_type(str(path)),
        }

        if conditional_headers.get(HEADER_IF_NONE_MATCH) == etag:
            return TransportResponse(
                url=url, status_code=HTTP_STATUS_NOT_MODIFIED, headers=headers
            )

        if stream:
            chunks = _iter_file(path)
            return TransportResponse(
                url=url,
                status_code=HTTP_STATUS_OK,
                headers=headers,
                stream=chunks,
                close=chunks.aclose,
            )

        max_size = self._config.max_response_size_bytes
        if st.st_size > max_size:
            raise ResponseSizeExceededError(max_size, st.st_size, url=url)

        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            msg = f"Cannot read {path}: {e}"
            raise TransportError(msg, url=url) from e

        return TransportResponse(
            url=url, status_code=HTTP_STATUS_OK, headers=headers, body=body
        )

    @staticmethod
    def local_path(url: str) -> Path:
        """Convert a ``file://`` URL or bare path to a filesystem path."""
        parts = urlsplit(url)
        if parts.scheme == "file":
            return Path(url2pathname(parts.path))
        return Path(url)
