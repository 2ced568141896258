"""Conditional fetch controller with change detection and caching."""

import asyncio
import ftplib
import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from refetch.decoders.registry import DecoderRegistry
from refetch.errors import HookError, RefetchError, StatusCodeError
from refetch.fetch.cache import CacheManager, RecordStore
from refetch.fetch.config import FetchConfig
from refetch.fetch.metrics import FetchMetrics
from refetch.fetch.models import (
    FetchOutcome,
    FetchRequest,
    Hook,
    ResponseMeta,
    TransportResponse,
    UnchangedReason,
)
from refetch.fetch.redact import redact_url_credentials
from refetch.fetch.redirect import MetaRedirectResolver
from refetch.fetch.state_machine import FetchState, FetchStateMachine
from refetch.fetch.stream import StreamHandle
from refetch.fetch.transport import ProtocolTransport
from refetch.settings.app import get_settings
from refetch.store.hash import fingerprint
from refetch.store.models import CacheRecord
from refetch.store.store import CacheStore


logger = structlog.get_logger()


@dataclass
class _Retrieved:
    """Intermediate result once a response has passed transport checks."""

    record: CacheRecord | None
    response: TransportResponse
    now: datetime


class ConditionalFetcher:
    """Fetches resources and reports whether their content changed.

    Provides:
    - ETag/Last-Modified conditional requests and client-side validator checks
    - Cooldown between fetches of the same resource
    - Two-stage change detection: raw bytes hash, then decoded value hash
    - Caller preprocess/postprocess hooks (sync or async)
    - Meta refresh redirect following
    - A streaming variant returning a paused byte stream

    Usage:
        async with ConditionalFetcher(FetchConfig(cache_dir=path)) as fetcher:
            outcome = await fetcher.fetch("https://example.com/data.csv",
                                          cache=True, format="csv")
            if outcome.changed:
                process(outcome.data)

    Fetches of the same resource are not serialized: two concurrent fetches
    may both read the same record and the last cache write wins.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: FetchConfig | None = None,
        store: RecordStore | None = None,
        transport: ProtocolTransport | None = None,
        decoders: DecoderRegistry | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Fetch configuration (defaults apply when omitted).
            store: Cache record store (default: directory store at config.cache_dir).
            transport: Protocol transport (default: built from config).
            decoders: Decoder registry (default: all built-in decoders).
            http_transport: Optional httpx transport for the default transport.
            ftp_factory: FTP client factory for the default transport.
            clock: Source of the current time, for cooldown and timestamps.
        """
        self._config = config or FetchConfig()
        self._cache = CacheManager(store or CacheStore(self._config.cache_dir))
        self._transport = transport or ProtocolTransport(
            self._config, http_transport=http_transport, ftp_factory=ftp_factory
        )
        self._redirects = MetaRedirectResolver(
            self._transport, max_redirects=self._config.max_meta_redirects
        )
        self._decoders = decoders or DecoderRegistry.default()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._semaphore = asyncio.Semaphore(self._config.max_concurrency)
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    @property
    def decoders(self) -> DecoderRegistry:
        """Get the decoder registry."""
        return self._decoders

    async def aclose(self) -> None:
        """Release transport resources."""
        await self._transport.aclose()

    async def __aenter__(self) -> "ConditionalFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def build_request(target: FetchRequest | str, **options: Any) -> FetchRequest:
        """Build a request from a locator or an existing request plus overrides.

        Args:
            target: Locator string or request.
            **options: Request fields to set or override.

        Returns:
            A validated request.
        """
        if isinstance(target, FetchRequest):
            if not options:
                return target
            fields = {name: getattr(target, name) for name in FetchRequest.model_fields}
            fields.update(options)
            return FetchRequest(**fields)
        return FetchRequest(url=target, **options)

    async def fetch(self, target: FetchRequest | str, **options: Any) -> FetchOutcome:
        """Fetch a resource and report whether it changed.

        Args:
            target: Locator string or request.
            **options: Request fields to set or override.

        Returns:
            CHANGED with the (decoded) content, UNCHANGED with a reason, or
            FAILED with the error. Errors are never raised.
        """
        request = self.build_request(target, **options)
        if request.stream:
            return await self._fetch_stream(request)

        start_time_ns = time.perf_counter_ns()
        async with self._semaphore:
            outcome = await self._run(request)
        self._finish(request, outcome, start_time_ns)
        return outcome

    async def fetch_stream(
        self, target: FetchRequest | str, **options: Any
    ) -> FetchOutcome:
        """Fetch a resource as a paused byte stream.

        Hooks, decoding and content hashing do not apply. On CHANGED the
        outcome data is a ``StreamHandle`` the caller must consume or close.

        Args:
            target: Locator string or request.
            **options: Request fields to set or override.

        Returns:
            The fetch outcome.
        """
        options["stream"] = True
        return await self._fetch_stream(self.build_request(target, **options))

    async def _fetch_stream(self, request: FetchRequest) -> FetchOutcome:
        start_time_ns = time.perf_counter_ns()
        async with self._semaphore:
            outcome = await self._run_stream(request)
        self._finish(request, outcome, start_time_ns)
        return outcome

    async def _run(self, request: FetchRequest) -> FetchOutcome:
        cache_key = request.cache_key
        sm = FetchStateMachine(cache_key)
        meta: ResponseMeta | None = None

        try:
            retrieved = await self._check_and_retrieve(request, sm, stream=False)
            if isinstance(retrieved, FetchOutcome):
                return retrieved

            record, response = retrieved.record, retrieved.response
            meta = response.meta
            compare = request.cache and record is not None

            sm.transition_to(FetchState.PREPROCESS)
            data = await self._apply_hook(
                "preprocess", request.preprocess, response.body, meta, request.url
            )
            raw_hash = self._hash_result("preprocess", data, request.url)
            if compare and record is not None and raw_hash == record.raw_hash:
                return self._unchanged(sm, UnchangedReason.NO_CHANGE, meta)

            sm.transition_to(FetchState.DECODE)
            value = data
            if request.format:
                value = await self._decoders.decode(
                    request.format,
                    data,
                    charset=request.charset,
                    content_type=meta.content_type,
                    options=request.format_options,
                    url=redact_url_credentials(request.url),
                )

            sm.transition_to(FetchState.POSTPROCESS)
            value = await self._apply_hook(
                "postprocess", request.postprocess, value, meta, request.url
            )
            processed_hash = self._hash_result("postprocess", value, request.url)
            if (
                compare
                and record is not None
                and processed_hash == record.processed_hash
            ):
                return self._unchanged(sm, UnchangedReason.NO_CHANGE, meta)

            sm.transition_to(FetchState.WRITE_CACHE)
            await self._cache.save(
                cache_key,
                CacheManager.build_record(
                    response,
                    retrieved.now,
                    raw_hash=raw_hash,
                    processed_hash=processed_hash,
                ),
            )
            sm.transition_to(FetchState.CHANGED)
            return FetchOutcome.changed_with(
                value, meta=meta, cache_key=cache_key, state=sm.last_active_state
            )

        except RefetchError as e:
            return self._failed(sm, e, meta)

    async def _run_stream(self, request: FetchRequest) -> FetchOutcome:
        cache_key = request.cache_key
        sm = FetchStateMachine(cache_key)

        try:
            retrieved = await self._check_and_retrieve(request, sm, stream=True)
        except RefetchError as e:
            return self._failed(sm, e, None)
        if isinstance(retrieved, FetchOutcome):
            return retrieved

        response = retrieved.response
        handle = StreamHandle(response)

        sm.transition_to(FetchState.WRITE_CACHE)
        await self._cache.save(
            cache_key, CacheManager.build_record(response, retrieved.now)
        )
        handle.resume()

        sm.transition_to(FetchState.CHANGED)
        return FetchOutcome.changed_with(
            handle, meta=response.meta, cache_key=cache_key, state=sm.last_active_state
        )

    async def _check_and_retrieve(
        self,
        request: FetchRequest,
        sm: FetchStateMachine,
        stream: bool,
    ) -> FetchOutcome | _Retrieved:
        """Run the cache, cooldown, conditional request and retrieval steps.

        Returns:
            A terminal UNCHANGED outcome, or the response to evaluate further.

        Raises:
            RefetchError: On transport failure or a disallowed status code.
        """
        cache_key = sm.cache_key
        record = await self._cache.load(cache_key)

        sm.transition_to(FetchState.COOLDOWN_CHECK)
        now = self._clock()
        if self._in_cooldown(request, record, now):
            return self._unchanged(sm, UnchangedReason.COOLDOWN, None)

        sm.transition_to(FetchState.BUILD_CONDITIONAL_HEADERS)
        conditional_headers = CacheManager.conditional_headers(record, request.cache)

        sm.transition_to(FetchState.RETRIEVE)
        response = await self._redirects.retrieve(
            request, conditional_headers, stream=stream
        )

        try:
            transport_hit = self._is_transport_hit(request, record, response)
        except RefetchError:
            await response.aclose()
            raise

        if transport_hit:
            await response.aclose()
            if record is not None:
                await self._cache.save(
                    cache_key, CacheManager.refresh_record(record, response, now)
                )
            return self._unchanged(sm, UnchangedReason.CACHE_HIT, response.meta)

        return _Retrieved(record=record, response=response, now=now)

    @staticmethod
    def _in_cooldown(
        request: FetchRequest, record: CacheRecord | None, now: datetime
    ) -> bool:
        if request.cooldown is None or record is None:
            return False
        return now - record.last_fetched_at < request.cooldown

    @staticmethod
    def _is_transport_hit(
        request: FetchRequest,
        record: CacheRecord | None,
        response: TransportResponse,
    ) -> bool:
        """Decide whether the transport response means "unchanged".

        Raises:
            StatusCodeError: If the status is not in the success allowlist.
        """
        if response.not_modified:
            return True

        # Some servers ignore preconditions but still send the same validator
        if (
            request.cache
            and record is not None
            and record.etag
            and response.etag == record.etag
        ):
            return True

        if response.status_code not in request.success_codes:
            raise StatusCodeError(
                response.status_code, url=redact_url_credentials(response.url)
            )

        return (
            request.size_only
            and record is not None
            and record.content_length is not None
            and response.content_length == record.content_length
        )

    @staticmethod
    async def _apply_hook(
        stage: str,
        hook: Hook | None,
        data: Any,
        meta: ResponseMeta,
        url: str,
    ) -> Any:
        """Apply a caller hook, awaiting it if it is asynchronous.

        Raises:
            HookError: If the hook raised.
        """
        if hook is None:
            return data
        try:
            result = hook(data, meta)
            if inspect.isawaitable(result):
                result = await result
        except HookError:
            raise
        except Exception as e:  # noqa: BLE001
            raise HookError(stage, str(e) or type(e).__name__, url=url) from e
        return result

    @staticmethod
    def _hash_result(stage: str, value: Any, url: str) -> str:
        """Fingerprint the data a pipeline stage produced.

        Raises:
            HookError: If a hook returned a value that cannot be fingerprinted.
        """
        try:
            return fingerprint(value)
        except TypeError as e:
            raise HookError(stage, str(e), url=url) from e

    @staticmethod
    def _unchanged(
        sm: FetchStateMachine,
        reason: UnchangedReason,
        meta: ResponseMeta | None,
    ) -> FetchOutcome:
        sm.transition_to(FetchState.UNCHANGED)
        return FetchOutcome.unchanged_because(
            reason, meta=meta, cache_key=sm.cache_key, state=sm.last_active_state
        )

    @staticmethod
    def _failed(
        sm: FetchStateMachine,
        error: RefetchError,
        meta: ResponseMeta | None,
    ) -> FetchOutcome:
        sm.transition_to(FetchState.FAILED)
        return FetchOutcome.failed_with(
            error, meta=meta, cache_key=sm.cache_key, state=sm.last_active_state
        )

    def _finish(
        self, request: FetchRequest, outcome: FetchOutcome, start_time_ns: int
    ) -> None:
        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        self._metrics.record_duration(duration_ms)

        if outcome.changed:
            self._metrics.record_changed()
        elif outcome.reason is not None:
            self._metrics.record_unchanged(outcome.reason.value)
        elif outcome.error is not None:
            self._metrics.record_failure(outcome.error.error_class)

        self._log.info(
            "fetch_complete",
            url=redact_url_credentials(request.url),
            cache_key=outcome.cache_key,
            outcome=outcome.kind.value,
            reason=outcome.reason.value if outcome.reason else None,
            state=outcome.state.value if outcome.state else None,
            status_code=outcome.meta.status_code if outcome.meta else None,
            streaming=request.stream,
            error_class=outcome.error.error_class.value if outcome.error else None,
            error=outcome.error.message if outcome.error else None,
            duration_ms=round(duration_ms, 2),
        )


async def fetch(target: FetchRequest | str, **options: Any) -> FetchOutcome:
    """Fetch a resource with a one-off fetcher (convenience function).

    The fetcher is configured from ``REFETCH_*`` environment variables.
    """
    async with ConditionalFetcher(get_settings().to_fetch_config()) as fetcher:
        return await fetcher.fetch(target, **options)
