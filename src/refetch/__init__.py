"""Conditional fetch-and-cache engine.

Fetches resources over HTTP(S), FTP or the local filesystem and reports
whether their content changed since the previous fetch, using transport
validators, cooldowns and content fingerprints persisted per resource.
"""

from refetch.decoders import DecoderRegistry
from refetch.errors import (
    CacheReadCorruptionError,
    CacheWriteError,
    DecodeError,
    DecoderUnavailableError,
    FetchErrorClass,
    HookError,
    RefetchError,
    ResponseSizeExceededError,
    StatusCodeError,
    TransportError,
    UnsupportedProtocolError,
)
from refetch.fetch import (
    ConditionalFetcher,
    FetchConfig,
    FetchOutcome,
    FetchRequest,
    FetchState,
    OutcomeKind,
    ResponseMeta,
    StreamHandle,
    UnchangedReason,
    fetch,
)
from refetch.observability import configure_logging
from refetch.settings import AppSettings, get_settings
from refetch.store import CacheRecord, CacheStore, fingerprint
from refetch.version import __version__


__all__ = [
    "__version__",
    # Fetching
    "ConditionalFetcher",
    "fetch",
    "FetchConfig",
    "FetchRequest",
    "FetchOutcome",
    "FetchState",
    "OutcomeKind",
    "ResponseMeta",
    "StreamHandle",
    "UnchangedReason",
    # Cache
    "CacheRecord",
    "CacheStore",
    "fingerprint",
    # Decoders
    "DecoderRegistry",
    # Errors
    "RefetchError",
    "FetchErrorClass",
    "TransportError",
    "ResponseSizeExceededError",
    "UnsupportedProtocolError",
    "StatusCodeError",
    "DecodeError",
    "DecoderUnavailableError",
    "HookError",
    "CacheWriteError",
    "CacheReadCorruptionError",
    # Logging
    "configure_logging",
    # Settings
    "AppSettings",
    "get_settings",
]
