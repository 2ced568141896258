"""Conditional fetch layer with caching and change detection.

This module provides fetch operations with:
- ETag/Last-Modified conditional requests for caching
- Cooldown between fetches of the same resource
- Two-stage content hashing to detect real changes
- HTTP(S), FTP and local file transports
- Meta refresh redirect following
- Streaming retrieval with a paused byte stream
- Header redaction for security
- Metrics collection for observability
"""

from refetch.fetch.cache import CacheManager, RecordStore
from refetch.fetch.client import ConditionalFetcher, fetch
from refetch.fetch.config import FetchConfig
from refetch.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_SUCCESS_CODES,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK,
    MAX_META_REDIRECTS,
)
from refetch.fetch.metrics import FetchMetrics
from refetch.fetch.models import (
    FetchOutcome,
    FetchRequest,
    OutcomeKind,
    ResponseMeta,
    TransportResponse,
    UnchangedReason,
)
from refetch.fetch.redact import redact_headers, redact_url_credentials
from refetch.fetch.redirect import MetaRedirectResolver, find_meta_refresh
from refetch.fetch.state_machine import (
    FetchState,
    FetchStateMachine,
    FetchStateTransitionError,
)
from refetch.fetch.stream import StreamAlreadyConsumedError, StreamHandle
from refetch.fetch.transport import ProtocolTransport


__all__ = [
    # Client
    "ConditionalFetcher",
    "fetch",
    # Cache
    "CacheManager",
    "RecordStore",
    # Config
    "FetchConfig",
    # Models
    "FetchOutcome",
    "FetchRequest",
    "OutcomeKind",
    "ResponseMeta",
    "TransportResponse",
    "UnchangedReason",
    # State machine
    "FetchState",
    "FetchStateMachine",
    "FetchStateTransitionError",
    # Transport
    "ProtocolTransport",
    "MetaRedirectResolver",
    "find_meta_refresh",
    # Streaming
    "StreamHandle",
    "StreamAlreadyConsumedError",
    # Constants
    "HTTP_STATUS_OK",
    "HTTP_STATUS_NOT_MODIFIED",
    "DEFAULT_SUCCESS_CODES",
    "DEFAULT_MAX_RESPONSE_SIZE_BYTES",
    "DEFAULT_CHUNK_SIZE",
    "MAX_META_REDIRECTS",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
