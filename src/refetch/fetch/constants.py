"""Constants for the fetch layer.

Centralizes protocol-related constants to avoid duplication across modules.
"""

# HTTP Status Codes
HTTP_STATUS_OK = 200
HTTP_STATUS_NOT_MODIFIED = 304

# Default success allowlist
DEFAULT_SUCCESS_CODES = (HTTP_STATUS_OK,)

# Response Size Limits
DEFAULT_MAX_RESPONSE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# In-content (meta refresh) redirect bound
MAX_META_REDIRECTS = 5

# Scheme groups handled by the transport
NETWORK_SCHEMES = frozenset({"http", "https"})
FTP_SCHEMES = frozenset({"ftp"})
FILE_SCHEMES = frozenset({"file", ""})

# Header names used on the normalized response (lowercase)
HEADER_ETAG = "etag"
HEADER_LAST_MODIFIED = "last-modified"
HEADER_CONTENT_LENGTH = "content-length"
HEADER_CONTENT_TYPE = "content-type"

# Conditional request headers
HEADER_IF_NONE_MATCH = "If-None-Match"
HEADER_IF_MODIFIED_SINCE = "If-Modified-Since"
