"""In-content (HTML meta refresh) redirect following."""

import re
from urllib.parse import urldefrag, urljoin, urlsplit

import structlog
from bs4 import BeautifulSoup

from refetch.fetch.constants import (
    HTTP_STATUS_OK,
    MAX_META_REDIRECTS,
    NETWORK_SCHEMES,
)
from refetch.fetch.models import FetchRequest, TransportResponse
from refetch.fetch.redact import redact_url_credentials
from refetch.fetch.transport import ProtocolTransport


logger = structlog.get_logger()

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# "5; url=/next", "0;URL='/next'", "0, /next"
_REFRESH_SPLIT = re.compile(r"[;,]")
_REFRESH_URL_PREFIX = re.compile(r"^url\s*=\s*", re.IGNORECASE)


def parse_refresh_content(content: str) -> str | None:
    """Extract the target from a refresh directive's content attribute.

    Args:
        content: Attribute value, e.g. ``"0; url=https://example.com/"``.

    Returns:
        The raw (possibly relative) target, or None if the directive only
        reloads the current page.
    """
    parts = _REFRESH_SPLIT.split(content, maxsplit=1)
    if len(parts) < 2:  # noqa: PLR2004
        return None
    target = _REFRESH_URL_PREFIX.sub("", parts[1].strip()).strip()
    target = target.strip("'\"").strip()
    return target or None


def find_meta_refresh(html: bytes | str, base_url: str) -> str | None:
    """Find an HTML refresh directive and resolve its target.

    Args:
        html: HTML document.
        base_url: URL the document was retrieved from.

    Returns:
        Absolute target URL, or None if the document has no redirect.
    """
    soup = BeautifulSoup(html, "lxml")
    for meta in soup.find_all("meta"):
        http_equiv = meta.get("http-equiv")
        if not isinstance(http_equiv, str) or http_equiv.strip().lower() != "refresh":
            continue
        content = meta.get("content")
        if not isinstance(content, str):
            continue
        target = parse_refresh_content(content)
        if target:
            return urljoin(base_url, target)
    return None


def is_meta_redirect_candidate(response: TransportResponse) -> bool:
    """Check if a response may carry an in-content redirect.

    Only buffered network responses with status 200 and an HTML
    content type are scanned.
    """
    if response.body is None or response.status_code != HTTP_STATUS_OK:
        return False
    if urlsplit(response.url).scheme.lower() not in NETWORK_SCHEMES:
        return False
    content_type = response.content_type.lower()
    return any(html_type in content_type for html_type in HTML_CONTENT_TYPES)


class MetaRedirectResolver:
    """Follows meta refresh redirects on top of transport redirects.

    The chain is bounded: it stops when a redirect points back at the
    current URL, when it points at a non-network scheme, or after
    ``max_redirects`` hops, and the last response is returned as final.
    Hops are plain GET requests without a body, like browser navigation.
    """

    def __init__(
        self,
        transport: ProtocolTransport,
        max_redirects: int = MAX_META_REDIRECTS,
    ) -> None:
        """Initialize the resolver.

        Args:
            transport: Transport used for every hop.
            max_redirects: Maximum number of in-content redirects to follow.
        """
        self._transport = transport
        self._max_redirects = max_redirects
        self._log = logger.bind(component="redirect")

    async def retrieve(
        self,
        request: FetchRequest,
        conditional_headers: dict[str, str],
        stream: bool = False,
    ) -> TransportResponse:
        """Retrieve a resource, following meta refresh redirects if enabled.

        Streaming retrievals are never scanned since their body is unread.

        Args:
            request: The fetch request.
            conditional_headers: Conditional headers sent on every hop.
            stream: Return a lazy byte stream instead of a buffered body.

        Returns:
            The final response.
        """
        response = await self._transport.retrieve(
            request, conditional_headers, stream=stream
        )
        if stream or not request.follow_meta_refresh:
            return response

        hop_request = request.model_copy(update={"method": "GET", "data": None})
        for hop in range(1, self._max_redirects + 1):
            if not is_meta_redirect_candidate(response):
                return response

            target = find_meta_refresh(response.body or b"", response.url)
            if target is None:
                return response
            if urldefrag(target).url == urldefrag(response.url).url:
                self._log.debug(
                    "meta_refresh_self_loop",
                    url=redact_url_credentials(response.url),
                )
                return response
            if urlsplit(target).scheme.lower() not in NETWORK_SCHEMES:
                self._log.warning(
                    "meta_refresh_refused",
                    from_url=redact_url_credentials(response.url),
                    to_url=redact_url_credentials(target),
                )
                return response

            self._log.info(
                "meta_refresh_followed",
                hop=hop,
                from_url=redact_url_credentials(response.url),
                to_url=redact_url_credentials(target),
            )
            response = await self._transport.retrieve(
                hop_request, conditional_headers, url=target
            )

        return response
