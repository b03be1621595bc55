"""
Relay Client

Forwards allowed requests to the target UNIX socket over a pooled HTTP
client, bounding each attempt by a single deadline.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Tuple, Union

import httpx
import structlog

logger = structlog.get_logger(__name__)

# HTTP over a UNIX socket has no real host; requests are addressed here.
SYNTHETIC_HOST = "unix"

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Recomputed by httpx for the outbound request.
_RECOMPUTED_HEADERS = frozenset({"host", "content-length"})


# Header pairs may be str or raw bytes, as from starlette's Headers.raw.
HeaderItems = Union[Mapping[str, str], Iterable[Tuple[Union[str, bytes], Union[str, bytes]]]]


class RelayOutcome(str, Enum):
    """Typed result of a single relay attempt."""

    SUCCESS = "success"
    CONSTRUCTION_FAILURE = "construction_failure"
    TIMEOUT = "timeout"


class RelayConstructionError(Exception):
    """The outbound request could not be built."""


@dataclass
class RelayResult:
    """Result of relaying a request."""

    outcome: RelayOutcome
    response: Optional[httpx.Response] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is RelayOutcome.SUCCESS


def _header_name(key: Union[str, bytes]) -> str:
    if isinstance(key, bytes):
        key = key.decode("latin-1")
    return key.lower()


def strip_hop_by_hop(headers: HeaderItems) -> List[Tuple[Union[str, bytes], Union[str, bytes]]]:
    """Drop connection-scoped headers that must not cross the relay, keeping repeats."""
    items = headers.items() if isinstance(headers, Mapping) else headers
    return [
        (key, value)
        for key, value in items
        if _header_name(key) not in HOP_BY_HOP_HEADERS
    ]


def relay_headers(response: httpx.Response) -> List[Tuple[bytes, bytes]]:
    """Raw upstream response headers minus hop-by-hop ones, repeats kept."""
    return [
        (key.lower(), value)
        for key, value in response.headers.raw
        if key.lower().decode("latin-1") not in HOP_BY_HOP_HEADERS
    ]


class RelayClient:
    """
    Relays requests to the target socket.

    One AsyncClient (and its connection pool) is shared by every
    concurrent request. There are no retries: each inbound request gets
    exactly one attempt.
    """

    def __init__(
        self,
        target_socket: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.target_socket = target_socket
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        """Initialize the HTTP client."""
        transport = self._transport or httpx.AsyncHTTPTransport(uds=self.target_socket)
        self._client = httpx.AsyncClient(
            transport=transport,
            # Only connecting is bounded here; the overall deadline is
            # applied around send() so streamed bodies are not cut off.
            timeout=httpx.Timeout(None, connect=self.timeout),
            follow_redirects=False,
        )
        logger.info("relay_client_initialized", target_socket=self.target_socket)

    async def shutdown(self) -> None:
        """Shutdown the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("relay_client_shutdown")

    def build_request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[HeaderItems] = None,
        query_string: str = "",
    ) -> httpx.Request:
        """
        Build the outbound request.

        ``path`` is the percent-encoded request path, sent as given;
        ``query_string`` is the raw query without the leading ``?``.

        Raises:
            RelayConstructionError: if httpx rejects the method, URL or headers
        """
        if self._client is None:
            raise RelayConstructionError("relay client is not initialized")

        forward_headers = [
            (key, value)
            for key, value in strip_hop_by_hop(headers or {})
            if _header_name(key) not in _RECOMPUTED_HEADERS
        ]

        try:
            url = httpx.URL(
                scheme="http",
                host=SYNTHETIC_HOST,
                path=path,
                query=query_string.encode("latin-1"),
            )
            return self._client.build_request(
                method,
                url,
                headers=forward_headers,
                content=body or None,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, TypeError, ValueError) as e:
            raise RelayConstructionError(str(e)) from e

    async def relay(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[HeaderItems] = None,
        query_string: str = "",
        timeout: Optional[float] = None,
    ) -> RelayResult:
        """
        Relay one request to the target socket.

        Args:
            method: HTTP method, passed through unchanged
            path: Percent-encoded request path, rewritten onto the synthetic host
            body: Request body
            headers: Inbound headers, repeats kept; hop-by-hop headers are dropped
            query_string: Raw query string, appended when non-empty
            timeout: Remaining deadline in seconds; defaults to ``self.timeout``

        Returns:
            RelayResult; on SUCCESS the caller owns ``response`` and must
            close it after streaming the body.
        """
        if timeout is None:
            timeout = self.timeout

        try:
            request = self.build_request(method, path, body, headers, query_string)
        except RelayConstructionError as e:
            return RelayResult(outcome=RelayOutcome.CONSTRUCTION_FAILURE, error=str(e))

        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return RelayResult(
                outcome=RelayOutcome.TIMEOUT,
                error=f"no response within {timeout}s",
            )
        except httpx.TransportError as e:
            # Unreachable or misbehaving backends share the timeout outcome.
            return RelayResult(
                outcome=RelayOutcome.TIMEOUT,
                error=f"{type(e).__name__}: {e}",
            )

        return RelayResult(outcome=RelayOutcome.SUCCESS, response=response)
