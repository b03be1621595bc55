"""
Relay Gateway

Request dispatcher that authorizes every inbound request against the
compiled access rules and relays allowed ones to the target socket.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Iterable, Optional, Tuple
from urllib.parse import quote

import httpx
import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from veil.config.settings import RoutingMode
from veil.proxy.authorizer import Authorizer, Decision, build_authorizer
from veil.proxy.config import ProxyConfig
from veil.proxy.relay import RelayClient, RelayOutcome, RelayResult, relay_headers
from veil.proxy.responses import ErrorKind, error_response
from veil.proxy.rules import SUPPORTED_METHODS, read_rule_lines

logger = structlog.get_logger(__name__)

# Every method the catch-all route accepts; anything else is rejected by
# the router and mapped onto the bad-request body.
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE", "CONNECT"]


def _request_target(request: Request) -> Tuple[str, str, str]:
    """
    Split the request target.

    Returns the decoded path used for authorization, the path as the
    caller encoded it for relaying, and the raw query string. ``request.url``
    is not used: it re-parses the decoded path, so an encoded ``?`` would
    split it.
    """
    scope = request.scope
    path = scope["path"]
    raw_path = scope.get("raw_path")
    if raw_path:
        encoded_path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        encoded_path = quote(path)
    query_string = scope.get("query_string", b"").decode("latin-1")
    return path, encoded_path, query_string


async def _iter_upstream(upstream: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the raw upstream body, closing the response even on disconnect."""
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()


class VeilGateway:
    """
    Veil authorization relay.

    For each request:
    1. Rejects methods outside the supported set
    2. Looks the (method, path) pair up in the immutable rule table
    3. Relays allowed requests to the target socket, once, under a deadline
    4. Writes exactly one response: the relayed body or a fixed error body
    """

    def __init__(
        self,
        config: ProxyConfig,
        authorizer: Authorizer,
        relay: Optional[RelayClient] = None,
    ):
        self.config = config
        self.authorizer = authorizer
        self.relay = relay or RelayClient(
            target_socket=config.target_socket_path,
            timeout=config.upstream_timeout,
        )

        self.app: Optional[FastAPI] = None

        logger.info(
            "relay_gateway_created",
            target_socket=config.target_socket_path,
            mode=config.routing_mode.value,
        )

    def create_app(self) -> FastAPI:
        """Create the FastAPI application for the relay gateway."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator:
            """Application lifespan manager."""
            logger.info("starting_relay_gateway")
            await self.relay.initialize()

            yield

            logger.info("shutting_down_relay_gateway")
            await self.relay.shutdown()

        self.app = FastAPI(
            title="Veil",
            description="UNIX socket authorization relay",
            version="0.1.0",
            lifespan=lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @self.app.exception_handler(StarletteHTTPException)
        async def router_error_handler(request: Request, exc: StarletteHTTPException):
            """Map router-level rejections onto the fixed error bodies."""
            if exc.status_code == 405:
                # Methods the route does not list still follow the per-mode order.
                return await self._handle_request(request)
            if exc.status_code == 404:
                return self._reject(ErrorKind.NOT_FOUND, request, "request_not_found")
            return self._reject(ErrorKind.BAD_METHOD, request, "request_rejected_by_router")

        @self.app.api_route("/{path:path}", methods=ROUTED_METHODS)
        async def relay_request(request: Request, path: str):
            """Authorize and relay every request."""
            return await self._handle_request(request)

        return self.app

    async def _handle_request(self, request: Request) -> Response:
        method = request.method
        path, encoded_path, query_string = _request_target(request)

        # Method mode checks the verb before consulting the rules; path mode
        # resolves the route first.
        if self.config.routing_mode == RoutingMode.METHOD and method not in SUPPORTED_METHODS:
            return self._reject(ErrorKind.BAD_METHOD, request, "request_bad_method")

        decision = self.authorizer.decide(method, path)
        if decision is Decision.NOT_FOUND:
            return self._reject(ErrorKind.NOT_FOUND, request, "request_not_found")
        if decision is Decision.DENY:
            return self._reject(ErrorKind.UNAUTHORIZED, request, "request_denied")

        if method not in SUPPORTED_METHODS:
            return self._reject(ErrorKind.BAD_METHOD, request, "request_bad_method")

        # Reading the inbound body and the upstream attempt share one deadline.
        timeout = self.config.upstream_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            body = await asyncio.wait_for(request.body(), timeout=timeout)
        except asyncio.TimeoutError:
            return self._reject(
                ErrorKind.REQUEST_TIMEOUT,
                request,
                "relay_timeout",
                error=f"request body not received within {timeout}s",
            )

        result = await self.relay.relay(
            method=method,
            path=encoded_path,
            body=body,
            headers=request.headers.raw,
            query_string=query_string if self.config.forward_query_string else "",
            timeout=max(deadline - loop.time(), 0.0),
        )

        if result.outcome is RelayOutcome.CONSTRUCTION_FAILURE:
            return self._reject(
                ErrorKind.INTERNAL_ERROR, request, "relay_construction_failed", error=result.error
            )
        if result.outcome is RelayOutcome.TIMEOUT:
            return self._reject(
                ErrorKind.REQUEST_TIMEOUT, request, "relay_timeout", error=result.error
            )

        return self._stream_response(request, result)

    def _stream_response(self, request: Request, result: RelayResult) -> Response:
        """Stream the upstream body back unmodified."""
        upstream = result.response
        logger.info(
            "request_relayed",
            method=request.method,
            path=request.scope["path"],
            status_code=upstream.status_code,
        )

        response = StreamingResponse(
            _iter_upstream(upstream),
            status_code=upstream.status_code,
        )
        response.raw_headers = relay_headers(upstream)
        return response

    def _reject(self, kind: ErrorKind, request: Request, event: str, **context) -> Response:
        """Write the fixed body for *kind*."""
        failed = kind in (ErrorKind.INTERNAL_ERROR, ErrorKind.REQUEST_TIMEOUT)
        log = logger.warning if failed else logger.info
        log(
            event,
            method=request.method,
            path=request.scope["path"],
            status_code=kind.status_code,
            **context,
        )
        return error_response(kind, mirror_status=self.config.mirror_status_codes)


def create_proxy_app(
    config: ProxyConfig,
    rule_lines: Optional[Iterable[str]] = None,
    relay: Optional[RelayClient] = None,
) -> FastAPI:
    """
    Create a FastAPI application for the relay gateway.

    Args:
        config: Relay configuration
        rule_lines: Raw rule lines; read from ``config.rules_path`` if omitted
        relay: Optional pre-built relay client

    Returns:
        Configured FastAPI application
    """
    errors = config.validate()
    if errors:
        logger.error("proxy_config_invalid", errors=errors)
        raise ValueError(f"Invalid proxy configuration: {errors}")

    if rule_lines is None:
        rule_lines = read_rule_lines(config.rules_path)

    # Compiled once, before any connection is accepted, and never mutated.
    authorizer = build_authorizer(config.routing_mode, rule_lines)
    logger.info("access_rules_loaded", mode=config.routing_mode.value, table=repr(authorizer.table))

    gateway = VeilGateway(config=config, authorizer=authorizer, relay=relay)
    return gateway.create_app()
