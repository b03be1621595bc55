"""
Shared fixtures for the Veil test suite.

The backend is an httpx.MockTransport that records every request it
receives, so tests can assert the target socket was never contacted.
"""

import tempfile
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from veil.config.settings import RoutingMode
from veil.proxy.config import ProxyConfig
from veil.proxy.gateway import create_proxy_app
from veil.proxy.relay import RelayClient


class RecordingBackend:
    """Stand-in for the target socket's HTTP server."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b'{"ok":true}',
        headers: Optional[dict] = None,
        error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.content = content
        self.headers = headers if headers is not None else {"content-type": "application/json"}
        self.error = error
        self.calls: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        # An async iterator keeps the body unread, like a real socket response.
        return httpx.Response(self.status_code, content=self._stream(), headers=self.headers)

    async def _stream(self) -> AsyncIterator[bytes]:
        yield self.content

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def socket_dir():
    """Short temporary directory; UNIX socket paths are length-limited."""
    with tempfile.TemporaryDirectory(prefix="veil-") as path:
        yield Path(path)


def make_config(**overrides) -> ProxyConfig:
    values = dict(
        target_socket_path="/tmp/veil-target.sock",
        exposed_socket_path="/tmp/veil-exposed.sock",
        rules_path="",
        routing_mode=RoutingMode.METHOD,
    )
    values.update(overrides)
    return ProxyConfig(**values)


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    """Build a started TestClient around a gateway with the given rules."""
    clients = []

    def _make(
        rules: Iterable[str],
        backend: RecordingBackend,
        relay: Optional[RelayClient] = None,
        **overrides,
    ) -> TestClient:
        config = make_config(**overrides)
        relay = relay or RelayClient(
            target_socket=config.target_socket_path,
            timeout=config.upstream_timeout,
            transport=backend.transport,
        )
        app = create_proxy_app(config, rule_lines=list(rules), relay=relay)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
