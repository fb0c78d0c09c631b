"""Shared pytest fixtures for Cloudflare Image Proxy tests."""

from __future__ import annotations

import io
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from cfimage.api.main import create_app
from cfimage.core.config import ProxyConfig
from cfimage.core.rate_limiter import SlidingWindowRateLimiter
from cfimage.core.upstream import CloudflareImageClient


@dataclass
class FakeUpstream:
    """Scriptable stand-in for the Cloudflare endpoint.

    Attributes:
        status_code: Status returned for every request.
        content: Response body bytes.
        headers: Response headers.
        error: If set, raised instead of answering (simulates network failures).
        requests: Every request received, in order.
    """

    status_code: int = 200
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=lambda: {"content-type": "image/png"})
    error: Exception | None = None
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.content, headers=self.headers)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def test_config() -> ProxyConfig:
    """Create a configuration with dummy credentials and no .env lookup.

    Returns:
        ProxyConfig instance for testing
    """
    return ProxyConfig(
        _env_file=None,
        cloudflare_account_id="test-account",
        cloudflare_api_token="test-token",
        external_url=None,
        log_level="DEBUG",
    )


@pytest.fixture
def unconfigured_config() -> ProxyConfig:
    """Create a configuration with both Cloudflare credentials missing.

    Returns:
        ProxyConfig instance without credentials
    """
    return ProxyConfig(
        _env_file=None,
        cloudflare_account_id=None,
        cloudflare_api_token=None,
        external_url=None,
    )


@pytest.fixture
def png_bytes() -> bytes:
    """Encode a small real PNG image.

    Returns:
        PNG file contents
    """
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 80, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_upstream() -> type[FakeUpstream]:
    """Expose the FakeUpstream class for tests that script their own responses.

    Returns:
        The FakeUpstream class
    """
    return FakeUpstream


@pytest.fixture
def fake_upstream(png_bytes: bytes) -> FakeUpstream:
    """Create a fake upstream that answers every request with a PNG.

    Returns:
        FakeUpstream recording the requests it receives
    """
    return FakeUpstream(content=png_bytes)


@pytest.fixture
def make_test_client(
    test_config: ProxyConfig,
    fake_upstream: FakeUpstream,
) -> Callable[..., TestClient]:
    """Factory for TestClients wired to a fake upstream.

    Each call builds a fresh application with its own rate limiter.

    Returns:
        Callable accepting optional ``settings``, ``upstream`` and
        ``rate_limiter`` overrides
    """

    def _make(
        settings: ProxyConfig | None = None,
        upstream: FakeUpstream | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> TestClient:
        settings = settings or test_config
        upstream = upstream or fake_upstream
        image_client = CloudflareImageClient(settings, transport=upstream.transport())
        app = create_app(settings, rate_limiter=rate_limiter, image_client=image_client)
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def test_client(make_test_client: Callable[..., TestClient]) -> TestClient:
    """TestClient for an application backed by the default fake upstream.

    Returns:
        TestClient instance
    """
    return make_test_client()
