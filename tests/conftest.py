"""Pytest configuration."""

import os

import httpx
import pytest

# Ensure test environment
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("FLAG_LOG_PATH", "logs/test-blocked.log")

from relaygate.config import Settings  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        upstream_url="https://origin.example/",
        white_ip="23.239.11.1",
        white_ua_mode="suffix",
        flag_log_path=str(tmp_path / "logs" / "blocked.log"),
    )


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through a MockTransport built from `handler`."""
    orig_async_client = httpx.AsyncClient

    def install(handler):
        transport = httpx.MockTransport(handler)

        def client_factory(**kwargs):
            return orig_async_client(transport=transport, **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", client_factory)

    return install
