"""Configure pytest fixtures and environment for Bouchenator tests."""

from typing import Callable

import httpx
import pytest

from bouchenator.core.config import reset_settings
from bouchenator.intelligence.cache import TTLCache
from bouchenator.services.job_store import JobStore

CREDENTIAL_VARS = (
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "PRODUCT_HUNT_TOKEN",
    "DEMO_MIN_STEP_MS",
    "ENABLE_PLAYWRIGHT",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """No live credentials, no pacing, data under a temp dir."""
    for var in CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def store(tmp_path) -> JobStore:
    return JobStore(tmp_path / "store")


@pytest.fixture
def theme_cache() -> TTLCache:
    return TTLCache("theme-test", 60)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network unreachable", request=request)


@pytest.fixture
def offline_client() -> httpx.AsyncClient:
    return mock_client(unreachable)
