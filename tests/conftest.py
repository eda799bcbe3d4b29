"""Shared fixtures: a fake provider API on httpx.MockTransport, clock and sleep."""

from datetime import datetime
from typing import Any

import httpx
import pytest

from mediagrab.config import Settings, get_settings

LATE_BASE = "https://getlate.dev/api/v1"
INSTAG_BASE = "https://instag.com/api/v1"
FIXED_NOW = datetime(2025, 1, 15, 14, 30, 22)


class FakeAPI:
    """
    Routes requests by method and URL (without query) to canned responses.

    Each route holds a queue of responses; the last one repeats. A response
    is a dict of httpx.Response kwargs (plus "status"), an exception, or a
    callable taking the request.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], list[Any]] = {}

    def add(self, method: str, url: str, *responses: Any) -> "FakeAPI":
        self.routes.setdefault((method, url), []).extend(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, text=f"no route for {key}")

        canned = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(canned, Exception):
            raise canned
        if callable(canned):
            return canned(request)
        canned = dict(canned)
        status = canned.pop("status", 200)
        return httpx.Response(status, **canned)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method
            and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(float(seconds))


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def download_dir(tmp_path):
    return tmp_path / "downloads"


@pytest.fixture
def settings(download_dir):
    return Settings(
        _env_file=None,
        late_dev_api_key="late-key",
        instag_api_key="instag-key",
        download_dir=str(download_dir),
        poll_interval=5.0,
        max_polls=300,
    )


@pytest.fixture
def settings_from_env(monkeypatch, tmp_path):
    """Make get_settings() read a fresh environment (no .env file)."""
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
