"""
Shared pytest fixtures for pdf-harvest tests.

Provides an in-memory stand-in for requests.Session so that downloads,
discovery and size estimation run without network access.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest
import requests

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from harvest_core import HarvestCore  # noqa: E402


class FakeResponse:
    def __init__(self, status_code: int = 200, body: bytes = b"",
                 headers: Optional[Dict[str, str]] = None,
                 on_close: Optional[Callable[[], None]] = None) -> None:
        self.status_code = status_code
        self.body = body
        self.headers: Dict[str, str] = dict(headers or {})
        self._on_close = on_close
        self._closed = False

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            if self._on_close:
                self._on_close()

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


Route = Union[bytes, int, Exception, FakeResponse]


class FakeSession:
    """
    Route table keyed by URL.

    A route is the body to serve (bytes), an HTTP status to return (int),
    an exception to raise, or a ready FakeResponse. URLs without a route
    are served with ``default_body(url)``.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None,
                 default_body: Optional[Callable[[str], bytes]] = None,
                 delay: float = 0.0) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.default_body = default_body or (lambda url: f"content of {url}".encode())
        self.delay = delay
        self.headers: Dict[str, str] = {}
        self.get_calls: List[str] = []
        self.head_calls: List[str] = []
        self.events: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _finish(self, url: str) -> None:
        with self._lock:
            self.in_flight -= 1
            self.events.append(("end", url))

    def get(self, url: str, stream: bool = False, timeout=None, **kwargs) -> FakeResponse:
        with self._lock:
            self.get_calls.append(url)
            self.events.append(("start", url))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

        if self.delay:
            time.sleep(self.delay)

        route = self.routes.get(url)
        if isinstance(route, Exception):
            self._finish(url)
            raise route
        if isinstance(route, FakeResponse):
            response = route
            response._on_close = lambda: self._finish(url)
            return response
        if isinstance(route, int):
            return FakeResponse(status_code=route, on_close=lambda: self._finish(url))
        body = route if route is not None else self.default_body(url)
        return FakeResponse(body=body, headers={"Content-Length": str(len(body))},
                            on_close=lambda: self._finish(url))

    def head(self, url: str, allow_redirects: bool = False, timeout=None,
             **kwargs) -> FakeResponse:
        with self._lock:
            self.head_calls.append(url)
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, FakeResponse):
            return route
        if isinstance(route, int):
            return FakeResponse(status_code=route)
        body = route if route is not None else self.default_body(url)
        return FakeResponse(headers={"Content-Length": str(len(body))})


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def download_root(tmp_path: Path) -> Path:
    return tmp_path / "downloads"


@pytest.fixture
def make_core(download_root: Path):
    """Factory building an engine bound to a fake session."""

    def _make(session: FakeSession, **kwargs) -> HarvestCore:
        kwargs.setdefault("output_dir", str(download_root))
        return HarvestCore(session=session, **kwargs)

    return _make


@pytest.fixture
def connection_error() -> Callable[[str], Exception]:
    return lambda url: requests.ConnectionError(f"connection refused: {url}")
