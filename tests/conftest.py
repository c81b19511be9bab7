"""Shared fixtures: in-memory storage, sample images and a fake HTTP session."""

from __future__ import annotations

import io
import json
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from PIL import Image

from modules.services.history_service import HistoryStore
from modules.services.storage_service import MemoryStorage


def _make_response(
    status: int = 200,
    json_body: Any = None,
    content: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    reason: str = "OK",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
        response.encoding = "utf-8"
    else:
        response._content = content
    response.headers.update(headers or {})
    return response


class DummySession:
    """Stand-in for requests.Session that replays canned responses."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[Any] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def _next(self, method: str, url: str, kwargs: Dict[str, Any]) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self._next("POST", url, kwargs)

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self._next("GET", url, kwargs)


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return _make_response


@pytest.fixture
def fake_session() -> DummySession:
    return DummySession()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def history_store(memory_storage: MemoryStorage) -> HistoryStore:
    return HistoryStore(memory_storage)


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 6), color=(10, 120, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()
