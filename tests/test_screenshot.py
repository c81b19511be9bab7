"""Screenshot pipeline tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from modules.clients.magicapi import CaptureFailure, MagicApiClient, ScreenshotParams, ScreenshotResult
from modules.pipelines.screenshot import ScreenshotPipeline
from modules.pipelines.state import ScreenshotState
from modules.services.validators import STORAGE_KEY, screenshot_validator

FIXED_NOW = datetime(2024, 6, 1, 8, 30, 0, tzinfo=timezone.utc)


class DummyClient:
    """Stub client returning a canned screenshot."""

    def __init__(self, content: bytes, api_key: str = "secret") -> None:
        self.api_key = api_key
        self.content = content
        self.calls: list[ScreenshotParams] = []
        self.error: Optional[Exception] = None

    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def capture_screenshot(self, params: ScreenshotParams) -> ScreenshotResult:
        self.calls.append(params)
        if self.error:
            raise self.error
        return ScreenshotResult(content=self.content, mime_type="image/jpeg")


def build_pipeline(client, history_store) -> ScreenshotPipeline:
    return ScreenshotPipeline(client, history_store, clock=lambda: FIXED_NOW)


def test_capture_stores_record_and_allows_download(history_store, tmp_path, jpeg_bytes):
    client = DummyClient(jpeg_bytes)
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url(" https://example.com ")

    snapshot = pipeline.capture()

    assert snapshot.state == ScreenshotState.SUCCESS
    assert snapshot.image_data.startswith("data:image/jpeg;base64,")
    stored = history_store.read(STORAGE_KEY, screenshot_validator)
    assert screenshot_validator.dump(stored) == [
        {
            "input": "https://example.com",
            "imageData": snapshot.image_data,
            "createdAt": "2024-06-01T08:30:00.000Z",
        }
    ]

    path = pipeline.download(tmp_path)
    assert path.name == "screenshot.jpg"
    assert path.read_bytes() == jpeg_bytes


def test_end_to_end_with_simulated_server(fake_session, make_response, history_store, png_bytes):
    fake_session.queue(make_response(content=png_bytes, headers={"Content-Type": "image/png"}))
    client = MagicApiClient("https://api.test", api_key="secret", session=fake_session)
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url("https://example.com")
    pipeline.update_params(out_format="png", res_x=800)

    snapshot = pipeline.capture()

    assert snapshot.state == ScreenshotState.SUCCESS
    assert ("resX", "800") in fake_session.calls[0]["params"]
    assert snapshot.history[0].image_data.startswith("data:image/png;base64,")


def test_invalid_url_keeps_idle(history_store, jpeg_bytes):
    client = DummyClient(jpeg_bytes)
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url("example.com")

    snapshot = pipeline.capture()

    assert snapshot.state == ScreenshotState.IDLE
    assert snapshot.error
    assert client.calls == []


def test_missing_api_key_keeps_idle(history_store, jpeg_bytes):
    client = DummyClient(jpeg_bytes, api_key="")
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url("https://example.com")

    snapshot = pipeline.capture()

    assert snapshot.state == ScreenshotState.IDLE
    assert "API Key" in snapshot.error


def test_capture_failure_is_surfaced_and_not_stored(history_store, tmp_path, jpeg_bytes):
    client = DummyClient(jpeg_bytes)
    client.error = CaptureFailure("API Error: 500 Internal Server Error", 500)
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url("https://example.com")

    snapshot = pipeline.capture()

    assert snapshot.state == ScreenshotState.ERROR
    assert snapshot.error == "API Error: 500 Internal Server Error"
    assert history_store.read(STORAGE_KEY, screenshot_validator) == []
    assert pipeline.download(tmp_path) is None


def test_capture_requires_reset_after_terminal_state(history_store, jpeg_bytes):
    client = DummyClient(jpeg_bytes)
    pipeline = build_pipeline(client, history_store)
    pipeline.set_url("https://example.com")
    pipeline.capture()

    pipeline.capture()
    assert len(client.calls) == 1

    pipeline.reset()
    assert pipeline.state == ScreenshotState.IDLE
    assert pipeline.image_data is None
    pipeline.capture()
    assert len(client.calls) == 2
    assert len(pipeline.snapshot().history) == 2


def test_update_params_ignores_unknown_format(history_store, jpeg_bytes):
    pipeline = build_pipeline(DummyClient(jpeg_bytes), history_store)

    params = pipeline.update_params(out_format="gif", wait_time=250)

    assert params.out_format == "jpg"
    assert params.wait_time == 250


def test_history_download_and_delete(history_store, tmp_path, jpeg_bytes):
    pipeline = build_pipeline(DummyClient(jpeg_bytes), history_store)
    pipeline.set_url("https://example.com")
    pipeline.capture()

    path = pipeline.download_history(0, tmp_path)
    assert path.read_bytes() == jpeg_bytes

    pipeline.expand(0)
    assert pipeline.snapshot().expanded_record.input == "https://example.com"
    assert pipeline.delete(0) == []
    assert pipeline.snapshot().expanded_record is None
    assert pipeline.snapshot().expanded_index is None
