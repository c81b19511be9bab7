"""Screenshot capture workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

from modules.clients.magicapi import IMAGE_FORMATS, MagicApiClient, MagicApiError, ScreenshotParams
from modules.pipelines.history_panel import HistoryPanel
from modules.pipelines.state import ScreenshotState, screenshot_machine
from modules.services.history_service import HistoryStore
from modules.services.validators import (
    STORAGE_KEY,
    ScreenshotItem,
    format_timestamp,
    is_valid_url,
    screenshot_validator,
    utc_now,
)
from modules.utils.image_utils import CodecFailure, blob_to_base64

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScreenshotSnapshot:
    """What the UI needs to render the screenshot page."""

    state: ScreenshotState
    url: str
    image_data: Optional[str]
    error: Optional[str]
    history: List[ScreenshotItem]
    expanded_index: Optional[int]
    expanded_record: Optional[ScreenshotItem]


class ScreenshotPipeline:
    """Drive the screenshot page: idle → loading → success/error."""

    def __init__(
        self,
        client: MagicApiClient,
        store: HistoryStore,
        params: Optional[ScreenshotParams] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.machine = screenshot_machine()
        self.history = HistoryPanel(store, STORAGE_KEY, screenshot_validator)
        self.params = params or ScreenshotParams()
        self.clock = clock
        self.content: Optional[bytes] = None
        self.image_data: Optional[str] = None
        self.captured_format: str = self.params.out_format
        self.error: Optional[str] = None
        self.history.load()

    @property
    def state(self) -> ScreenshotState:
        return self.machine.state

    @property
    def url(self) -> str:
        return self.params.url

    def snapshot(self) -> ScreenshotSnapshot:
        return ScreenshotSnapshot(
            state=self.machine.state,
            url=self.params.url,
            image_data=self.image_data,
            error=self.error,
            history=self.history.entries(),
            expanded_index=self.history.expanded_index,
            expanded_record=self.history.expanded(),
        )

    def set_url(self, url: str) -> None:
        self.params = replace(self.params, url=(url or "").strip())

    def update_params(self, **changes: Any) -> ScreenshotParams:
        """Change advanced settings; unknown formats are ignored."""
        fmt = changes.get("out_format")
        if fmt is not None and fmt not in IMAGE_FORMATS:
            changes.pop("out_format")
        self.params = replace(self.params, **changes)
        return self.params

    def is_valid_url(self) -> bool:
        return is_valid_url(self.params.url)

    def capture(self) -> ScreenshotSnapshot:
        # Capturing again requires an explicit reset back to idle.
        if self.machine.state != ScreenshotState.IDLE:
            return self.snapshot()
        if not self.is_valid_url():
            self.error = "请输入有效的网址。"
            return self.snapshot()
        if not self.client.has_api_key():
            self.error = "请先填写 API Key。"
            return self.snapshot()
        self.error = None
        self.machine.transition(ScreenshotState.LOADING)
        params = self.params
        try:
            result = self.client.capture_screenshot(params)
            image_data = blob_to_base64(result.content, mime_type=result.mime_type)
            record = ScreenshotItem(
                input=params.url,
                image_data=image_data,
                created_at=format_timestamp(self.clock()),
            )
            self.history.add(record)
            self.content = result.content
            self.image_data = image_data
            self.captured_format = params.out_format
            self.machine.transition(ScreenshotState.SUCCESS)
        except (MagicApiError, CodecFailure) as exc:
            logger.info("Screenshot capture failed: %s", exc)
            self.error = str(exc)
            self.machine.transition(ScreenshotState.ERROR)
        return self.snapshot()

    def download(self, directory: Path) -> Optional[Path]:
        """Write the latest capture to ``screenshot.<format>``."""
        if self.content is None:
            return None
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"screenshot.{self.captured_format}"
        target.write_bytes(self.content)
        return target

    def reset(self) -> ScreenshotSnapshot:
        if self.machine.is_busy:
            return self.snapshot()
        self.content = None
        self.image_data = None
        self.error = None
        self.machine.reset()
        return self.snapshot()

    # History ------------------------------------------------------------------
    def refresh_history(self) -> List[ScreenshotItem]:
        return self.history.load()

    def expand(self, index: int) -> Optional[int]:
        return self.history.expand(index)

    def delete(self, index: int) -> List[ScreenshotItem]:
        return self.history.delete(index)

    def download_history(self, index: int, directory: Path) -> Path:
        return self.history.download(index, directory, stem=f"screenshot-{index}")
