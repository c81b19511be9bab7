"""Age detection workflow: upload an image, run the detector, record the result."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

from modules.clients.magicapi import AgeDetectionResult, MagicApiClient, MagicApiError
from modules.pipelines.history_panel import HistoryPanel
from modules.pipelines.state import AgeDetectionState, age_detection_machine
from modules.services.history_service import HistoryStore
from modules.services.validators import (
    AGE_DETECTION_STORAGE_KEY,
    AgeDetectionHistoryItem,
    age_detection_result_validator,
    format_timestamp,
    utc_now,
)
from modules.utils.image_utils import CodecFailure, blob_to_base64

logger = logging.getLogger(__name__)

_AGE_BRACKETS = (
    (13, "儿童"),
    (20, "青少年"),
    (30, "青年"),
    (50, "成年"),
    (65, "中年"),
)


def describe_age(age: Optional[str]) -> str:
    """Return a coarse age bracket label, or '' for non-numeric ages."""
    if not age:
        return ""
    digits = ""
    for char in age.strip():
        if char.isdigit() or (char == "-" and not digits):
            digits += char
        else:
            break
    try:
        value = int(digits)
    except ValueError:
        return ""
    for limit, label in _AGE_BRACKETS:
        if value < limit:
            return label
    return "老年"


@dataclass(slots=True)
class AgeDetectionSnapshot:
    """What the UI needs to render the age detection page."""

    state: AgeDetectionState
    preview: Optional[str]
    result: Optional[AgeDetectionResult]
    error: Optional[str]
    history: List[AgeDetectionHistoryItem]
    expanded_index: Optional[int]
    expanded_record: Optional[AgeDetectionHistoryItem]


class AgeDetectionPipeline:
    """Drive one age detection page: idle → uploading → processing → success/error."""

    def __init__(
        self,
        client: MagicApiClient,
        store: HistoryStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.client = client
        self.machine = age_detection_machine()
        self.history = HistoryPanel(store, AGE_DETECTION_STORAGE_KEY, age_detection_result_validator)
        self.clock = clock
        self.file: Optional[Any] = None
        self.filename: Optional[str] = None
        self.preview: Optional[str] = None
        self.uploaded_image_url: Optional[str] = None
        self.result: Optional[AgeDetectionResult] = None
        self.error: Optional[str] = None
        self.history.load()

    @property
    def state(self) -> AgeDetectionState:
        return self.machine.state

    def snapshot(self) -> AgeDetectionSnapshot:
        return AgeDetectionSnapshot(
            state=self.machine.state,
            preview=self.preview,
            result=self.result,
            error=self.error,
            history=self.history.entries(),
            expanded_index=self.history.expanded_index,
            expanded_record=self.history.expanded(),
        )

    def select_file(self, file: Any, filename: Optional[str] = None) -> AgeDetectionSnapshot:
        """Pick a new image; clears any previous result and cached upload."""
        if self.machine.is_busy:
            return self.snapshot()
        self.result = None
        self.error = None
        self.uploaded_image_url = None
        if file is None:
            self.file = None
            self.filename = None
            self.preview = None
            return self.snapshot()
        if filename is None and isinstance(file, (str, Path)):
            filename = Path(file).name
        elif filename is None and getattr(file, "name", None):
            filename = Path(str(file.name)).name
        try:
            if hasattr(file, "read"):
                # Streams are consumed once here so the upload can reuse the bytes.
                try:
                    file = file.read()
                except (OSError, ValueError) as exc:
                    raise CodecFailure(f"无法读取数据流：{exc}") from exc
            mime_type = mimetypes.guess_type(filename)[0] if filename else None
            self.preview = blob_to_base64(file, mime_type=mime_type)
        except CodecFailure as exc:
            self.file = None
            self.filename = None
            self.preview = None
            self.error = str(exc)
            return self.snapshot()
        self.file = file
        self.filename = filename
        return self.snapshot()

    def _check_preconditions(self) -> Optional[str]:
        if self.file is None or self.preview is None:
            return "请先上传图像。"
        if not self.client.has_api_key():
            return "请先填写 API Key。"
        return None

    def run(self) -> AgeDetectionSnapshot:
        """Upload (unless already uploaded) and detect the age of the selected image."""
        if self.machine.is_busy:
            return self.snapshot()
        problem = self._check_preconditions()
        if problem:
            self.error = problem
            return self.snapshot()

        self.error = None
        try:
            image_url = self.uploaded_image_url
            if not image_url:
                self.machine.transition(AgeDetectionState.UPLOADING)
                image_url = self.client.upload_image(self.file, filename=self.filename)
                self.uploaded_image_url = image_url

            self.machine.transition(AgeDetectionState.PROCESSING)
            result = self.client.detect_age(image_url)

            record = AgeDetectionHistoryItem(
                age=result.age,
                predict_time=result.predict_time,
                image_data=self.preview,
                created_at=format_timestamp(self.clock()),
            )
            self.history.add(record)
            self.result = result
            self.machine.transition(AgeDetectionState.SUCCESS)
        except MagicApiError as exc:
            logger.info("Age detection failed: %s", exc)
            self.error = str(exc)
            self.machine.transition(AgeDetectionState.ERROR)
        return self.snapshot()

    def reset(self) -> AgeDetectionSnapshot:
        if self.machine.is_busy:
            return self.snapshot()
        self.file = None
        self.filename = None
        self.preview = None
        self.uploaded_image_url = None
        self.result = None
        self.error = None
        self.machine.reset()
        return self.snapshot()

    # History ------------------------------------------------------------------
    def refresh_history(self) -> List[AgeDetectionHistoryItem]:
        return self.history.load()

    def expand(self, index: int) -> Optional[int]:
        return self.history.expand(index)

    def delete(self, index: int) -> List[AgeDetectionHistoryItem]:
        return self.history.delete(index)

    def download(self, index: int, directory: Path) -> Path:
        return self.history.download(index, directory, stem=f"age-detection-{index}")
