"""HTTP client for the hosted MagicAPI endpoints."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ValidationError

from config.settings import AppConfig

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/v1/capix/faceswap/upload/"
AGE_DETECTION_PATH = "/api/v1/magicapi/age-detector/predictions"
SCREENSHOT_PATH = "/api/v1/magicapi/screenshot-api/api/screenshot"

ImageFormat = Literal["jpg", "png", "webp"]
IMAGE_FORMATS: Tuple[str, ...] = ("jpg", "png", "webp")
_FORMAT_MIME = {"jpg": "image/jpeg", "png": "image/png", "webp": "image/webp"}


class MagicApiError(RuntimeError):
    """Base class for failed remote calls."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadFailure(MagicApiError):
    """The upload endpoint rejected the file or returned an unusable body."""


class InferenceFailure(MagicApiError):
    """The prediction did not succeed."""


class CaptureFailure(MagicApiError):
    """The screenshot endpoint returned a non-success status."""


class UploadResponse(BaseModel):
    status: str
    result: Optional[str] = None


class PredictionMetrics(BaseModel):
    # Failed predictions may report empty metrics.
    predict_time: Optional[float] = None


class AgeDetectionResponse(BaseModel):
    status: str
    output: Optional[Union[str, int, float]] = None
    error: Optional[str] = None
    metrics: Optional[PredictionMetrics] = None


@dataclass(slots=True)
class AgeDetectionResult:
    """Outcome of a successful age prediction."""

    age: str
    predict_time: float
    image_url: str


@dataclass(slots=True)
class ScreenshotParams:
    """Query parameters accepted by the screenshot endpoint."""

    url: str = ""
    res_x: int = 1280
    res_y: int = 900
    out_format: ImageFormat = "jpg"
    wait_time: int = 1000
    is_full_page: bool = False
    dismiss_modals: bool = False

    def to_query(self) -> List[Tuple[str, str]]:
        """Return query pairs in the order the API documents them."""

        def _text(value: Any) -> str:
            if isinstance(value, bool):
                return "true" if value else "false"
            return str(value)

        return [
            ("resX", _text(self.res_x)),
            ("resY", _text(self.res_y)),
            ("outFormat", _text(self.out_format)),
            ("waitTime", _text(self.wait_time)),
            ("isFullPage", _text(self.is_full_page)),
            ("dismissModals", _text(self.dismiss_modals)),
            ("url", self.url),
        ]


@dataclass(slots=True)
class ScreenshotResult:
    """Raw image bytes returned by the screenshot endpoint."""

    content: bytes
    mime_type: str


FileLike = Union[bytes, str, Path, Any]


class MagicApiClient:
    """Thin wrapper over the upload, age-detection and screenshot endpoints.

    Every call is a single attempt; failures surface immediately as a
    MagicApiError subclass so the caller decides whether to try again.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AppConfig, session: Optional[requests.Session] = None) -> "MagicApiClient":
        return cls(
            base_url=config.api_url,
            api_key=config.api_key,
            session=session,
            timeout=config.request_timeout,
        )

    def has_api_key(self) -> bool:
        return bool((self.api_key or "").strip())

    # Upload -------------------------------------------------------------------
    def upload_image(
        self,
        file: FileLike,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> str:
        """Upload an image and return the remote reference for later calls."""
        content, name = self._read_upload(file, filename)
        mime = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        try:
            response = self.session.post(
                self._url(UPLOAD_PATH),
                headers=self._headers(accept="application/json"),
                files={"file1": (name, content, mime)},
                **self._request_kwargs(),
            )
        except requests.RequestException as exc:
            logger.warning("Upload request failed: %s", exc)
            raise UploadFailure(f"Upload failed: {exc}") from exc

        if not response.ok:
            logger.warning("Upload returned HTTP %s", response.status_code)
            raise UploadFailure(f"Upload failed: {response.status_code}", response.status_code)

        try:
            data = UploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UploadFailure("Upload failed: Invalid response", response.status_code) from exc

        if data.status != "OK" or not data.result:
            raise UploadFailure("Upload failed: Invalid response", response.status_code)
        return data.result

    # Age detection ------------------------------------------------------------
    def detect_age(self, image_url: str) -> AgeDetectionResult:
        """Submit a remote image reference to the age detector."""
        try:
            response = self.session.post(
                self._url(AGE_DETECTION_PATH),
                headers=self._headers(content_type="application/json"),
                json={"input": {"image": image_url}},
                **self._request_kwargs(),
            )
        except requests.RequestException as exc:
            logger.warning("Age detection request failed: %s", exc)
            raise InferenceFailure(f"Detection failed: {exc}") from exc

        if not response.ok:
            logger.warning("Age detection returned HTTP %s", response.status_code)
            raise InferenceFailure(f"Detection failed: {response.status_code}", response.status_code)

        try:
            data = AgeDetectionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise InferenceFailure("Detection failed: Invalid response", response.status_code) from exc

        if data.status != "succeeded" or data.error:
            raise InferenceFailure(data.error or "Detection failed", response.status_code)
        if data.output is None or data.metrics is None or data.metrics.predict_time is None:
            raise InferenceFailure("Detection failed: Invalid response", response.status_code)

        return AgeDetectionResult(
            age=str(data.output),
            predict_time=data.metrics.predict_time,
            image_url=image_url,
        )

    # Screenshot ---------------------------------------------------------------
    def capture_screenshot(self, params: ScreenshotParams) -> ScreenshotResult:
        """Capture a website screenshot and return the raw image bytes."""
        try:
            response = self.session.get(
                self._url(SCREENSHOT_PATH),
                headers=self._headers(accept=f"image/{params.out_format}"),
                params=params.to_query(),
                **self._request_kwargs(),
            )
        except requests.RequestException as exc:
            logger.warning("Screenshot request failed: %s", exc)
            raise CaptureFailure(f"API Error: {exc}") from exc

        if not response.ok:
            logger.warning("Screenshot returned HTTP %s", response.status_code)
            raise CaptureFailure(
                f"API Error: {response.status_code} {response.reason or ''}".rstrip(),
                response.status_code,
            )

        header = (response.headers.get("Content-Type") or "").split(";")[0].strip()
        mime = header if header.startswith("image/") else _FORMAT_MIME.get(params.out_format, "image/jpeg")
        return ScreenshotResult(content=response.content, mime_type=mime)

    # Internal helpers ---------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self, accept: Optional[str] = None, content_type: Optional[str] = None) -> Dict[str, str]:
        headers = {"x-magicapi-key": self.api_key}
        if accept:
            headers["accept"] = accept
        if content_type:
            headers["content-type"] = content_type
        return headers

    def _request_kwargs(self) -> Dict[str, Any]:
        if self.timeout is None:
            return {}
        return {"timeout": self.timeout}

    @staticmethod
    def _read_upload(file: FileLike, filename: Optional[str]) -> Tuple[bytes, str]:
        if isinstance(file, (bytes, bytearray)):
            return bytes(file), filename or "upload.bin"
        if isinstance(file, (str, Path)):
            path = Path(file)
            try:
                return path.read_bytes(), filename or path.name
            except OSError as exc:
                raise UploadFailure(f"Upload failed: {exc}") from exc
        if hasattr(file, "read"):
            name = filename or Path(str(getattr(file, "name", "upload.bin"))).name
            return file.read(), name
        raise UploadFailure(f"Upload failed: unsupported file type {type(file).__name__}")
