"""Utility helpers for turning image bytes into embeddable text and back."""

from __future__ import annotations

import base64
import binascii
import io
import mimetypes
import re
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME = "application/octet-stream"
_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^;,]+)*?)(?P<b64>;base64)?,(?P<data>.*)$", re.S)

BlobLike = Union[bytes, bytearray, str, Path, Any]


class CodecFailure(RuntimeError):
    """Raised when binary input cannot be read or decoded."""


def _sniff_mime(data: bytes) -> Optional[str]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())


def _read_blob(blob: BlobLike) -> Tuple[bytes, Optional[str]]:
    """Return raw bytes plus a mime hint derived from the source."""
    if isinstance(blob, (bytes, bytearray)):
        return bytes(blob), None
    if isinstance(blob, Image.Image):
        buffer = io.BytesIO()
        try:
            blob.save(buffer, format="PNG")
        except (OSError, ValueError) as exc:
            raise CodecFailure(f"无法编码图像：{exc}") from exc
        return buffer.getvalue(), "image/png"
    if isinstance(blob, (str, Path)):
        path = Path(blob)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise CodecFailure(f"无法读取文件：{exc}") from exc
        return data, mimetypes.guess_type(path.name)[0]
    if hasattr(blob, "read"):
        try:
            data = blob.read()
        except (OSError, ValueError) as exc:
            raise CodecFailure(f"无法读取数据流：{exc}") from exc
        if not isinstance(data, (bytes, bytearray)):
            raise CodecFailure("数据流未返回二进制内容")
        name = getattr(blob, "name", None)
        hint = mimetypes.guess_type(str(name))[0] if name else None
        return bytes(data), hint
    raise CodecFailure(f"不支持的输入类型：{type(blob).__name__}")


def blob_to_base64(blob: BlobLike, mime_type: Optional[str] = None) -> str:
    """Encode binary input as a ``data:<mime>;base64,...`` URL."""
    data, hint = _read_blob(blob)
    mime = mime_type or hint or _sniff_mime(data) or DEFAULT_MIME
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{payload}"


def data_url_to_bytes(data_url: str) -> Tuple[str, bytes]:
    """Split a data URL into its mime type and decoded bytes."""
    match = _DATA_URL_PATTERN.match(data_url or "")
    if match is None:
        raise CodecFailure("不是有效的 data URL")
    mime = match.group("mime") or "text/plain"
    data = match.group("data")
    if not match.group("b64"):
        return mime, data.encode("utf-8")
    try:
        return mime, base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecFailure(f"Base64 解码失败：{exc}") from exc


def data_url_to_image(data_url: str) -> Image.Image:
    """Decode a data URL into a PIL image for display."""
    _, data = data_url_to_bytes(data_url)
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise CodecFailure(f"无法解析图像：{exc}") from exc
    return image


def extension_for_mime(mime: str) -> str:
    if mime == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(mime) or ".bin"


def save_data_url(data_url: str, directory: Path, stem: str) -> Path:
    """Write the decoded data URL to ``directory/stem.<ext>`` and return the path."""
    mime, data = data_url_to_bytes(data_url)
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{stem}{extension_for_mime(mime)}"
    target.write_bytes(data)
    return target


def generate_thumbnail(image: Image.Image, max_size: Tuple[int, int] = (256, 256)) -> Image.Image:
    """Create a thumbnail suitable for history previews."""
    thumbnail = image.copy()
    thumbnail.thumbnail(max_size)
    return thumbnail
