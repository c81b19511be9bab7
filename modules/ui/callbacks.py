"""Callback implementations for the Gradio interface."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from PIL import Image

from config.settings import AppConfig
from modules.clients.magicapi import IMAGE_FORMATS, MagicApiClient, ScreenshotParams
from modules.pipelines.age_detection import AgeDetectionPipeline, AgeDetectionSnapshot, describe_age
from modules.pipelines.screenshot import ScreenshotPipeline, ScreenshotSnapshot
from modules.pipelines.state import AgeDetectionState, ScreenshotState
from modules.services.api_key_service import ApiKeyStore
from modules.services.history_service import HistoryStore
from modules.services.storage_service import JsonFileStorage, KeyValueStorage
from modules.services.validators import AgeDetectionHistoryItem, HistoryRecord, ScreenshotItem
from modules.utils.image_utils import CodecFailure, data_url_to_image, generate_thumbnail


@dataclass(slots=True)
class FeatureCard:
    """Entry on the toolkit home tab."""

    id: str
    title: str
    description: str
    tab: str


FEATURES: Tuple[FeatureCard, ...] = (
    FeatureCard(
        id="screenshot",
        title="Screenshot Capture",
        description="Capture high-quality screenshots of any website with customizable settings",
        tab="网页截图",
    ),
    FeatureCard(
        id="age-detection",
        title="AI Age Detection",
        description="Estimate the age of a person from a clear face photo",
        tab="年龄检测",
    ),
)


def filter_features(term: str, features: Sequence[FeatureCard] = FEATURES) -> List[FeatureCard]:
    """Case-insensitive match on title and description."""
    normalized = (term or "").lower().strip()
    if not normalized:
        return list(features)
    return [
        feature
        for feature in features
        if normalized in feature.title.lower() or normalized in feature.description.lower()
    ]


GalleryItem = Tuple[Image.Image, str]


def build_callbacks(
    config: AppConfig,
    client: Optional[MagicApiClient] = None,
    storage: Optional[KeyValueStorage] = None,
    age_pipeline: Optional[AgeDetectionPipeline] = None,
    screenshot_pipeline: Optional[ScreenshotPipeline] = None,
) -> dict[str, Any]:
    """Return a dictionary of Gradio callback functions."""

    storage = storage or JsonFileStorage(config.storage_path, quota_bytes=config.storage_quota_bytes)
    store = HistoryStore(storage)
    key_store = ApiKeyStore(storage)

    client = client or MagicApiClient.from_config(config)
    if not client.has_api_key():
        client.api_key = key_store.load() or ""

    if age_pipeline is None:
        age_pipeline = AgeDetectionPipeline(client, store)
    if screenshot_pipeline is None:
        defaults = dict(config.metadata.get("screenshot_defaults") or {})
        if defaults.get("out_format") not in IMAGE_FORMATS:
            defaults.pop("out_format", None)
        screenshot_pipeline = ScreenshotPipeline(client, store, params=ScreenshotParams(**defaults))

    download_dir = Path(config.download_dir)

    def _normalize_index(value: Any) -> Optional[int]:
        if value in ("", None):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    def _to_image(data_url: Optional[str]) -> Optional[Image.Image]:
        if not data_url:
            return None
        try:
            return data_url_to_image(data_url)
        except CodecFailure:
            return None

    def _gallery(records: Sequence[HistoryRecord], caption_for) -> List[GalleryItem]:
        items: List[GalleryItem] = []
        for index, record in enumerate(records):
            image = _to_image(record.image_data)
            if image is None:
                image = Image.new("RGB", (64, 64), color=(64, 64, 64))
            items.append((generate_thumbnail(image), f"#{index} {caption_for(record)}"))
        return items

    # API key ------------------------------------------------------------------
    def on_load_api_key() -> str:
        return key_store.load() or client.api_key or ""

    def on_change_api_key(api_key: str) -> None:
        client.api_key = (api_key or "").strip()

    def on_save_api_key(api_key: str) -> str:
        on_change_api_key(api_key)
        if not (api_key or "").strip():
            return "API Key 为空，未保存。"
        if key_store.save(api_key):
            return "API Key 已保存。"
        return "API Key 保存失败。"

    # Home ---------------------------------------------------------------------
    def on_search_features(term: str) -> str:
        matches = filter_features(term)
        if not matches:
            return "未找到匹配的工具。"
        return "\n".join(
            f"- **{feature.title}**（{feature.tab}）：{feature.description}" for feature in matches
        )

    # Age detection ------------------------------------------------------------
    def _age_caption(record: AgeDetectionHistoryItem) -> str:
        return f"{record.age} 岁 · {record.created_at}"

    def _age_result_markdown(snapshot: AgeDetectionSnapshot) -> str:
        if snapshot.state != AgeDetectionState.SUCCESS or snapshot.result is None:
            return ""
        label = describe_age(snapshot.result.age)
        lines = [
            "### 检测结果",
            f"- 预估年龄：**{snapshot.result.age}**" + (f"（{label}）" if label else ""),
            f"- 处理耗时：{snapshot.result.predict_time:.2f}s",
        ]
        return "\n".join(lines)

    def _age_status(snapshot: AgeDetectionSnapshot) -> str:
        if snapshot.error:
            return f"检测失败：{snapshot.error}"
        if snapshot.state == AgeDetectionState.SUCCESS:
            return "检测成功"
        if snapshot.state == AgeDetectionState.UPLOADING:
            return "正在上传…"
        if snapshot.state == AgeDetectionState.PROCESSING:
            return "正在分析…"
        if snapshot.preview:
            return "图像已就绪，点击检测年龄。"
        return "准备就绪。"

    def _age_detail(snapshot: AgeDetectionSnapshot) -> tuple[str, Optional[Image.Image]]:
        record = snapshot.expanded_record
        if record is None:
            return "", None
        label = describe_age(record.age)
        text = "\n".join(
            [
                f"**#{snapshot.expanded_index}** · {record.created_at}",
                f"- 预估年龄：{record.age}" + (f"（{label}）" if label else ""),
                f"- 处理耗时：{record.predict_time:.2f}s",
            ]
        )
        return text, _to_image(record.image_data)

    def _age_view(snapshot: AgeDetectionSnapshot, status: Optional[str] = None):
        detail_text, detail_image = _age_detail(snapshot)
        return (
            _age_result_markdown(snapshot),
            status or _age_status(snapshot),
            _gallery(snapshot.history, _age_caption),
            detail_text,
            detail_image,
        )

    def on_select_age_image(image_path: Optional[str]):
        return _age_view(age_pipeline.select_file(image_path))

    def on_detect_age():
        return _age_view(age_pipeline.run())

    def on_reset_age():
        return (None, *_age_view(age_pipeline.reset()))

    def on_show_age_history():
        age_pipeline.refresh_history()
        return _age_view(age_pipeline.snapshot())

    def on_age_history_expand(index: Any):
        position = _normalize_index(index)
        try:
            age_pipeline.expand(position if position is not None else -1)
        except IndexError:
            return _age_view(age_pipeline.snapshot(), status="无效的历史记录序号。")
        return _age_view(age_pipeline.snapshot())

    def on_age_history_delete(index: Any):
        position = _normalize_index(index)
        try:
            age_pipeline.delete(position if position is not None else -1)
        except IndexError:
            return _age_view(age_pipeline.snapshot(), status="无效的历史记录序号。")
        return _age_view(age_pipeline.snapshot(), status="已删除历史记录。")

    def on_age_history_download(index: Any) -> tuple[Optional[str], str]:
        position = _normalize_index(index)
        try:
            path = age_pipeline.download(position if position is not None else -1, download_dir)
        except IndexError:
            return None, "无效的历史记录序号。"
        except (CodecFailure, OSError) as exc:
            return None, f"下载失败：{exc}"
        return str(path), f"已导出：{path}"

    # Screenshot ---------------------------------------------------------------
    def _screenshot_caption(record: ScreenshotItem) -> str:
        return f"{record.input} · {record.created_at}"

    def _screenshot_status(snapshot: ScreenshotSnapshot) -> str:
        if snapshot.error:
            return f"截图失败：{snapshot.error}"
        if snapshot.state == ScreenshotState.SUCCESS:
            return "截图成功"
        if snapshot.state == ScreenshotState.LOADING:
            return "正在截图…"
        return "准备就绪。"

    def _screenshot_detail(snapshot: ScreenshotSnapshot) -> tuple[str, Optional[Image.Image]]:
        record = snapshot.expanded_record
        if record is None:
            return "", None
        text = f"**#{snapshot.expanded_index}** · {record.created_at}\n- 网址：{record.input}"
        return text, _to_image(record.image_data)

    def _screenshot_view(snapshot: ScreenshotSnapshot, status: Optional[str] = None):
        detail_text, detail_image = _screenshot_detail(snapshot)
        return (
            _to_image(snapshot.image_data),
            status or _screenshot_status(snapshot),
            _gallery(snapshot.history, _screenshot_caption),
            detail_text,
            detail_image,
        )

    def on_capture_screenshot(
        url: str,
        res_x: Any,
        res_y: Any,
        out_format: str,
        wait_time: Any,
        is_full_page: bool,
        dismiss_modals: bool,
    ):
        params = screenshot_pipeline.params
        screenshot_pipeline.set_url(url)
        screenshot_pipeline.update_params(
            res_x=_normalize_index(res_x) or params.res_x,
            res_y=_normalize_index(res_y) or params.res_y,
            out_format=out_format or params.out_format,
            wait_time=max(0, _normalize_index(wait_time) or 0),
            is_full_page=bool(is_full_page),
            dismiss_modals=bool(dismiss_modals),
        )
        if screenshot_pipeline.state != ScreenshotState.IDLE:
            return _screenshot_view(screenshot_pipeline.snapshot(), status="请先重置后再截图。")
        return _screenshot_view(screenshot_pipeline.capture())

    def on_download_screenshot() -> tuple[Optional[str], str]:
        try:
            path = screenshot_pipeline.download(download_dir)
        except OSError as exc:
            return None, f"下载失败：{exc}"
        if path is None:
            return None, "暂无可下载的截图。"
        return str(path), f"已导出：{path}"

    def on_reset_screenshot():
        return _screenshot_view(screenshot_pipeline.reset())

    def on_show_screenshot_history():
        screenshot_pipeline.refresh_history()
        return _screenshot_view(screenshot_pipeline.snapshot())

    def on_screenshot_history_expand(index: Any):
        position = _normalize_index(index)
        try:
            screenshot_pipeline.expand(position if position is not None else -1)
        except IndexError:
            return _screenshot_view(screenshot_pipeline.snapshot(), status="无效的历史记录序号。")
        return _screenshot_view(screenshot_pipeline.snapshot())

    def on_screenshot_history_delete(index: Any):
        position = _normalize_index(index)
        try:
            screenshot_pipeline.delete(position if position is not None else -1)
        except IndexError:
            return _screenshot_view(screenshot_pipeline.snapshot(), status="无效的历史记录序号。")
        return _screenshot_view(screenshot_pipeline.snapshot(), status="已删除历史记录。")

    def on_screenshot_history_download(index: Any) -> tuple[Optional[str], str]:
        position = _normalize_index(index)
        try:
            path = screenshot_pipeline.download_history(
                position if position is not None else -1, download_dir
            )
        except IndexError:
            return None, "无效的历史记录序号。"
        except (CodecFailure, OSError) as exc:
            return None, f"下载失败：{exc}"
        return str(path), f"已导出：{path}"

    return {
        "on_load_api_key": on_load_api_key,
        "on_change_api_key": on_change_api_key,
        "on_save_api_key": on_save_api_key,
        "on_search_features": on_search_features,
        "on_select_age_image": on_select_age_image,
        "on_detect_age": on_detect_age,
        "on_reset_age": on_reset_age,
        "on_show_age_history": on_show_age_history,
        "on_age_history_expand": on_age_history_expand,
        "on_age_history_delete": on_age_history_delete,
        "on_age_history_download": on_age_history_download,
        "on_capture_screenshot": on_capture_screenshot,
        "on_download_screenshot": on_download_screenshot,
        "on_reset_screenshot": on_reset_screenshot,
        "on_show_screenshot_history": on_show_screenshot_history,
        "on_screenshot_history_expand": on_screenshot_history_expand,
        "on_screenshot_history_delete": on_screenshot_history_delete,
        "on_screenshot_history_download": on_screenshot_history_download,
    }
