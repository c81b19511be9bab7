"""Gradio layout composition for the MagicAPI toolkit."""

from __future__ import annotations

from typing import Any

try:
    import gradio as gr
except ImportError:  # pragma: no cover
    gr = None  # type: ignore

from config.settings import AppConfig
from modules.clients.magicapi import IMAGE_FORMATS, MagicApiClient
from modules.services.storage_service import JsonFileStorage
from modules.ui.callbacks import build_callbacks


def build_app(config: AppConfig) -> Any:
    """Compose and return the Gradio application."""
    if gr is None:
        raise RuntimeError("Gradio 未安装，请先执行依赖安装。")

    storage = JsonFileStorage(config.storage_path, quota_bytes=config.storage_quota_bytes)
    client = MagicApiClient.from_config(config)
    callbacks_map = build_callbacks(config, client=client, storage=storage)

    defaults = config.metadata.get("screenshot_defaults") or {}
    default_format = defaults.get("out_format", "jpg")
    if default_format not in IMAGE_FORMATS:
        default_format = "jpg"

    with gr.Blocks(title="MagicAPI Toolkit") as demo:
        gr.Markdown("## MagicAPI 开发者工具箱")

        with gr.Row():
            api_key = gr.Textbox(
                label="API Key",
                type="password",
                placeholder="请输入 MagicAPI key",
                scale=4,
            )
            save_key_btn = gr.Button("保存 Key", scale=1)
        key_status = gr.Markdown("")

        # 首页
        with gr.Tab("工具箱"):
            search = gr.Textbox(label="搜索工具", placeholder="例如：screenshot")
            feature_list = gr.Markdown(callbacks_map["on_search_features"](""))

        # 年龄检测
        with gr.Tab("年龄检测"):
            with gr.Row():
                with gr.Column():
                    age_image = gr.Image(label="人脸图像", type="filepath")
                    with gr.Row():
                        detect_btn = gr.Button("检测年龄", variant="primary")
                        age_reset_btn = gr.Button("重置")
                    age_status = gr.Markdown("准备就绪。")
                    age_result = gr.Markdown("")
                    gr.Markdown("上传清晰的人脸照片可获得更准确的结果。")
                with gr.Column():
                    age_gallery = gr.Gallery(label="历史记录（最新在前）", columns=3, height=320)
                    with gr.Row():
                        age_index = gr.Number(label="记录序号", precision=0, value=0)
                        age_expand_btn = gr.Button("展开/收起")
                        age_delete_btn = gr.Button("删除", variant="stop")
                        age_download_btn = gr.Button("下载")
                    age_detail = gr.Markdown("")
                    age_detail_image = gr.Image(label="记录详情", type="pil", interactive=False)
                    age_file = gr.File(label="下载文件", interactive=False)

            age_outputs = [age_result, age_status, age_gallery, age_detail, age_detail_image]
            age_image.change(
                fn=callbacks_map["on_select_age_image"],
                inputs=[age_image],
                outputs=age_outputs,
            )
            detect_btn.click(fn=callbacks_map["on_detect_age"], inputs=[], outputs=age_outputs)
            age_reset_btn.click(
                fn=callbacks_map["on_reset_age"],
                inputs=[],
                outputs=[age_image, *age_outputs],
            )
            age_expand_btn.click(
                fn=callbacks_map["on_age_history_expand"], inputs=[age_index], outputs=age_outputs
            )
            age_delete_btn.click(
                fn=callbacks_map["on_age_history_delete"], inputs=[age_index], outputs=age_outputs
            )
            age_download_btn.click(
                fn=callbacks_map["on_age_history_download"],
                inputs=[age_index],
                outputs=[age_file, age_status],
            )

        # 网页截图
        with gr.Tab("网页截图"):
            with gr.Row():
                with gr.Column():
                    url = gr.Textbox(label="网址", placeholder="https://example.com")
                    with gr.Accordion("高级设置", open=False):
                        res_x = gr.Number(label="分辨率宽度", precision=0, value=defaults.get("res_x", 1280))
                        res_y = gr.Number(label="分辨率高度", precision=0, value=defaults.get("res_y", 900))
                        out_format = gr.Dropdown(label="格式", choices=list(IMAGE_FORMATS), value=default_format)
                        wait_time = gr.Number(
                            label="等待时间（毫秒）", precision=0, value=defaults.get("wait_time", 1000)
                        )
                        full_page = gr.Checkbox(label="截取整页", value=False)
                        dismiss_modals = gr.Checkbox(label="关闭弹窗", value=False)
                    with gr.Row():
                        capture_btn = gr.Button("截图", variant="primary")
                        shot_reset_btn = gr.Button("重置")
                        shot_download_btn = gr.Button("下载截图")
                    shot_status = gr.Markdown("准备就绪。")
                    shot_image = gr.Image(label="截图预览", type="pil", interactive=False)
                    shot_file = gr.File(label="下载文件", interactive=False)
                with gr.Column():
                    shot_gallery = gr.Gallery(label="历史记录（最新在前）", columns=2, height=320)
                    with gr.Row():
                        shot_index = gr.Number(label="记录序号", precision=0, value=0)
                        shot_expand_btn = gr.Button("展开/收起")
                        shot_delete_btn = gr.Button("删除", variant="stop")
                        shot_history_download_btn = gr.Button("下载")
                    shot_detail = gr.Markdown("")
                    shot_detail_image = gr.Image(label="记录详情", type="pil", interactive=False)

            shot_outputs = [shot_image, shot_status, shot_gallery, shot_detail, shot_detail_image]
            capture_btn.click(
                fn=callbacks_map["on_capture_screenshot"],
                inputs=[url, res_x, res_y, out_format, wait_time, full_page, dismiss_modals],
                outputs=shot_outputs,
            )
            shot_reset_btn.click(fn=callbacks_map["on_reset_screenshot"], inputs=[], outputs=shot_outputs)
            shot_download_btn.click(
                fn=callbacks_map["on_download_screenshot"],
                inputs=[],
                outputs=[shot_file, shot_status],
            )
            shot_expand_btn.click(
                fn=callbacks_map["on_screenshot_history_expand"], inputs=[shot_index], outputs=shot_outputs
            )
            shot_delete_btn.click(
                fn=callbacks_map["on_screenshot_history_delete"], inputs=[shot_index], outputs=shot_outputs
            )
            shot_history_download_btn.click(
                fn=callbacks_map["on_screenshot_history_download"],
                inputs=[shot_index],
                outputs=[shot_file, shot_status],
            )

        search.change(fn=callbacks_map["on_search_features"], inputs=[search], outputs=[feature_list])
        api_key.change(fn=callbacks_map["on_change_api_key"], inputs=[api_key], outputs=[])
        save_key_btn.click(fn=callbacks_map["on_save_api_key"], inputs=[api_key], outputs=[key_status])

        demo.load(fn=callbacks_map["on_load_api_key"], inputs=[], outputs=[api_key])
        demo.load(fn=callbacks_map["on_show_age_history"], inputs=[], outputs=age_outputs)
        demo.load(fn=callbacks_map["on_show_screenshot_history"], inputs=[], outputs=shot_outputs)

    return demo
