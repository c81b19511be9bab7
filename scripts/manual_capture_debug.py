"""One-off script for debugging screenshot capture through the UI callbacks."""

from config.settings import load_config
from modules.utils.logging import setup_logging
from modules.ui.callbacks import build_callbacks


def main() -> None:
    # 1. 准备真实配置与回调
    config = load_config()
    setup_logging(config)
    callbacks = build_callbacks(config)

    # 2. 调用截图回调，执行真实请求
    image, status, gallery, _, _ = callbacks["on_capture_screenshot"](
        "https://example.com",
        1280,
        900,
        "png",
        1000,
        False,
        True,
    )

    print("状态:", status)
    print("历史记录条数:", len(gallery))
    if image is None:
        print("未返回图像，请检查状态信息。")
        return

    # 3. 导出截图
    _, message = callbacks["on_download_screenshot"]()
    print(message)


if __name__ == "__main__":
    main()
