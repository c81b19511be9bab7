"""Application entry point for the MagicAPI toolkit."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from config.settings import load_config
from modules.ui.layout import build_app
from modules.utils.logging import setup_logging


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MagicAPI 开发者工具箱")
    parser.add_argument("--env-file", default=None, help="Path to a .env file (default: ./.env)")
    parser.add_argument("--host", default=None, help="Address the Gradio server binds to")
    parser.add_argument("--port", type=int, default=None, help="Port the Gradio server listens on")
    parser.add_argument("--share", action="store_true", help="Create a public Gradio share link")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Load configuration and launch the Gradio interface."""
    args = parse_args(argv)
    config = load_config(args.env_file)
    logger = setup_logging(config)
    logger.info("Using MagicAPI endpoint %s, storage at %s", config.api_url, config.storage_path)
    app = build_app(config)
    app.queue()
    app.launch(
        server_name=args.host,
        server_port=args.port,
        share=args.share,
        inbrowser=False,
    )


if __name__ == "__main__":
    main()
