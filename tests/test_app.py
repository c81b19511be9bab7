"""Entry point tests."""

from __future__ import annotations

import app
from config.settings import AppConfig


class DummyApp:
    """Records queue/launch calls instead of starting a server."""

    def __init__(self) -> None:
        self.queued = False
        self.launch_kwargs: dict = {}

    def queue(self) -> "DummyApp":
        self.queued = True
        return self

    def launch(self, **kwargs) -> None:
        self.launch_kwargs = kwargs


def test_main_launches_with_cli_options(monkeypatch, tmp_path):
    dummy = DummyApp()
    seen: dict = {}

    def fake_load_config(path):
        seen["env_file"] = path
        return AppConfig(log_dir=tmp_path / "logs")

    def fake_build_app(config):
        seen["config"] = config
        return dummy

    monkeypatch.setattr(app, "load_config", fake_load_config)
    monkeypatch.setattr(app, "build_app", fake_build_app)

    app.main(["--env-file", "custom.env", "--port", "7861"])

    assert seen["env_file"] == "custom.env"
    assert dummy.queued is True
    assert dummy.launch_kwargs == {
        "server_name": None,
        "server_port": 7861,
        "share": False,
        "inbrowser": False,
    }
