from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from prerender.services import config as config_module
from prerender.services.config import ConfigStore, RendererSettings


@pytest.mark.unit
def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    store = ConfigStore(tmp_path / "config.json")
    settings = store.settings()

    assert settings.timeout_ms == 10000
    assert (settings.width, settings.height) == (1000, 1000)
    assert settings.captures_dir == tmp_path.resolve() / "captures"
    assert settings.keep_capture_frames is False
    assert "--no-sandbox" in settings.browser_args


@pytest.mark.unit
def test_partial_file_is_filled_from_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout_ms": 2500, "captures_dir": "/var/tmp/frames"}), encoding="utf-8")

    store = ConfigStore(path)
    config = store.get_config()
    settings = store.settings()

    assert config["ffmpeg_binary"] == "ffmpeg"
    assert settings.timeout_ms == 2500
    assert settings.captures_dir == Path("/var/tmp/frames")
    assert settings.output_frame_rate == 30


@pytest.mark.unit
def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"timeout_ms": 0}), encoding="utf-8")

    with pytest.raises(ValidationError):
        ConfigStore(path).settings()


@pytest.mark.unit
def test_non_object_config_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError):
        ConfigStore(path)


@pytest.mark.unit
def test_config_path_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "render.json"
    path.write_text(json.dumps({"width": 640}), encoding="utf-8")
    monkeypatch.setenv(config_module.CONFIG_ENV_VAR, str(path))
    monkeypatch.setattr(config_module, "_config_store", None)

    assert config_module.get_settings().width == 640
    assert config_module.get_config_store().path == path


@pytest.mark.unit
def test_settings_are_immutable() -> None:
    settings = RendererSettings()
    with pytest.raises(ValidationError):
        settings.width = 10  # type: ignore[misc]
