from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

CONFIG_ENV_VAR = "PRERENDER_CONFIG"
DEFAULT_BROWSER_ARGS = ["--disable-dev-shm-usage", "--no-sandbox"]


def _default_config() -> Dict[str, Any]:
    return {
        "timeout_ms": 10000,
        "width": 1000,
        "height": 1000,
        "captures_dir": "captures",
        "ffmpeg_binary": "ffmpeg",
        "input_frame_rate": 25,
        "output_frame_rate": 30,
        "pixel_format": "yuv420p",
        "keep_capture_frames": False,
        "max_animation_frames": 600,
        "browser_args": DEFAULT_BROWSER_ARGS.copy(),
    }


class RendererSettings(BaseModel):
    timeout_ms: int = Field(default=10000, ge=1)
    width: int = Field(default=1000, gt=0)
    height: int = Field(default=1000, gt=0)
    captures_dir: Path = Path("captures")
    ffmpeg_binary: str = "ffmpeg"
    input_frame_rate: int = Field(default=25, ge=1)
    output_frame_rate: int = Field(default=30, ge=1)
    pixel_format: str = "yuv420p"
    keep_capture_frames: bool = False
    max_animation_frames: int = Field(default=600, ge=1)
    browser_args: List[str] = Field(default_factory=lambda: DEFAULT_BROWSER_ARGS.copy())

    model_config = ConfigDict(frozen=True)


class ConfigStore:
    """JSON-file backed renderer configuration.

    Keys missing from the file are filled from defaults, so an older or partial
    config file keeps working. Relative ``captures_dir`` values resolve against
    the directory holding the config file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._state = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return _default_config()
        with self._path.open("r", encoding="utf-8") as handle:
            state = json.load(handle)
        if not isinstance(state, dict):
            raise ValueError(f"Config file {self._path} must contain a JSON object")
        for key, value in _default_config().items():
            state.setdefault(key, value)
        return state

    def get_config(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._state)

    def settings(self) -> RendererSettings:
        config = self.get_config()
        captures_dir = Path(config["captures_dir"])
        if not captures_dir.is_absolute():
            captures_dir = self._path.resolve().parent / captures_dir
        config["captures_dir"] = captures_dir
        return RendererSettings.model_validate(config)


_config_store: Optional[ConfigStore] = None


def get_config_store() -> ConfigStore:
    global _config_store
    if _config_store is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR) or Path.cwd() / "config.json")
        _config_store = ConfigStore(path)
    return _config_store


def get_settings() -> RendererSettings:
    return get_config_store().settings()
