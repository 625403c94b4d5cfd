from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List

import pytest
from PIL import Image

from prerender.services.encoder import FrameAssemblyError, FrameEncoder, pad_to_even


class _Completed:
    def __init__(self, returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _write_frames(directory: Path, count: int, size=(320, 240)) -> List[Path]:
    frames = []
    for index in range(count):
        path = directory / f"cap_{index:05d}.png"
        Image.new("RGB", size, (index * 10, 0, 0)).save(path)
        frames.append(path)
    return frames


@pytest.mark.unit
def test_assemble_runs_ffmpeg_with_fixed_encoding(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: List[Dict[str, Any]] = []

    def _fake_run(cmd, **kwargs):
        calls.append({"cmd": cmd, "kwargs": kwargs})
        return _Completed(0)

    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(subprocess, "run", _fake_run)

    frames = _write_frames(tmp_path, 2)
    output = FrameEncoder().assemble(tmp_path / "cap_%05d.png", tmp_path / "cap.mp4", frames)

    assert output == tmp_path / "cap.mp4"
    assert len(calls) == 1
    assert calls[0]["cmd"] == [
        "/usr/bin/ffmpeg",
        "-y",
        "-framerate",
        "25",
        "-i",
        str(tmp_path / "cap_%05d.png"),
        "-c:v",
        "libx264",
        "-r",
        "30",
        "-pix_fmt",
        "yuv420p",
        str(tmp_path / "cap.mp4"),
    ]
    assert calls[0]["kwargs"]["capture_output"] is True
    assert calls[0]["kwargs"]["check"] is False


@pytest.mark.unit
def test_assemble_failure_carries_encoder_output(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda cmd, **kwargs: _Completed(1, stderr="cap_%05d.png: No such file or directory\n"),
    )

    with pytest.raises(FrameAssemblyError) as excinfo:
        FrameEncoder().assemble(tmp_path / "cap_%05d.png", tmp_path / "cap.mp4")

    assert excinfo.value.stderr == "cap_%05d.png: No such file or directory"
    assert "No such file" in str(excinfo.value)


@pytest.mark.unit
def test_assemble_without_binary_fails(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(shutil, "which", lambda name: None)

    with pytest.raises(FrameAssemblyError, match="not found"):
        FrameEncoder(binary="missing-ffmpeg").assemble(tmp_path / "cap_%05d.png", tmp_path / "cap.mp4")


@pytest.mark.unit
def test_custom_frame_rates_and_pixel_format() -> None:
    encoder = FrameEncoder(input_frame_rate=12, output_frame_rate=24, pixel_format="yuv444p")
    cmd = encoder.build_command("ffmpeg", Path("in_%05d.png"), Path("out.mp4"))
    assert cmd[cmd.index("-framerate") + 1] == "12"
    assert cmd[cmd.index("-r") + 1] == "24"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv444p"


@pytest.mark.unit
def test_pad_to_even_grows_odd_frames(tmp_path: Path) -> None:
    odd = _write_frames(tmp_path, 1, size=(321, 239))[0]
    even = tmp_path / "even.png"
    Image.new("RGBA", (320, 240)).save(even)

    pad_to_even(odd)
    pad_to_even(even)

    with Image.open(odd) as img:
        assert img.size == (322, 240)
    with Image.open(even) as img:
        assert img.size == (320, 240)
