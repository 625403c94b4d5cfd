from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from PIL import Image, ImageOps

LOGGER = logging.getLogger("prerender.encoder")


class FrameAssemblyError(RuntimeError):
    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(f"{message}: {stderr}" if stderr else message)
        self.stderr = stderr


class FrameEncoder:
    """Encode a numbered PNG sequence into an H.264 MP4 with ffmpeg."""

    def __init__(
        self,
        binary: str = "ffmpeg",
        input_frame_rate: int = 25,
        output_frame_rate: int = 30,
        pixel_format: str = "yuv420p",
    ) -> None:
        self._binary = binary
        self._input_frame_rate = input_frame_rate
        self._output_frame_rate = output_frame_rate
        self._pixel_format = pixel_format

    def build_command(self, executable: str, pattern: Path, output: Path) -> List[str]:
        return [
            executable,
            "-y",
            "-framerate",
            str(self._input_frame_rate),
            "-i",
            str(pattern),
            "-c:v",
            "libx264",
            "-r",
            str(self._output_frame_rate),
            "-pix_fmt",
            self._pixel_format,
            str(output),
        ]

    def assemble(self, pattern: Path, output: Path, frames: Optional[Iterable[Path]] = None) -> Path:
        executable = shutil.which(self._binary)
        if not executable:
            raise FrameAssemblyError(f"Encoder binary '{self._binary}' not found")
        if frames is not None:
            for frame in frames:
                pad_to_even(frame)
        cmd = self.build_command(executable, pattern, output)
        LOGGER.info("Encoding frames %s into %s", pattern, output)
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if proc.returncode != 0:
            error_output = proc.stderr.strip() or proc.stdout.strip() or f"exit code {proc.returncode}"
            raise FrameAssemblyError("Frame assembly failed", error_output)
        return output


def pad_to_even(path: Path) -> None:
    """Pad an image by one pixel where needed so both sides are even.

    yuv420p subsamples chroma 2x2, so libx264 rejects odd frame sizes.
    """
    with Image.open(path) as img:
        right = img.width % 2
        bottom = img.height % 2
        if right == 0 and bottom == 0:
            return
        if "A" in img.getbands():
            fill = (0, 0, 0, 0)
        else:
            fill = img.getpixel((img.width - 1, img.height - 1))
        padded = ImageOps.expand(img, border=(0, 0, right, bottom), fill=fill)
    padded.save(path)
