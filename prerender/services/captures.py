from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

FRAME_INDEX_WIDTH = 5


@dataclass
class AnimationCapture:
    """Frames written for one animation request, in capture order."""

    capture_id: str
    directory: Path
    frames: List[Path] = field(default_factory=list)

    def frame_path(self, index: int) -> Path:
        return self.directory / f"{self.capture_id}_{index:0{FRAME_INDEX_WIDTH}d}.png"

    @property
    def frame_pattern(self) -> Path:
        return self.directory / f"{self.capture_id}_%0{FRAME_INDEX_WIDTH}d.png"

    @property
    def video_path(self) -> Path:
        return self.directory / f"{self.capture_id}.mp4"

    def record(self, index: int) -> Path:
        if index != len(self.frames):
            raise ValueError(f"Frame {index} captured out of order (expected {len(self.frames)})")
        path = self.frame_path(index)
        self.frames.append(path)
        return path


class CaptureStore:
    """Manage on-disk locations for animation frames and videos."""

    def __init__(self, root: Optional[Path] = None) -> None:
        resolved_root = root or Path.cwd() / "captures"
        self._root = resolved_root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def new_capture(self) -> AnimationCapture:
        return AnimationCapture(capture_id=uuid.uuid4().hex, directory=self._root)

    def purge_frames(self, capture: AnimationCapture) -> None:
        """Remove every frame file belonging to a capture."""
        for path in self._root.glob(f"{capture.capture_id}_*.png"):
            path.unlink(missing_ok=True)

    def purge_video(self, capture: AnimationCapture) -> None:
        capture.video_path.unlink(missing_ok=True)
