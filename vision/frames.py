"""Frames and the frame-source collaborators that supply them."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
import importlib
import importlib.util
import io
from pathlib import Path
import time
from typing import Any, Protocol

from PIL import Image

from core.logging import logger


IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".bmp", ".webp")


@dataclass(frozen=True)
class Frame:
    """A single captured image plus capture metadata."""

    image: Image.Image
    frame_id: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @classmethod
    def from_array(cls, array: Any, *, frame_id: int = 0) -> "Frame":
        """Wrap an RGB numpy array (as produced by Picamera2)."""

        return cls(image=Image.fromarray(array).convert("RGB"), frame_id=frame_id)

    def to_jpeg(self, *, max_dimension: int = 640, quality: int = 70) -> bytes:
        """Encode as JPEG, downscaling so neither side exceeds ``max_dimension``."""

        image = self.image.convert("RGB")
        if max(image.width, image.height) > max_dimension:
            image = image.copy()
            image.thumbnail((max_dimension, max_dimension))
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=int(quality))
        return buffer.getvalue()

    def to_base64_jpeg(self, *, max_dimension: int = 640, quality: int = 70) -> str:
        jpeg = self.to_jpeg(max_dimension=max_dimension, quality=quality)
        return base64.b64encode(jpeg).decode("ascii")


class FrameSource(Protocol):
    """Supplies frames; camera lifecycle stays with the implementation."""

    def read_frame(self) -> Frame | None:
        """Return the next frame, or ``None`` when none is available."""

    def close(self) -> None:
        """Release capture resources."""


class ImageFileSource:
    """Replays still images from a file or a directory, optionally looping."""

    def __init__(self, path: Path, *, loop: bool = True) -> None:
        path = Path(path)
        if path.is_dir():
            files = sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        else:
            files = [path]
        if not files:
            raise FileNotFoundError(f"No images found at {path}")
        self._files = files
        self._loop = loop
        self._index = 0
        self._frame_id = 0

    def read_frame(self) -> Frame | None:
        if self._index >= len(self._files):
            if not self._loop:
                return None
            self._index = 0
        file_path = self._files[self._index]
        self._index += 1
        self._frame_id += 1
        with Image.open(file_path) as image:
            rgb = image.convert("RGB")
        logger.debug("[FRAMES] Loaded %s", file_path.name)
        return Frame(image=rgb, frame_id=self._frame_id)

    def close(self) -> None:
        return None


def _require_picamera2() -> Any:
    if importlib.util.find_spec("picamera2") is None:
        raise RuntimeError("picamera2 is required for Picamera2Source")
    return importlib.import_module("picamera2").Picamera2


class Picamera2Source:
    """Frame source backed by a Raspberry Pi camera."""

    def __init__(self, *, size: tuple[int, int] = (640, 480)) -> None:
        Picamera2 = _require_picamera2()
        self.picam2 = Picamera2()
        configuration = self.picam2.create_preview_configuration(
            main={"size": size, "format": "RGB888"},
            buffer_count=2,
        )
        self.picam2.configure(configuration)
        self.picam2.start()
        self._frame_id = 0
        logger.info("[FRAMES] Picamera2 started at %sx%s", size[0], size[1])

    def read_frame(self) -> Frame | None:
        array = self.picam2.capture_array("main")
        if array is None:
            return None
        self._frame_id += 1
        return Frame.from_array(array, frame_id=self._frame_id)

    def close(self) -> None:
        try:
            self.picam2.stop()
        finally:
            self.picam2.close()
