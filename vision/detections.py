"""Detection schemas shared by sources, fusion, and navigation.

Bounding boxes are normalized to the source frame dimensions and represented as
``(x, y, width, height)`` with ``(x, y)`` the top-left corner and each value
expected in the inclusive range ``[0.0, 1.0]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Sequence

from vision.labels import normalize_label


_EDGE_EPSILON = 1e-6


class DetectionSource(str, Enum):
    """Provenance of one frame's detection set."""

    LOCAL = "local"
    CLOUD = "cloud"
    AZURE = "azure"
    DEEPSEEK = "deepseek"


@dataclass(frozen=True)
class BoundingBox:
    """Normalized box with a top-left origin."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_valid(self) -> bool:
        components = (self.x, self.y, self.width, self.height)
        if any(value < 0.0 or value > 1.0 for value in components):
            return False
        if self.x + self.width > 1.0 + _EDGE_EPSILON or self.y + self.height > 1.0 + _EDGE_EPSILON:
            return False
        return self.width > 0.0 and self.height > 0.0

    def clamped(self) -> "BoundingBox":
        """Return a copy clipped to the unit square."""

        x = min(max(self.x, 0.0), 1.0)
        y = min(max(self.y, 0.0), 1.0)
        width = min(max(self.width, 0.0), 1.0 - x)
        height = min(max(self.height, 0.0), 1.0 - y)
        return BoundingBox(x=x, y=y, width=width, height=height)

    def blend(self, other: "BoundingBox", weight: float) -> "BoundingBox":
        """Weighted average with ``weight`` applied to ``self``."""

        other_weight = 1.0 - weight
        return BoundingBox(
            x=self.x * weight + other.x * other_weight,
            y=self.y * weight + other.y * other_weight,
            width=self.width * weight + other.width * other_weight,
            height=self.height * weight + other.height * other_weight,
        )

    @classmethod
    def from_pixels(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        *,
        frame_width: float,
        frame_height: float,
    ) -> "BoundingBox":
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError("Frame dimensions must be positive")
        return cls(
            x=float(x) / frame_width,
            y=float(y) / frame_height,
            width=float(width) / frame_width,
            height=float(height) / frame_height,
        )


@dataclass(frozen=True)
class DetectedObject:
    """Single object detection in one frame."""

    id: int
    label: str
    confidence: float
    bbox: BoundingBox
    distance: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_label(self) -> str:
        return normalize_label(self.label)

    def with_id(self, new_id: int) -> "DetectedObject":
        return replace(self, id=new_id)


@dataclass(frozen=True)
class SourceAttempt:
    """Outcome of asking one source for detections during a cycle."""

    source: DetectionSource
    ok: bool
    count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class FusionResult:
    """Detections chosen for one frame plus how they were obtained."""

    detections: list[DetectedObject]
    source: DetectionSource
    attempts: tuple[SourceAttempt, ...] = ()
    fell_back: bool = False
    recommendation: str | None = None


def renumber(detections: Sequence[DetectedObject]) -> list[DetectedObject]:
    """Return detections with frame-local ids ``1..n`` in order."""

    return [detection.with_id(index) for index, detection in enumerate(detections, start=1)]
