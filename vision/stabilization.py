"""Frame-to-frame box smoothing and center-first ordering."""

from __future__ import annotations

from dataclasses import dataclass, replace
import math
from typing import Any, Mapping, Sequence

from vision.detections import DetectedObject


FRAME_CENTER = (0.5, 0.5)


@dataclass(frozen=True)
class StabilizationConfig:
    tolerance: float = 0.15
    current_weight: float = 0.6
    passthrough_limit: int = 3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StabilizationConfig":
        section = config.get("stabilization") or {}
        return cls(
            tolerance=float(section.get("tolerance", 0.15)),
            current_weight=float(section.get("current_weight", 0.6)),
            passthrough_limit=int(section.get("passthrough_limit", 3)),
        )


def _find_match(
    detection: DetectedObject,
    previous: Sequence[DetectedObject],
    tolerance: float,
) -> DetectedObject | None:
    cx, cy = detection.bbox.center
    for candidate in previous:
        if candidate.label != detection.label:
            continue
        px, py = candidate.bbox.center
        if abs(px - cx) < tolerance and abs(py - cy) < tolerance:
            return candidate
    return None


def stabilize(
    current: Sequence[DetectedObject],
    previous: Sequence[DetectedObject],
    *,
    tolerance: float = 0.15,
    current_weight: float = 0.6,
) -> list[DetectedObject]:
    """Blend each detection with the first same-label neighbour from the last frame.

    Matching is greedy in ``previous`` order and compares box centers on both
    axes. Matched boxes become ``current_weight * current + (1 - current_weight)
    * previous`` and keep the higher confidence. Unmatched detections pass
    through unchanged. Neither input is modified.
    """

    if not previous:
        return list(current)

    stabilized: list[DetectedObject] = []
    for detection in current:
        match = _find_match(detection, previous, tolerance)
        if match is None:
            stabilized.append(detection)
            continue
        stabilized.append(
            replace(
                detection,
                bbox=detection.bbox.blend(match.bbox, current_weight),
                confidence=max(detection.confidence, match.confidence),
            )
        )
    return stabilized


def center_offset(detection: DetectedObject) -> float:
    cx, cy = detection.bbox.center
    return math.hypot(cx - FRAME_CENTER[0], cy - FRAME_CENTER[1])


def prioritize(
    detections: Sequence[DetectedObject],
    *,
    passthrough_limit: int = 3,
) -> list[DetectedObject]:
    """Order detections nearest the frame center first once there are many.

    Up to ``passthrough_limit`` items are returned in input order. The sort is
    stable, so ties keep their original relative order.
    """

    if len(detections) <= passthrough_limit:
        return list(detections)
    return sorted(detections, key=center_offset)
