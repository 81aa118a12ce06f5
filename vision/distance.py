"""Heuristic distance estimation from box geometry and per-class size priors."""

from __future__ import annotations

from dataclasses import dataclass
import random
from typing import Any, Callable, Mapping

from vision.labels import lookup_key
from vision.size_priors import reference_size


NoiseFn = Callable[[], float]


@dataclass(frozen=True)
class DistanceCalibration:
    """Calibration constants for the pinhole-style width heuristic."""

    base_distance: float = 1.5
    scale_factor: float = 0.8
    min_distance: float = 0.5
    max_distance: float = 10.0
    min_object_size: float = 0.001
    jitter: float = 0.1

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "DistanceCalibration":
        distance_cfg = config.get("distance") or {}
        return cls(
            base_distance=float(distance_cfg.get("base_distance", 1.5)),
            scale_factor=float(distance_cfg.get("scale_factor", 0.8)),
            min_distance=float(distance_cfg.get("min_distance", 0.5)),
            max_distance=float(distance_cfg.get("max_distance", 10.0)),
            min_object_size=float(distance_cfg.get("min_object_size", 0.001)),
            jitter=float(distance_cfg.get("jitter", 0.1)),
        )


class DistanceEstimator:
    """Maps (class, normalized box size) to an estimated distance in meters.

    The estimate is ``reference / (width * scale_factor) * base_distance``,
    perturbed by ``noise()`` and clamped to the calibrated range. Tiny boxes are
    treated as background and reported at ``max_distance``.
    """

    def __init__(
        self,
        calibration: DistanceCalibration | None = None,
        *,
        noise: NoiseFn | None = None,
    ) -> None:
        self.calibration = calibration or DistanceCalibration()
        if noise is None:
            jitter = self.calibration.jitter
            noise = lambda: random.uniform(-jitter, jitter)  # noqa: E731
        self._noise = noise

    def estimate(self, label: str, normalized_width: float, normalized_height: float) -> float:
        cal = self.calibration
        if normalized_width * normalized_height < cal.min_object_size or normalized_width <= 0:
            return cal.max_distance

        reference = reference_size(lookup_key(label))
        distance = (reference / (normalized_width * cal.scale_factor)) * cal.base_distance
        distance *= 1.0 + self._noise()
        return max(cal.min_distance, min(cal.max_distance, distance))
