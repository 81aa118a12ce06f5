"""Vision package exports."""

from vision.detections import BoundingBox, DetectedObject, DetectionSource, FusionResult
from vision.distance import DistanceEstimator
from vision.fusion import DetectionFusionPolicy

__all__ = [
    "BoundingBox",
    "DetectedObject",
    "DetectionFusionPolicy",
    "DetectionSource",
    "DistanceEstimator",
    "FusionResult",
]
