"""Device-class detection and per-class detection settings."""

from __future__ import annotations

from dataclasses import dataclass
import os
import platform
from typing import Any, Iterable, Mapping

from core.logging import logger
from vision.detections import DetectedObject


_MOBILE_MACHINES = ("arm", "aarch64")


@dataclass(frozen=True)
class DeviceInfo:
    """Host characteristics that drive timer periods and detection settings."""

    is_mobile: bool = False
    cpu_cores: int = 2
    is_high_end_device: bool = False
    needs_cloud_processing: bool = False
    memory_gb: float | None = None

    @classmethod
    def detect(cls, overrides: Mapping[str, Any] | None = None) -> "DeviceInfo":
        """Probe the host, then apply config ``device`` overrides."""

        overrides = dict(overrides or {})
        cpu_cores = int(overrides.get("cpu_cores") or os.cpu_count() or 2)
        memory_gb = overrides.get("memory_gb")
        if memory_gb is None:
            memory_gb = _probe_memory_gb()
        machine = platform.machine().lower()
        is_mobile = bool(
            overrides.get("is_mobile", any(marker in machine for marker in _MOBILE_MACHINES))
        )
        is_high_end = bool(
            overrides.get(
                "is_high_end_device",
                cpu_cores >= 8 and (memory_gb is None or float(memory_gb) >= 4.0),
            )
        )
        needs_cloud = bool(
            overrides.get(
                "needs_cloud_processing",
                is_mobile and (cpu_cores <= 4 or (memory_gb is not None and float(memory_gb) < 2.0)),
            )
        )
        info = cls(
            is_mobile=is_mobile,
            cpu_cores=cpu_cores,
            is_high_end_device=is_high_end,
            needs_cloud_processing=needs_cloud,
            memory_gb=float(memory_gb) if memory_gb is not None else None,
        )
        logger.debug("[DEVICE] %s", info)
        return info

    def can_use_local_processing(self) -> bool:
        if self.is_mobile:
            return self.is_high_end_device and self.cpu_cores >= 6
        return self.cpu_cores >= 4

    def default_provider(self) -> str:
        if self.needs_cloud_processing or not self.can_use_local_processing():
            return "cloud"
        return "local"


def _probe_memory_gb() -> float | None:
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return None
    if pages <= 0 or page_size <= 0:
        return None
    return round(pages * page_size / (1024**3), 1)


@dataclass(frozen=True)
class DetectionFilter:
    """Shared post-detection filter applied by every source and by fusion."""

    confidence_threshold: float = 0.35
    max_detections: int = 15
    max_distance_threshold: float = 5.0
    min_object_size: float = 0.001

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], device: DeviceInfo | None = None
    ) -> "DetectionFilter":
        detection_cfg = config.get("detection") or {}
        base = cls(
            confidence_threshold=float(detection_cfg.get("confidence_threshold", 0.35)),
            max_detections=int(detection_cfg.get("max_detections", 15)),
            max_distance_threshold=float(detection_cfg.get("max_distance_threshold", 5.0)),
            min_object_size=float(detection_cfg.get("min_object_size", 0.001)),
        )
        if device is not None and device.is_mobile:
            return base.for_mobile(device)
        return base

    def for_mobile(self, device: DeviceInfo | None = None) -> "DetectionFilter":
        """Looser thresholds and fewer results for constrained devices."""

        max_detections = 5
        if device is not None:
            if device.cpu_cores <= 2:
                max_detections = 3
            elif device.cpu_cores <= 4:
                max_detections = 4
            elif device.is_high_end_device:
                max_detections = 8
        return DetectionFilter(
            confidence_threshold=0.15,
            max_detections=max_detections,
            max_distance_threshold=self.max_distance_threshold,
            min_object_size=0.0001,
        )

    def accepts(self, detection: DetectedObject) -> bool:
        if not detection.bbox.is_valid():
            return False
        if detection.confidence < self.confidence_threshold:
            return False
        if detection.bbox.area < self.min_object_size:
            return False
        if detection.distance is not None and detection.distance > self.max_distance_threshold:
            return False
        return True

    def apply(self, detections: Iterable[DetectedObject]) -> list[DetectedObject]:
        kept = [detection for detection in detections if self.accepts(detection)]
        return kept[: self.max_detections]
