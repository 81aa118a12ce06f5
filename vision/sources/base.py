"""Common contract for detection source adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

from core.errors import SourceError, SourceErrorKind
from vision.detections import BoundingBox, DetectedObject, DetectionSource
from vision.device import DetectionFilter
from vision.distance import DistanceEstimator
from vision.frames import Frame


@dataclass(frozen=True)
class RawDetection:
    """A detection as parsed from a source, before distance and filtering."""

    label: str
    confidence: float
    bbox: BoundingBox
    distance: float | None = None


class DetectionAdapter(ABC):
    """Turns a frame into normalized, filtered detections for one source.

    Implementations raise ``SourceError`` or ``ConfigurationError`` and never
    let library exceptions escape ``detect``.
    """

    source: DetectionSource

    def __init__(
        self,
        estimator: DistanceEstimator,
        detection_filter: DetectionFilter,
        *,
        mobile_filter: DetectionFilter | None = None,
    ) -> None:
        self._estimator = estimator
        self._filter = detection_filter
        self._mobile_filter = mobile_filter or detection_filter.for_mobile()

    @property
    def is_configured(self) -> bool:
        return True

    def filter_for(self, is_mobile: bool) -> DetectionFilter:
        return self._mobile_filter if is_mobile else self._filter

    @abstractmethod
    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        """Return detections for ``frame``."""

    def _finalize(
        self,
        raw: Iterable[RawDetection],
        *,
        is_mobile: bool,
        metadata: dict[str, Any] | None = None,
    ) -> list[DetectedObject]:
        """Attach distances, apply the shared filter and number the results."""

        detection_filter = self.filter_for(is_mobile)
        detections: list[DetectedObject] = []
        for item in raw:
            bbox = item.bbox
            if not bbox.is_valid():
                bbox = bbox.clamped()
            distance = item.distance
            if distance is None:
                distance = self._estimator.estimate(item.label, bbox.width, bbox.height)
            detections.append(
                DetectedObject(
                    id=len(detections) + 1,
                    label=item.label,
                    confidence=float(item.confidence),
                    bbox=bbox,
                    distance=distance,
                    metadata={"source": self.source.value, **(metadata or {})},
                )
            )
        kept = detection_filter.apply(detections)
        return [detection.with_id(index) for index, detection in enumerate(kept, start=1)]

    def _parse_error(self, message: str) -> SourceError:
        return SourceError(message, source=self.source.value, kind=SourceErrorKind.PARSE)
