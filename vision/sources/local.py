"""On-device detection through a lazily loaded, shared model."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import importlib
import importlib.util
from typing import Any, Callable, Protocol, Sequence

from core.errors import (
    ConfigurationError,
    ModelLoadError,
    ModelLoadTimeout,
    SourceError,
    SourceErrorKind,
)
from core.logging import logger
from vision.detections import BoundingBox, DetectedObject, DetectionSource
from vision.device import DetectionFilter
from vision.distance import DistanceEstimator
from vision.frames import Frame
from vision.sources.base import DetectionAdapter, RawDetection


@dataclass(frozen=True)
class RawPrediction:
    """Model output for one object, box in pixels ``(x, y, width, height)``."""

    label: str
    score: float
    box: tuple[float, float, float, float]


class DetectionModel(Protocol):
    def detect(self, image: Any, max_detections: int) -> Sequence[RawPrediction]:
        """Run inference on a PIL image."""


ModelLoader = Callable[[], DetectionModel]


class YoloModel:
    """Ultralytics YOLO wrapped to the ``DetectionModel`` contract."""

    def __init__(self, model: Any) -> None:
        self._model = model

    def detect(self, image: Any, max_detections: int) -> list[RawPrediction]:
        results = self._model.predict(image, max_det=int(max_detections), verbose=False)
        predictions: list[RawPrediction] = []
        for result in results:
            names = result.names
            boxes = result.boxes
            for xyxy, score, cls_id in zip(
                boxes.xyxy.tolist(), boxes.conf.tolist(), boxes.cls.tolist()
            ):
                x1, y1, x2, y2 = xyxy
                predictions.append(
                    RawPrediction(
                        label=str(names[int(cls_id)]),
                        score=float(score),
                        box=(x1, y1, x2 - x1, y2 - y1),
                    )
                )
        return predictions


def yolo_loader(model_path: str = "yolov8n.pt") -> ModelLoader:
    """Return a loader that imports ultralytics only when first called."""

    def _load() -> DetectionModel:
        if importlib.util.find_spec("ultralytics") is None:
            raise RuntimeError("ultralytics is required for local detection")
        ultralytics = importlib.import_module("ultralytics")
        logger.info("[MODEL] Loading %s", model_path)
        return YoloModel(ultralytics.YOLO(model_path))

    return _load


class ModelCache:
    """Per-session, single-flight holder for the local detection model.

    The first ``get`` starts one background load. Concurrent callers await that
    same load, each bounded by its own timeout; a waiter that times out gets
    ``ModelLoadTimeout`` while the load keeps running for later callers. A
    failed load raises ``ModelLoadError`` and the next ``get`` retries.
    """

    def __init__(
        self,
        loader: ModelLoader,
        *,
        wait_timeout_s: float = 5.0,
        preload_timeout_s: float = 15.0,
    ) -> None:
        self._loader = loader
        self._wait_timeout_s = wait_timeout_s
        self._preload_timeout_s = preload_timeout_s
        self._model: DetectionModel | None = None
        self._task: asyncio.Task[DetectionModel] | None = None
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._model is not None

    @property
    def loading(self) -> bool:
        return self._task is not None and not self._task.done()

    async def get(self, timeout_s: float | None = None) -> DetectionModel:
        if self._model is not None:
            return self._model

        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._load())

        timeout = self._wait_timeout_s if timeout_s is None else timeout_s
        try:
            return await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError as exc:
            raise ModelLoadTimeout(f"Model not ready after {timeout:.1f}s") from exc

    async def preload(self) -> DetectionModel:
        """Warm the cache with the longer session-start bound."""

        return await self.get(timeout_s=self._preload_timeout_s)

    async def _load(self) -> DetectionModel:
        self.load_count += 1
        try:
            model = await asyncio.to_thread(self._loader)
        except Exception as exc:
            logger.warning("[MODEL] Load failed: %s", exc)
            raise ModelLoadError(f"Failed to load object detection model: {exc}") from exc
        self._model = model
        logger.info("[MODEL] Detection model ready")
        return model


class LocalModelAdapter(DetectionAdapter):
    """Runs the cached model in a worker thread and normalizes pixel boxes."""

    source = DetectionSource.LOCAL

    def __init__(
        self,
        cache: ModelCache,
        estimator: DistanceEstimator,
        detection_filter: DetectionFilter,
        *,
        mobile_filter: DetectionFilter | None = None,
        inference_timeout_s: float = 5.0,
    ) -> None:
        super().__init__(estimator, detection_filter, mobile_filter=mobile_filter)
        self._cache = cache
        self._inference_timeout_s = inference_timeout_s

    @property
    def cache(self) -> ModelCache:
        return self._cache

    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        detection_filter = self.filter_for(is_mobile)
        model = await self._cache.get()
        predictions = await self._infer(model, frame, detection_filter.max_detections)

        raw: list[RawDetection] = []
        for prediction in predictions:
            x, y, width, height = prediction.box
            raw.append(
                RawDetection(
                    label=prediction.label,
                    confidence=prediction.score,
                    bbox=BoundingBox.from_pixels(
                        x,
                        y,
                        width,
                        height,
                        frame_width=frame.width,
                        frame_height=frame.height,
                    ),
                )
            )
        return self._finalize(raw, is_mobile=is_mobile)

    async def _infer(
        self, model: DetectionModel, frame: Frame, max_detections: int
    ) -> Sequence[RawPrediction]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(model.detect, frame.image, max_detections),
                self._inference_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise SourceError(
                "Local inference timed out",
                source=self.source.value,
                kind=SourceErrorKind.TIMEOUT,
            ) from exc
        except Exception as exc:
            raise SourceError(
                f"Local inference failed: {exc}",
                source=self.source.value,
                kind=SourceErrorKind.INFERENCE,
            ) from exc


class DeepSeekAdapter(LocalModelAdapter):
    """DeepSeek has no vision endpoint in use; once keyed, it runs the local model."""

    source = DetectionSource.DEEPSEEK

    def __init__(
        self,
        api_key: str,
        cache: ModelCache,
        estimator: DistanceEstimator,
        detection_filter: DetectionFilter,
        *,
        mobile_filter: DetectionFilter | None = None,
        inference_timeout_s: float = 5.0,
    ) -> None:
        super().__init__(
            cache,
            estimator,
            detection_filter,
            mobile_filter=mobile_filter,
            inference_timeout_s=inference_timeout_s,
        )
        self._api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        if not self.is_configured:
            raise ConfigurationError("DeepSeek API key not configured", source=self.source.value)
        return await super().detect(frame, is_mobile=is_mobile)
