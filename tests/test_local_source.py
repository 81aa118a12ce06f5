"""Tests for the shared model cache and on-device adapters."""

from __future__ import annotations

import asyncio
import threading
import time

from PIL import Image
import pytest

from core.errors import ConfigurationError, ModelLoadError, ModelLoadTimeout, SourceError, SourceErrorKind
from vision.device import DetectionFilter
from vision.distance import DistanceEstimator
from vision.frames import Frame
from vision.sources.local import DeepSeekAdapter, LocalModelAdapter, ModelCache, RawPrediction


class _FakeModel:
    def __init__(self, predictions: list[RawPrediction] | None = None, error: Exception | None = None) -> None:
        self.predictions = predictions or []
        self.error = error
        self.calls: list[int] = []

    def detect(self, image, max_detections: int) -> list[RawPrediction]:
        self.calls.append(max_detections)
        if self.error is not None:
            raise self.error
        return list(self.predictions)


def _frame() -> Frame:
    return Frame(image=Image.new("RGB", (100, 100)))


def _adapter(model: _FakeModel, **kwargs) -> LocalModelAdapter:
    cache = ModelCache(lambda: model)
    return LocalModelAdapter(cache, DistanceEstimator(noise=lambda: 0.0), DetectionFilter(), **kwargs)


def test_concurrent_gets_share_one_load() -> None:
    load_calls = []

    def loader() -> _FakeModel:
        load_calls.append(1)
        time.sleep(0.05)
        return _FakeModel()

    async def scenario() -> tuple:
        cache = ModelCache(loader)
        first, second = await asyncio.gather(cache.get(), cache.get())
        return cache, first, second

    cache, first, second = asyncio.run(scenario())

    assert first is second
    assert cache.loaded
    assert cache.load_count == 1
    assert len(load_calls) == 1


def test_waiter_times_out_while_load_continues() -> None:
    release = threading.Event()

    def loader() -> _FakeModel:
        release.wait(2.0)
        return _FakeModel()

    async def scenario() -> ModelCache:
        cache = ModelCache(loader)
        with pytest.raises(ModelLoadTimeout):
            await cache.get(timeout_s=0.05)
        assert cache.loading
        release.set()
        await cache.get(timeout_s=2.0)
        return cache

    cache = asyncio.run(scenario())

    assert cache.loaded
    assert cache.load_count == 1


def test_failed_load_is_retried_on_next_get() -> None:
    attempts = []

    def loader() -> _FakeModel:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("weights missing")
        return _FakeModel()

    async def scenario() -> ModelCache:
        cache = ModelCache(loader)
        with pytest.raises(ModelLoadError):
            await cache.get()
        await cache.get()
        return cache

    cache = asyncio.run(scenario())

    assert cache.load_count == 2
    assert cache.loaded


def test_local_adapter_normalizes_pixel_boxes() -> None:
    model = _FakeModel([RawPrediction(label="chair", score=0.9, box=(10, 10, 20, 20))])

    detections = asyncio.run(_adapter(model).detect(_frame()))

    assert len(detections) == 1
    detection = detections[0]
    assert detection.id == 1
    assert detection.bbox.x == pytest.approx(0.1)
    assert detection.bbox.width == pytest.approx(0.2)
    assert detection.distance == pytest.approx(4.6875)
    assert detection.metadata["source"] == "local"
    assert model.calls == [15]


def test_local_adapter_uses_mobile_filter() -> None:
    model = _FakeModel([RawPrediction(label="cup", score=0.2, box=(40, 40, 30, 30))])
    adapter = _adapter(model, mobile_filter=DetectionFilter(confidence_threshold=0.15, max_detections=3))

    assert asyncio.run(adapter.detect(_frame())) == []
    mobile = asyncio.run(adapter.detect(_frame(), is_mobile=True))

    assert [d.label for d in mobile] == ["cup"]
    assert model.calls[-1] == 3


def test_inference_failure_becomes_source_error() -> None:
    adapter = _adapter(_FakeModel(error=ValueError("bad tensor")))

    with pytest.raises(SourceError) as excinfo:
        asyncio.run(adapter.detect(_frame()))

    assert excinfo.value.kind is SourceErrorKind.INFERENCE
    assert excinfo.value.source == "local"


def test_slow_inference_times_out() -> None:
    class _SlowModel(_FakeModel):
        def detect(self, image, max_detections: int) -> list[RawPrediction]:
            time.sleep(0.3)
            return []

    adapter = _adapter(_SlowModel(), inference_timeout_s=0.05)

    with pytest.raises(SourceError) as excinfo:
        asyncio.run(adapter.detect(_frame()))

    assert excinfo.value.kind is SourceErrorKind.TIMEOUT


def test_deepseek_requires_key_then_runs_local_model() -> None:
    model = _FakeModel([RawPrediction(label="person", score=0.8, box=(30, 10, 40, 80))])
    cache = ModelCache(lambda: model)
    estimator = DistanceEstimator(noise=lambda: 0.0)

    unkeyed = DeepSeekAdapter("", cache, estimator, DetectionFilter())
    with pytest.raises(ConfigurationError):
        asyncio.run(unkeyed.detect(_frame()))

    keyed = DeepSeekAdapter("sk-test", cache, estimator, DetectionFilter())
    detections = asyncio.run(keyed.detect(_frame()))

    assert [d.metadata["source"] for d in detections] == ["deepseek"]
