"""Tests for the timer-driven frame cycle."""

from __future__ import annotations

import asyncio

from PIL import Image

from core.alert_policy import AlertPolicy
from core.errors import ModelLoadError, SourceError, SourceErrorKind, SpeechError, SpeechInterruptedError
from core.event_bus import EventBus
from interaction.speech import QueueMode
from navigation.controller import (
    SCANNING_MESSAGE,
    ControllerConfig,
    CycleState,
    FrameCycleController,
)
from navigation.history import InstructionHistory
from navigation.instructions import Priority
from vision.detections import BoundingBox, DetectedObject, DetectionSource
from vision.device import DetectionFilter
from vision.distance import DistanceEstimator
from vision.frames import Frame
from vision.fusion import DetectionFusionPolicy, FusionConfig
from vision.sources.base import DetectionAdapter


class _Clock:
    def __init__(self, step_s: float = 0.0) -> None:
        self.now = 0.0
        self.step_s = step_s

    def __call__(self) -> float:
        value = self.now
        self.now += self.step_s
        return value


class _FrameSource:
    def __init__(self) -> None:
        self.reads = 0
        self.closed = False

    def read_frame(self) -> Frame:
        self.reads += 1
        return Frame(image=Image.new("RGB", (64, 48)), frame_id=self.reads)

    def close(self) -> None:
        self.closed = True


class _Adapter(DetectionAdapter):
    def __init__(self, source: DetectionSource = DetectionSource.LOCAL) -> None:
        super().__init__(DistanceEstimator(noise=lambda: 0.0), DetectionFilter())
        self.source = source
        self.result: list[DetectedObject] = []
        self.error: Exception | None = None

    async def detect(self, frame: Frame, *, is_mobile: bool = False) -> list[DetectedObject]:
        if self.error is not None:
            raise self.error
        return list(self.result)


class _Scheduler:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.queue_length = 0
        self.error: Exception | None = None
        self.stopped = 0
        self.unlocked = False

    async def speak(self, text: str, **options) -> None:
        self.calls.append({"text": text, **options})
        if self.error is not None:
            raise self.error

    def stop(self) -> None:
        self.stopped += 1

    def unlock(self) -> None:
        self.unlocked = True


def _det(label: str = "chair", center_x: float = 0.5, distance: float = 2.0) -> DetectedObject:
    return DetectedObject(
        id=1,
        label=label,
        confidence=0.9,
        bbox=BoundingBox(x=center_x - 0.1, y=0.3, width=0.2, height=0.4),
        distance=distance,
    )


def _controller(
    adapter: _Adapter | None = None,
    *,
    scheduler: _Scheduler | None = None,
    clock: _Clock | None = None,
    fusion_config: FusionConfig | None = None,
    **config,
) -> tuple[FrameCycleController, _Scheduler, _Adapter]:
    adapter = adapter or _Adapter()
    scheduler = scheduler or _Scheduler()
    fusion = DetectionFusionPolicy([adapter], DetectionFilter(), config=fusion_config)
    controller = FrameCycleController(
        _FrameSource(),
        fusion,
        scheduler,
        history=InstructionHistory(),
        event_bus=EventBus(),
        alert_policy=AlertPolicy(),
        config=ControllerConfig(**config),
        clock=clock or _Clock(),
    )
    return controller, scheduler, adapter


async def _settle(controller: FrameCycleController) -> None:
    await asyncio.sleep(0)
    while controller._announcements:
        await asyncio.gather(*list(controller._announcements), return_exceptions=True)


def _titles(controller: FrameCycleController) -> list[str]:
    return [event.title for event in controller.event_bus.drain()]


def test_cycle_detects_records_history_and_announces() -> None:
    controller, scheduler, adapter = _controller()
    adapter.result = [_det()]

    async def scenario():
        outcome = await controller.tick()
        await _settle(controller)
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.ran and outcome.announced
    assert outcome.instruction.text == "chair ahead, pass around"
    assert outcome.instruction.priority is Priority.HIGH
    assert controller.history.primary().text == "chair ahead, pass around"
    assert controller.current_source is DetectionSource.LOCAL
    assert [d.label for d in controller.nearby] == ["chair"]
    assert controller.state is CycleState.IDLE
    assert scheduler.calls == [
        {
            "text": "chair ahead, pass around",
            "rate": None,
            "queue_mode": QueueMode.FLUSH,
            "interrupt": True,
        }
    ]


def test_empty_frame_announces_path_clear_without_history() -> None:
    controller, scheduler, _ = _controller()

    async def scenario():
        outcome = await controller.tick()
        await _settle(controller)
        return outcome

    outcome = asyncio.run(scenario())

    assert outcome.instruction is None
    assert len(controller.history) == 0
    assert scheduler.calls[0]["text"] == "Path is clear"


def test_previous_detections_feed_stabilization() -> None:
    controller, _, adapter = _controller()

    async def scenario() -> None:
        adapter.result = [_det(center_x=0.50)]
        await controller.tick()
        adapter.result = [_det(center_x=0.60)]
        await controller.tick()
        await _settle(controller)

    asyncio.run(scenario())

    # Second box blends 60/40 with the first.
    assert abs(controller.detections[0].bbox.x - (0.5 * 0.6 + 0.4 * 0.4)) < 1e-9
    assert controller.previous_detections == controller.detections


def test_speech_backpressure_skips_cycle() -> None:
    controller, scheduler, _ = _controller()
    scheduler.queue_length = 3

    outcome = asyncio.run(controller.tick())

    assert outcome.skipped == "speech_backpressure"
    assert controller._frame_source.reads == 0


def test_detection_in_flight_skips_cycle() -> None:
    controller, _, _ = _controller()
    controller._fusion._in_flight = True

    outcome = asyncio.run(controller.tick())

    assert outcome.skipped == "in_flight"


def test_mobile_frame_skip_runs_every_nth_tick() -> None:
    controller, _, _ = _controller(frame_skip=3, continuous_speech=False)

    async def scenario() -> list:
        return [await controller.tick() for _ in range(6)]

    outcomes = asyncio.run(scenario())

    assert [outcome.ran for outcome in outcomes] == [False, False, True, False, False, True]


def test_announcements_are_rate_limited() -> None:
    clock = _Clock()
    controller, scheduler, adapter = _controller(clock=clock, announcement_interval_s=5.0)
    adapter.result = [_det()]

    async def scenario() -> list[bool]:
        announced = []
        for now in (0.0, 2.0, 6.0):
            clock.now = now
            outcome = await controller.tick()
            await _settle(controller)
            announced.append(outcome.announced)
        return announced

    assert asyncio.run(scenario()) == [True, False, True]
    assert len(scheduler.calls) == 2


def test_continuous_speech_off_only_announces_on_manual_scan() -> None:
    controller, scheduler, adapter = _controller(continuous_speech=False)
    adapter.result = [_det()]

    async def scenario():
        first = await controller.tick()
        scan = await controller.manual_scan()
        await _settle(controller)
        return first, scan

    first, scan = asyncio.run(scenario())

    assert not first.announced
    assert scan.announced
    assert scheduler.calls[0] == {"text": SCANNING_MESSAGE, "queue_mode": QueueMode.IMMEDIATE, "interrupt": True}
    assert scheduler.calls[1]["text"] == "chair ahead, pass around"


def test_manual_scan_bypasses_announcement_interval() -> None:
    controller, scheduler, adapter = _controller(announcement_interval_s=60.0)
    adapter.result = [_det()]

    async def scenario() -> None:
        await controller.tick()
        await _settle(controller)
        await controller.manual_scan()
        await _settle(controller)

    asyncio.run(scenario())

    texts = [call["text"] for call in scheduler.calls]
    assert texts == ["chair ahead, pass around", SCANNING_MESSAGE, "chair ahead, pass around"]


def test_tick_during_scan_prompt_is_skipped() -> None:
    class _GatedScheduler(_Scheduler):
        def __init__(self) -> None:
            super().__init__()
            self.gate = asyncio.Event()

        async def speak(self, text: str, **options) -> None:
            await super().speak(text, **options)
            if text == SCANNING_MESSAGE:
                await self.gate.wait()

    scheduler = _GatedScheduler()
    controller, _, adapter = _controller(scheduler=scheduler)
    adapter.result = [_det()]

    async def scenario():
        scan_task = asyncio.create_task(controller.manual_scan())
        await asyncio.sleep(0)
        assert controller.in_flight
        ticked = await controller.tick()
        assert controller.in_flight
        scheduler.gate.set()
        scan = await scan_task
        await _settle(controller)
        return ticked, scan

    ticked, scan = asyncio.run(scenario())

    assert ticked.skipped == "in_flight"
    assert scan.ran and scan.announced
    assert controller._frame_source.reads == 1
    assert not controller.in_flight
    assert [call["text"] for call in scheduler.calls] == [SCANNING_MESSAGE, "chair ahead, pass around"]


def test_scan_during_cycle_is_skipped_and_keeps_flag() -> None:
    controller, _, adapter = _controller()
    adapter.result = [_det()]
    gate = asyncio.Event()
    original_detect = adapter.detect

    async def gated_detect(frame, *, is_mobile: bool = False):
        await gate.wait()
        return await original_detect(frame, is_mobile=is_mobile)

    adapter.detect = gated_detect

    async def scenario():
        tick_task = asyncio.create_task(controller.tick())
        await asyncio.sleep(0)
        scan = await controller.manual_scan()
        still_held = controller.in_flight
        gate.set()
        ticked = await tick_task
        await _settle(controller)
        return scan, still_held, ticked

    scan, still_held, ticked = asyncio.run(scenario())

    assert scan.skipped == "in_flight"
    assert still_held
    assert ticked.ran
    assert not controller.in_flight


def test_voice_disabled_is_silent_until_enabled() -> None:
    controller, scheduler, adapter = _controller()
    adapter.result = [_det()]
    controller.voice_enabled = False

    async def scenario() -> None:
        await controller.tick()
        controller.enable_voice()
        await controller.tick()
        await _settle(controller)

    asyncio.run(scenario())

    assert scheduler.unlocked
    assert len(scheduler.calls) == 1


def test_repeated_detection_failure_alerts_once() -> None:
    adapter = _Adapter()
    adapter.error = SourceError("boom", source="local", kind=SourceErrorKind.INFERENCE)
    controller, _, _ = _controller(adapter, failure_alert_threshold=3)

    async def scenario() -> list:
        return [await controller.tick() for _ in range(5)]

    outcomes = asyncio.run(scenario())

    assert all(outcome.ran and outcome.error is not None for outcome in outcomes)
    assert controller.failure_count == 5
    assert _titles(controller) == ["Detection issues"]


def test_failure_count_resets_after_success() -> None:
    adapter = _Adapter()
    adapter.error = SourceError("boom", source="local", kind=SourceErrorKind.INFERENCE)
    controller, _, _ = _controller(adapter, continuous_speech=False)

    async def scenario() -> None:
        await controller.tick()
        adapter.error = None
        await controller.tick()

    asyncio.run(scenario())

    assert controller.failure_count == 0


def test_model_load_failure_enters_basic_camera_mode() -> None:
    adapter = _Adapter()
    adapter.error = ModelLoadError("weights missing")
    controller, _, _ = _controller(adapter)

    async def scenario() -> None:
        await controller.tick()
        await controller.tick()

    asyncio.run(scenario())

    assert _titles(controller) == ["Basic camera mode"]


def test_no_source_recommendation_when_cloud_detection_enabled() -> None:
    adapter = _Adapter()
    adapter.error = SourceError("boom", source="local", kind=SourceErrorKind.NETWORK)
    controller, _, _ = _controller(adapter, use_cloud_detection=True, failure_alert_threshold=2)

    async def scenario() -> None:
        for _ in range(3):
            await controller.tick()

    asyncio.run(scenario())

    assert "Detection issues" not in _titles(controller)


def test_fusion_recommendation_is_published() -> None:
    cloud = _Adapter(DetectionSource.CLOUD)
    cloud.error = SourceError("HTTP 500", source="cloud", kind=SourceErrorKind.NETWORK)
    local = _Adapter()
    local.result = [_det()]
    scheduler = _Scheduler()
    fusion = DetectionFusionPolicy([cloud, local], DetectionFilter(), config=FusionConfig(failure_alert_threshold=2))
    controller = FrameCycleController(
        _FrameSource(),
        fusion,
        scheduler,
        config=ControllerConfig(preferred_provider="cloud", continuous_speech=False),
    )

    async def scenario() -> None:
        for _ in range(3):
            await controller.tick()

    asyncio.run(scenario())

    assert _titles(controller) == ["Detection source issues"]
    assert controller.current_source is DetectionSource.LOCAL


def test_speech_failures_shorten_announcements_and_alert() -> None:
    controller, scheduler, adapter = _controller(announcement_interval_s=0.0)
    adapter.result = [_det("chair", 0.5, 2.0), _det("person", 0.2, 4.0)]
    scheduler.error = SpeechError("engine down")

    async def scenario() -> None:
        for _ in range(4):
            await controller.tick()
            await _settle(controller)

    asyncio.run(scenario())

    assert controller.speech_failures == 4
    assert scheduler.calls[0]["text"] == "chair ahead, pass around and person to your left, move right"
    assert scheduler.calls[3] == {
        "text": "chair ahead, pass around",
        "rate": 1.0,
        "queue_mode": QueueMode.FLUSH,
        "interrupt": True,
    }
    assert _titles(controller) == ["Voice guidance unavailable"]


def test_superseded_announcements_are_not_failures() -> None:
    controller, scheduler, adapter = _controller()
    adapter.result = [_det()]
    scheduler.error = SpeechInterruptedError("flushed")

    async def scenario() -> None:
        await controller.tick()
        await _settle(controller)

    asyncio.run(scenario())

    assert controller.speech_failures == 0


def test_slow_local_processing_raises_alert() -> None:
    controller, _, adapter = _controller(clock=_Clock(step_s=2.0), continuous_speech=False)
    adapter.result = [_det()]

    asyncio.run(controller.tick())

    assert controller.average_cycle_s == 2.0
    assert _titles(controller) == ["Slow processing"]


def test_run_stops_after_max_cycles_and_close_stops_speech() -> None:
    controller, scheduler, _ = _controller(period_s=0.0, continuous_speech=False)

    async def scenario() -> None:
        await controller.run(max_cycles=3)
        await controller.close()

    asyncio.run(scenario())

    assert controller._frame_source.reads == 3
    assert scheduler.stopped == 1


def test_controller_config_from_device_class() -> None:
    from config.settings import Settings
    from vision.device import DeviceInfo

    settings = Settings(speech_interval_ms=4000, preferred_provider="azure")
    desktop = ControllerConfig.from_config({}, settings, DeviceInfo(is_mobile=False))
    mobile = ControllerConfig.from_config(
        {"controller": {"mobile_frame_skip": 2}}, settings, DeviceInfo(is_mobile=True)
    )

    assert (desktop.period_s, desktop.frame_skip) == (1.0, 1)
    assert (mobile.period_s, mobile.frame_skip) == (2.0, 2)
    assert desktop.announcement_interval_s == 4.0
    assert desktop.preferred_provider == "azure"


def test_disable_voice_silences_scheduler() -> None:
    controller, scheduler, adapter = _controller()
    adapter.result = [_det()]
    controller.disable_voice()

    outcome = asyncio.run(controller.tick())

    assert not outcome.announced
    assert scheduler.stopped == 1
    assert scheduler.calls == []
