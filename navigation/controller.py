"""Timer-driven frame cycle: fetch, detect, stabilize, prioritize, instruct, speak."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
import time
from typing import Any, Callable, Deque, Mapping

from config.settings import Settings
from core.alert_policy import Alert, AlertPolicy
from core.errors import (
    DetectionExhaustedError,
    DetectionInFlightError,
    ModelLoadError,
    SpeechError,
    SpeechInterruptedError,
)
from core.event_bus import EventBus
from core.logging import log_instruction, logger
from interaction.earcons import EarconPlayer
from interaction.speech import QueueMode, SpeechScheduler
from navigation.history import InstructionHistory
from navigation.instructions import InstructionGenerator, NavigationInstruction, Priority
from vision.detections import DetectedObject, DetectionSource, FusionResult
from vision.device import DeviceInfo
from vision.frames import FrameSource
from vision.fusion import DetectionFusionPolicy
from vision.stabilization import StabilizationConfig, prioritize, stabilize


SCANNING_MESSAGE = "Scanning for objects"

ALERT_SOURCE_RECOMMENDATION = "detection.recommend_source"
ALERT_FUSION_RECOMMENDATION = "detection.fusion_recommendation"
ALERT_BASIC_CAMERA = "detection.basic_camera_mode"
ALERT_SLOW_PROCESSING = "detection.slow_processing"
ALERT_SPEECH_FAILING = "speech.failing"


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING_FRAME = "fetching_frame"
    DETECTING = "detecting"
    STABILIZING = "stabilizing"
    PRIORITIZING = "prioritizing"
    INSTRUCTING = "instructing"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class ControllerConfig:
    period_s: float = 1.0
    frame_skip: int = 1
    speech_queue_limit: int = 2
    nearby_distance_m: float = 5.0
    announcement_interval_s: float = 5.0
    continuous_speech: bool = True
    preferred_provider: str = "local"
    use_cloud_detection: bool = False
    failure_alert_threshold: int = 3
    speech_failure_alert_threshold: int = 3
    slow_processing_s: float = 1.0
    duration_window: int = 10

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        settings: Settings,
        device: DeviceInfo,
    ) -> "ControllerConfig":
        section = config.get("controller") or {}
        detection_cfg = config.get("detection") or {}
        if device.is_mobile:
            period_s = float(section.get("mobile_period_s", 2.0))
            frame_skip = int(section.get("mobile_frame_skip", 3))
        else:
            period_s = float(section.get("desktop_period_s", 1.0))
            frame_skip = 1
        return cls(
            period_s=period_s,
            frame_skip=max(1, frame_skip),
            speech_queue_limit=int(section.get("speech_queue_limit", 2)),
            nearby_distance_m=float(section.get("nearby_distance_m", 5.0)),
            announcement_interval_s=settings.speech_interval_ms / 1000.0,
            continuous_speech=settings.continuous_speech,
            preferred_provider=settings.preferred_provider,
            use_cloud_detection=settings.use_cloud_detection,
            failure_alert_threshold=int(detection_cfg.get("failure_alert_threshold", 3)),
            speech_failure_alert_threshold=int(section.get("speech_failure_alert_threshold", 3)),
            slow_processing_s=float(section.get("slow_processing_ms", 1000)) / 1000.0,
        )


@dataclass(frozen=True)
class CycleOutcome:
    """What one tick did. ``skipped`` carries the reason when no cycle ran."""

    skipped: str | None = None
    result: FusionResult | None = None
    instruction: NavigationInstruction | None = None
    announced: bool = False
    error: Exception | None = None

    @property
    def ran(self) -> bool:
        return self.skipped is None


class FrameCycleController:
    """Owns the previous-frame snapshot and drives one cycle per timer tick.

    Cycles never overlap. A tick is skipped when a cycle is in flight, when the
    speech queue is backed up, or, on mobile, on all but every ``frame_skip``-th
    tick. Detection failures are counted and reported, never raised.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        fusion: DetectionFusionPolicy,
        scheduler: SpeechScheduler,
        *,
        generator: InstructionGenerator | None = None,
        history: InstructionHistory | None = None,
        event_bus: EventBus | None = None,
        alert_policy: AlertPolicy | None = None,
        earcons: EarconPlayer | None = None,
        config: ControllerConfig | None = None,
        stabilization: StabilizationConfig | None = None,
        is_mobile: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._frame_source = frame_source
        self._fusion = fusion
        self._scheduler = scheduler
        self._generator = generator or InstructionGenerator()
        self.history = history or InstructionHistory()
        self.event_bus = event_bus or EventBus()
        self._alerts = alert_policy or AlertPolicy()
        self._earcons = earcons
        self.config = config or ControllerConfig()
        self._stabilization = stabilization or StabilizationConfig()
        self._is_mobile = is_mobile
        self._clock = clock

        self.state = CycleState.IDLE
        self.previous_detections: list[DetectedObject] = []
        self.detections: list[DetectedObject] = []
        self.nearby: list[DetectedObject] = []
        self.current_source: DetectionSource | None = None
        self.failure_count = 0
        self.speech_failures = 0
        self.voice_enabled = True
        self.preferred_provider = self.config.preferred_provider

        self._in_flight = False
        self._tick_count = 0
        self._last_announcement: float | None = None
        self._durations: Deque[float] = deque(maxlen=self.config.duration_window)
        self._announcements: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def average_cycle_s(self) -> float | None:
        if not self._durations:
            return None
        return sum(self._durations) / len(self._durations)

    def enable_voice(self) -> None:
        """User tapped to enable voice: unlock gated audio and announce next cycle."""

        self._scheduler.unlock()
        self.voice_enabled = True
        self._last_announcement = None

    def disable_voice(self) -> None:
        self.voice_enabled = False
        self._scheduler.stop()

    async def tick(self) -> CycleOutcome:
        self._tick_count += 1
        if self.config.frame_skip > 1 and self._tick_count % self.config.frame_skip != 0:
            return CycleOutcome(skipped="frame_skip")
        if self._in_flight or self._fusion.in_flight:
            logger.debug("[CYCLE] Skipping tick: detection in flight")
            return CycleOutcome(skipped="in_flight")
        if self._scheduler.queue_length > self.config.speech_queue_limit:
            logger.debug("[CYCLE] Skipping tick: speech queue backed up")
            return CycleOutcome(skipped="speech_backpressure")
        self._in_flight = True
        try:
            return await self._run_cycle(force_announce=False)
        finally:
            self._in_flight = False

    async def manual_scan(self) -> CycleOutcome:
        """User-initiated scan: announce now regardless of the interval."""

        if self._in_flight or self._fusion.in_flight:
            return CycleOutcome(skipped="in_flight")
        # Held across the prompt so timer ticks skip until the scan cycle ends.
        self._in_flight = True
        try:
            self._last_announcement = None
            if self.voice_enabled:
                try:
                    await self._scheduler.speak(
                        SCANNING_MESSAGE, queue_mode=QueueMode.IMMEDIATE, interrupt=True
                    )
                except SpeechError as exc:
                    logger.warning("[CYCLE] Scan prompt not spoken: %s", exc)
            return await self._run_cycle(force_announce=True)
        finally:
            self._in_flight = False

    async def run(
        self,
        stop_event: asyncio.Event | None = None,
        *,
        max_cycles: int | None = None,
    ) -> None:
        """Tick every ``period_s`` until ``stop_event`` is set or enough cycles ran."""

        stop_event = stop_event or asyncio.Event()
        completed = 0
        logger.info("[CYCLE] Loop started (period=%.1fs)", self.config.period_s)
        while not stop_event.is_set():
            outcome = await self.tick()
            if outcome.ran:
                completed += 1
                if max_cycles is not None and completed >= max_cycles:
                    break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.period_s)
            except asyncio.TimeoutError:
                continue
        logger.info("[CYCLE] Loop stopped after %s cycles", completed)

    async def close(self) -> None:
        """Let pending announcements finish, then silence the scheduler."""

        if self._announcements:
            await asyncio.gather(*list(self._announcements), return_exceptions=True)
        self._scheduler.stop()

    async def _run_cycle(self, *, force_announce: bool) -> CycleOutcome:
        """One cycle. The caller owns the in-flight flag."""

        started = self._clock()
        try:
            self.state = CycleState.FETCHING_FRAME
            try:
                frame = await asyncio.to_thread(self._frame_source.read_frame)
            except (OSError, RuntimeError) as exc:
                logger.warning("[CYCLE] Frame capture failed: %s", exc)
                return CycleOutcome(skipped="no_frame", error=exc)
            if frame is None:
                return CycleOutcome(skipped="no_frame")

            self.state = CycleState.DETECTING
            try:
                result = await self._fusion.detect(
                    frame, self.preferred_provider, is_mobile=self._is_mobile
                )
            except DetectionInFlightError:
                return CycleOutcome(skipped="in_flight")
            except DetectionExhaustedError as exc:
                self._on_detection_failure(exc)
                return CycleOutcome(error=exc)

            self.failure_count = 0
            if result.recommendation:
                self._alert(
                    Alert(
                        key=ALERT_FUSION_RECOMMENDATION,
                        title="Detection source issues",
                        message=result.recommendation,
                        once=True,
                    )
                )

            self.state = CycleState.STABILIZING
            stabilized = stabilize(
                result.detections,
                self.previous_detections,
                tolerance=self._stabilization.tolerance,
                current_weight=self._stabilization.current_weight,
            )

            self.state = CycleState.PRIORITIZING
            prioritized = prioritize(
                stabilized, passthrough_limit=self._stabilization.passthrough_limit
            )
            self.previous_detections = prioritized
            self.detections = prioritized
            self.nearby = [
                detection
                for detection in prioritized
                if detection.distance is not None
                and detection.distance <= self.config.nearby_distance_m
            ]
            self.current_source = result.source

            self.state = CycleState.INSTRUCTING
            instruction = self._generator.generate(prioritized)
            record: NavigationInstruction | None = None
            if prioritized:
                record = self._generator.record(instruction)
                self.history.add(record)
                log_instruction(record.text, record.priority.value, result.source.value)

            announced = False
            if self._should_announce(force_announce):
                self.state = CycleState.SPEAKING
                self._announce(prioritized, instruction.priority)
                announced = True

            self._record_duration(self._clock() - started)
            return CycleOutcome(result=result, instruction=record, announced=announced)
        finally:
            self.state = CycleState.IDLE

    def _should_announce(self, force: bool) -> bool:
        if not self.voice_enabled:
            return False
        if force:
            return True
        if not self.config.continuous_speech:
            return False
        if self._last_announcement is None:
            return True
        return self._clock() - self._last_announcement >= self.config.announcement_interval_s

    def _announce(self, detections: list[DetectedObject], priority: Priority) -> None:
        rate: float | None = None
        if self.speech_failures > 2:
            # Shorter, plainer speech while the engine keeps failing.
            text = self._generator.generate(detections).text
            rate = 1.0
        else:
            text = self._generator.describe(detections)
        self._last_announcement = self._clock()
        task = asyncio.ensure_future(self._speak_announcement(text, priority, rate))
        self._announcements.add(task)
        task.add_done_callback(self._announcements.discard)

    async def _speak_announcement(self, text: str, priority: Priority, rate: float | None) -> None:
        if self._earcons is not None:
            try:
                await self._earcons.play(priority.value)
            except (OSError, RuntimeError) as exc:
                logger.debug("[EARCON] Tone failed: %s", exc)
        try:
            await self._scheduler.speak(
                text, rate=rate, queue_mode=QueueMode.FLUSH, interrupt=True
            )
        except SpeechInterruptedError:
            logger.debug("[CYCLE] Announcement superseded")
            return
        except SpeechError as exc:
            self.speech_failures += 1
            logger.warning("[CYCLE] Announcement failed (%s): %s", self.speech_failures, exc)
            if self.speech_failures >= self.config.speech_failure_alert_threshold:
                self._alert(
                    Alert(
                        key=ALERT_SPEECH_FAILING,
                        title="Voice guidance unavailable",
                        message="Speech keeps failing. Check audio output or voice settings.",
                        once=True,
                    )
                )
            return
        self.speech_failures = 0

    def _on_detection_failure(self, exc: DetectionExhaustedError) -> None:
        self.failure_count += 1
        logger.warning("[CYCLE] Detection failed (%s in a row): %s", self.failure_count, exc)

        if isinstance(exc.__cause__, ModelLoadError):
            self._alert(
                Alert(
                    key=ALERT_BASIC_CAMERA,
                    title="Basic camera mode",
                    message="Object detection is unavailable. The camera keeps running without detection.",
                    once=True,
                )
            )

        if (
            self.failure_count >= self.config.failure_alert_threshold
            and not self.config.use_cloud_detection
        ):
            self._alert(
                Alert(
                    key=ALERT_SOURCE_RECOMMENDATION,
                    title="Detection issues",
                    message=exc.recommendation
                    or "Detection keeps failing. Consider switching the detection source in settings.",
                    once=True,
                )
            )

    def _record_duration(self, duration_s: float) -> None:
        self._durations.append(duration_s)
        average = self.average_cycle_s
        if (
            average is not None
            and average > self.config.slow_processing_s
            and self.current_source is DetectionSource.LOCAL
        ):
            self._alert(
                Alert(
                    key=ALERT_SLOW_PROCESSING,
                    title="Slow processing",
                    message=(
                        f"Detection is averaging {average * 1000:.0f} ms per frame. "
                        "Cloud detection may be faster on this device."
                    ),
                    severity="info",
                )
            )

    def _alert(self, alert: Alert) -> None:
        if self._alerts.emit(self.event_bus, alert):
            logger.info("[ALERT] %s: %s", alert.title, alert.message)
