"""Application runtime entry points and lifecycle helpers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from config import ConfigController
from config.settings import Settings
from core.alert_policy import Alert, AlertPolicy
from core.errors import ModelLoadError
from core.event_bus import Event, EventBus
from core.logging import log_info, log_notification, log_warning, logger
from interaction.earcons import EarconPlayer
from interaction.engines import (
    ConsoleSpeechEngine,
    FallbackSpeechEngine,
    LocalSpeechEngine,
    RemoteSpeechEngine,
    SpeechEngine,
)
from interaction.speech import SchedulerConfig, SpeechScheduler
from navigation.controller import ALERT_BASIC_CAMERA, ControllerConfig, FrameCycleController
from navigation.history import InstructionHistory
from navigation.instructions import InstructionConfig, InstructionGenerator
from vision.device import DetectionFilter, DeviceInfo
from vision.distance import DistanceCalibration, DistanceEstimator
from vision.frames import FrameSource, ImageFileSource, Picamera2Source
from vision.fusion import DetectionFusionPolicy, FusionConfig
from vision.sources import (
    AzureVisionAdapter,
    CloudApiAdapter,
    DeepSeekAdapter,
    LocalModelAdapter,
    ModelCache,
)
from vision.sources.local import yolo_loader
from vision.stabilization import StabilizationConfig


@dataclass(frozen=True)
class AppConfig:
    """Configuration for one guidance session.

    Attributes:
        image_path: Still image (or directory of images) replayed as the camera.
        use_camera: Capture from Picamera2 instead of an image source.
        max_cycles: Stop after this many completed cycles; ``None`` runs until interrupted.
        voice: Speak announcements. When false, guidance is only logged.
        preferred_provider: Overrides the configured detection provider.
    """

    image_path: Path | None = None
    use_camera: bool = False
    max_cycles: int | None = None
    voice: bool = True
    preferred_provider: str | None = None


def _notify(event: Event) -> None:
    severity = str(event.metadata.get("severity", event.priority))
    log_notification(event.title, event.content or "", severity)


def build_speech_engine(settings: Settings, *, voice: bool = True) -> SpeechEngine:
    """Remote voice when configured, pyttsx3 when installed, else console output."""

    if not voice:
        return ConsoleSpeechEngine()
    try:
        local: SpeechEngine = LocalSpeechEngine(language=settings.cartesia_language)
    except RuntimeError as exc:
        logger.warning("[SPEECH] Local voice unavailable (%s); logging announcements", exc)
        local = ConsoleSpeechEngine()
    if not settings.remote_tts_configured:
        return local
    remote = RemoteSpeechEngine(
        settings.cartesia_api_key,
        api_url=settings.cartesia_api_url,
        voice_id=settings.cartesia_voice_id,
        language=settings.cartesia_language,
        model_id=settings.cartesia_model,
    )
    return FallbackSpeechEngine(remote, local)


def build_fusion(
    config: Mapping[str, Any],
    settings: Settings,
    device: DeviceInfo,
    *,
    cache: ModelCache,
) -> DetectionFusionPolicy:
    detection_cfg = config.get("detection") or {}
    estimator = DistanceEstimator(DistanceCalibration.from_config(config))
    base_filter = DetectionFilter.from_config(config)
    mobile_filter = base_filter.for_mobile(device)
    jpeg_options = {
        "timeout_s": settings.request_timeout_s,
        "jpeg_max_dimension": int(detection_cfg.get("jpeg_max_dimension", 640)),
        "jpeg_quality": int(detection_cfg.get("jpeg_quality", 70)),
    }
    adapters = [
        LocalModelAdapter(cache, estimator, base_filter, mobile_filter=mobile_filter),
        CloudApiAdapter(
            settings.cloud_api_url,
            settings.cloud_api_key,
            estimator,
            base_filter,
            mobile_filter=mobile_filter,
            **jpeg_options,
        ),
        AzureVisionAdapter(
            settings.azure_api_url,
            settings.azure_api_key,
            estimator,
            base_filter,
            mobile_filter=mobile_filter,
            **jpeg_options,
        ),
        DeepSeekAdapter(
            settings.deepseek_api_key,
            cache,
            estimator,
            base_filter,
            mobile_filter=mobile_filter,
        ),
    ]
    return DetectionFusionPolicy(
        adapters,
        base_filter,
        mobile_filter=mobile_filter,
        config=FusionConfig.from_config(config, settings),
    )


def build_frame_source(app_config: AppConfig) -> FrameSource:
    if app_config.use_camera:
        return Picamera2Source()
    if app_config.image_path is None:
        raise ValueError("An image path is required when the camera is not used")
    return ImageFileSource(app_config.image_path)


class Session:
    """Wires one guidance session from the active configuration."""

    def __init__(
        self,
        app_config: AppConfig,
        config: Mapping[str, Any] | None = None,
        *,
        frame_source: FrameSource | None = None,
        engine: SpeechEngine | None = None,
        device: DeviceInfo | None = None,
        cache: ModelCache | None = None,
    ) -> None:
        if config is None:
            config = ConfigController.get_instance().get_config()
        self.app_config = app_config
        self.config = config
        self.device = device or DeviceInfo.detect(config.get("device") or {})
        logger.info(
            "[DEVICE] mobile=%s cores=%s high_end=%s",
            self.device.is_mobile,
            self.device.cpu_cores,
            self.device.is_high_end_device,
        )

        detection_cfg = config.get("detection") or {}
        settings = Settings.from_config(config)
        if app_config.preferred_provider:
            settings = replace(settings, preferred_provider=app_config.preferred_provider)
        elif "preferred_provider" not in detection_cfg:
            settings = replace(settings, preferred_provider=self.device.default_provider())
        self.settings = settings

        self.cache = cache or ModelCache(
            yolo_loader(str(detection_cfg.get("model_path", "yolov8n.pt"))),
            wait_timeout_s=float(detection_cfg.get("model_load_timeout_s", 5.0)),
            preload_timeout_s=float(detection_cfg.get("model_preload_timeout_s", 15.0)),
        )
        self.fusion = build_fusion(config, settings, self.device, cache=self.cache)

        self.engine = engine or build_speech_engine(settings, voice=app_config.voice)
        self.scheduler = SpeechScheduler(self.engine, SchedulerConfig.from_config(config))
        self.earcons = EarconPlayer.from_config(config) if app_config.voice else None

        instructions_cfg = config.get("instructions") or {}
        self.history = InstructionHistory(int(instructions_cfg.get("history_size", 10)))
        self.event_bus = EventBus()
        self.event_bus.subscribe(_notify)
        self.alert_policy = AlertPolicy.from_config(config)

        self.frame_source = frame_source or build_frame_source(app_config)
        self.controller = FrameCycleController(
            self.frame_source,
            self.fusion,
            self.scheduler,
            generator=InstructionGenerator(InstructionConfig.from_config(config)),
            history=self.history,
            event_bus=self.event_bus,
            alert_policy=self.alert_policy,
            earcons=self.earcons,
            config=ControllerConfig.from_config(config, settings, self.device),
            stabilization=StabilizationConfig.from_config(config),
            is_mobile=self.device.is_mobile,
        )

    async def start(self) -> None:
        """Warm the detection model; a failed load leaves basic camera mode."""

        needs_local = not (self.settings.use_cloud_detection and self.settings.cloud_configured)
        if not needs_local:
            return
        try:
            await self.cache.preload()
        except ModelLoadError as exc:
            log_warning(f"[MODEL] Preload failed: {exc}")
            self.alert_policy.emit(
                self.event_bus,
                Alert(
                    key=ALERT_BASIC_CAMERA,
                    title="Basic camera mode",
                    message="Object detection is unavailable. The camera keeps running without detection.",
                    once=True,
                ),
            )

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        await self.start()
        try:
            await self.controller.run(stop_event, max_cycles=self.app_config.max_cycles)
        finally:
            await self.close()

    async def close(self) -> None:
        await self.controller.close()
        self.frame_source.close()
        close_engine = getattr(self.engine, "close", None)
        if close_engine is not None:
            close_engine()


def run(app_config: AppConfig) -> int:
    """Run a guidance session until interrupted or ``max_cycles`` complete.

    Returns:
        Process exit code (0 for success).
    """

    log_info("Starting EchoVision session", style="bold green")
    session = Session(app_config)
    try:
        asyncio.run(session.run())
    except KeyboardInterrupt:
        logger.info("Session terminated by user")
    return 0
