"""Read-only settings snapshot consumed by the detection and speech runtime."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any, Mapping


PLACEHOLDER_MARKERS: tuple[str, ...] = ("your-cloud-api", "your_endpoint")

_PROVIDERS = ("local", "cloud", "azure", "deepseek")


def is_placeholder_url(url: str) -> bool:
    """Return whether ``url`` is one of the sample endpoints shipped in defaults."""

    normalized = url.strip().lower()
    return any(marker in normalized for marker in PLACEHOLDER_MARKERS)


def _env_or(value: Any, env_name: str) -> str:
    env_value = os.getenv(env_name, "").strip()
    if env_value:
        return env_value
    return str(value or "").strip()


@dataclass(frozen=True)
class Settings:
    """Snapshot of user-facing settings. Persistence lives in ConfigController."""

    preferred_provider: str = "local"
    use_cloud_detection: bool = False
    fallback_order: tuple[str, ...] = ("local",)
    cloud_api_url: str = ""
    cloud_api_key: str = ""
    azure_api_url: str = ""
    azure_api_key: str = ""
    deepseek_api_key: str = ""
    request_timeout_s: float = 5.0
    speech_rate: float = 1.0
    speech_volume: float = 1.0
    continuous_speech: bool = True
    speech_interval_ms: int = 5000
    use_remote_tts: bool = False
    cartesia_api_url: str = "https://api.cartesia.ai/tts/bytes"
    cartesia_api_key: str = ""
    cartesia_voice_id: str = "bf0a246a-8642-498a-9950-80c35e9276b5"
    cartesia_language: str = "en"
    cartesia_model: str = "sonic-2"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "Settings":
        detection_cfg = config.get("detection") or {}
        speech_cfg = config.get("speech") or {}

        provider = str(detection_cfg.get("preferred_provider", "local")).strip().lower()
        if provider not in _PROVIDERS:
            provider = "local"

        fallback_value = detection_cfg.get("fallback_order", ["local"])
        if isinstance(fallback_value, (list, tuple)):
            fallback_order = tuple(
                str(item).strip().lower() for item in fallback_value if str(item).strip().lower() in _PROVIDERS
            )
        else:
            fallback_order = ("local",)

        return cls(
            preferred_provider=provider,
            use_cloud_detection=bool(detection_cfg.get("use_cloud_detection", False)),
            fallback_order=fallback_order or ("local",),
            cloud_api_url=_env_or(detection_cfg.get("cloud_api_url"), "ECHOVISION_CLOUD_API_URL"),
            cloud_api_key=_env_or(detection_cfg.get("cloud_api_key"), "ECHOVISION_CLOUD_API_KEY"),
            azure_api_url=_env_or(detection_cfg.get("azure_api_url"), "AZURE_VISION_ENDPOINT"),
            azure_api_key=_env_or(detection_cfg.get("azure_api_key"), "AZURE_VISION_KEY"),
            deepseek_api_key=_env_or(detection_cfg.get("deepseek_api_key"), "DEEPSEEK_API_KEY"),
            request_timeout_s=float(detection_cfg.get("request_timeout_s", 5.0)),
            speech_rate=float(speech_cfg.get("rate", 1.0)),
            speech_volume=float(speech_cfg.get("volume", 1.0)),
            continuous_speech=bool(speech_cfg.get("continuous", True)),
            speech_interval_ms=int(speech_cfg.get("interval_ms", 5000)),
            use_remote_tts=bool(speech_cfg.get("use_remote_tts", False)),
            cartesia_api_url=str(
                speech_cfg.get("cartesia_api_url", "https://api.cartesia.ai/tts/bytes")
            ),
            cartesia_api_key=_env_or(speech_cfg.get("cartesia_api_key"), "CARTESIA_API_KEY"),
            cartesia_voice_id=str(
                speech_cfg.get("cartesia_voice_id", "bf0a246a-8642-498a-9950-80c35e9276b5")
            ),
            cartesia_language=str(speech_cfg.get("cartesia_language", "en")),
            cartesia_model=str(speech_cfg.get("cartesia_model", "sonic-2")),
        )

    @property
    def cloud_configured(self) -> bool:
        return bool(self.cloud_api_url) and not is_placeholder_url(self.cloud_api_url)

    @property
    def azure_configured(self) -> bool:
        return (
            bool(self.azure_api_url)
            and bool(self.azure_api_key)
            and not is_placeholder_url(self.azure_api_url)
        )

    @property
    def remote_tts_configured(self) -> bool:
        return self.use_remote_tts and bool(self.cartesia_api_key)


def load_settings() -> Settings:
    """Build a settings snapshot from the active configuration."""

    from config import ConfigController

    return Settings.from_config(ConfigController.get_instance().get_config())
