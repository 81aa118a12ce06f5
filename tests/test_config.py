"""Tests for configuration loading, settings and diagnostics probes."""

from __future__ import annotations

import logging

import pytest
import yaml

from config.controller import ConfigController
from config.diagnostics import probe as config_probe
from config.settings import Settings, is_placeholder_url
from core.diagnostics import probe as core_probe
from core.logging import logger, set_level
from diagnostics.models import DiagnosticResult, DiagnosticStatus
from diagnostics.runner import exit_code, format_results, run_diagnostics
from interaction.diagnostics import probe as speech_probe
from vision.diagnostics import probe as vision_probe


@pytest.fixture
def controller(tmp_path, monkeypatch) -> ConfigController:
    monkeypatch.setattr(ConfigController, "_instance", None)
    (tmp_path / "default.yaml").write_text(
        yaml.safe_dump(
            {
                "logging_level": "INFO",
                "detection": {"preferred_provider": "local", "confidence_threshold": 0.35},
                "speech": {"rate": 1.0},
            }
        ),
        encoding="utf-8",
    )
    return ConfigController(config_dir=tmp_path)


def test_controller_is_a_singleton(controller: ConfigController) -> None:
    assert ConfigController.get_instance() is controller
    with pytest.raises(RuntimeError):
        ConfigController()


def test_override_file_is_deep_merged(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(ConfigController, "_instance", None)
    (tmp_path / "default.yaml").write_text(
        "detection:\n  preferred_provider: local\n  confidence_threshold: 0.35\n", encoding="utf-8"
    )
    (tmp_path / "override.yaml").write_text("detection:\n  preferred_provider: azure\n", encoding="utf-8")

    config = ConfigController(config_dir=tmp_path).get_config()

    assert config["detection"] == {"preferred_provider": "azure", "confidence_threshold": 0.35}
    assert config["controller"] == {}


def test_legacy_flat_keys_fold_into_sections(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(ConfigController, "_instance", None)
    (tmp_path / "default.yaml").write_text(
        "speechRate: 1.3\nuseCloudDetection: true\nspeech:\n  volume: 0.5\n", encoding="utf-8"
    )

    config = ConfigController(config_dir=tmp_path).get_config()

    assert config["speech"] == {"volume": 0.5, "rate": 1.3}
    assert config["detection"]["use_cloud_detection"] is True
    assert "speechRate" not in config


def test_config_dir_from_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(ConfigController, "_instance", None)
    monkeypatch.setenv("ECHOVISION_CONFIG_DIR", str(tmp_path))
    (tmp_path / "default.yaml").write_text("logging_level: DEBUG\n", encoding="utf-8")

    assert ConfigController.get_instance().get_config()["logging_level"] == "DEBUG"


def test_update_section_persists_and_archives(controller: ConfigController, tmp_path) -> None:
    controller.update_section("speech", {"rate": 1.5})
    controller.update_section("speech", {"volume": 0.7})

    saved = yaml.safe_load((tmp_path / "override.yaml").read_text(encoding="utf-8"))
    assert saved["speech"] == {"rate": 1.5, "volume": 0.7}
    assert (tmp_path / "override_0001.yaml").exists()
    assert controller.get_config()["detection"]["confidence_threshold"] == 0.35


def test_shipped_defaults_load() -> None:
    from config.controller import DEFAULT_CONFIG_DIR

    config = yaml.safe_load((DEFAULT_CONFIG_DIR / "default.yaml").read_text(encoding="utf-8"))
    settings = Settings.from_config(config)

    assert settings.preferred_provider == "local"
    assert settings.fallback_order == ("local",)
    assert not settings.cloud_configured
    assert not settings.azure_configured


def test_settings_validate_provider_and_fallback_order(monkeypatch) -> None:
    for name in ("ECHOVISION_CLOUD_API_URL", "AZURE_VISION_ENDPOINT", "AZURE_VISION_KEY"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_config(
        {
            "detection": {"preferred_provider": "Bogus", "fallback_order": ["azure", "nope", "LOCAL"]},
            "speech": {"interval_ms": 3000, "continuous": False},
        }
    )

    assert settings.preferred_provider == "local"
    assert settings.fallback_order == ("azure", "local")
    assert settings.speech_interval_ms == 3000
    assert not settings.continuous_speech


def test_environment_overrides_endpoints_and_keys(monkeypatch) -> None:
    monkeypatch.setenv("ECHOVISION_CLOUD_API_URL", "https://vision.example.com/detect")
    monkeypatch.setenv("AZURE_VISION_ENDPOINT", "https://eastus.example.com/analyze")
    monkeypatch.setenv("AZURE_VISION_KEY", "secret")
    monkeypatch.setenv("CARTESIA_API_KEY", "tts-key")

    settings = Settings.from_config(
        {
            "detection": {"cloud_api_url": "https://your-cloud-api.com/detect"},
            "speech": {"use_remote_tts": True},
        }
    )

    assert settings.cloud_configured
    assert settings.azure_configured
    assert settings.remote_tts_configured


def test_placeholder_urls() -> None:
    assert is_placeholder_url("https://your-cloud-api.com/detect")
    assert is_placeholder_url("https://YOUR_ENDPOINT/vision")
    assert not is_placeholder_url("https://vision.example.com")


def test_config_probe_offline(tmp_path) -> None:
    """Config probe should pass with a default config present."""

    (tmp_path / "default.yaml").write_text("detection: {}\nspeech: {}\n", encoding="utf-8")

    result = config_probe(base_dir=tmp_path)
    assert result.status is DiagnosticStatus.PASS


def test_config_probe_flags_missing_or_partial_config(tmp_path) -> None:
    assert config_probe(base_dir=tmp_path).status is DiagnosticStatus.FAIL

    (tmp_path / "default.yaml").write_text("{}", encoding="utf-8")
    assert config_probe(base_dir=tmp_path).status is DiagnosticStatus.WARN

    (tmp_path / "default.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    assert config_probe(base_dir=tmp_path).status is DiagnosticStatus.FAIL


def test_core_probe() -> None:
    """Core probe should pass when logging is available."""

    result = core_probe()
    assert result.status is DiagnosticStatus.PASS


def test_set_level() -> None:
    previous = logger.level
    try:
        assert set_level("debug") == logging.DEBUG
        assert set_level("not-a-level") == logging.INFO
    finally:
        logger.setLevel(previous)


def test_vision_probe_reports_available_sources(monkeypatch) -> None:
    for name in ("ECHOVISION_CLOUD_API_URL", "AZURE_VISION_ENDPOINT", "AZURE_VISION_KEY"):
        monkeypatch.delenv(name, raising=False)

    assert vision_probe(config={}, available_modules={"ultralytics"}).status is DiagnosticStatus.PASS
    assert vision_probe(config={}, available_modules=set()).status is DiagnosticStatus.FAIL

    remote_only = vision_probe(
        config={"detection": {"cloud_api_url": "https://vision.example.com/detect"}},
        available_modules=set(),
    )
    assert remote_only.status is DiagnosticStatus.WARN
    assert "cloud" in remote_only.details


def test_speech_probe_offline() -> None:
    assert speech_probe(available_modules={"pyttsx3", "pyaudio"}).status is DiagnosticStatus.PASS
    partial = speech_probe(available_modules={"pyttsx3"})
    assert partial.status is DiagnosticStatus.WARN
    assert "pyaudio" in partial.details


def test_runner_turns_check_exceptions_into_failures() -> None:
    def broken_camera() -> DiagnosticResult:
        raise RuntimeError("boom")

    def healthy_speech() -> DiagnosticResult:
        return DiagnosticResult(name="speech", status=DiagnosticStatus.PASS, details="fine")

    results = run_diagnostics([broken_camera, healthy_speech])

    assert [result.status for result in results] == [DiagnosticStatus.FAIL, DiagnosticStatus.PASS]
    assert results[0].name == "broken_camera"
    report = format_results(results)
    assert report.startswith("EchoVision diagnostics")
    assert "[FAIL] broken_camera: Check raised exception: boom" in report
    assert "[PASS] speech: fine" in report
    assert report.endswith("1 PASS, 0 WARN, 1 FAIL")
    assert exit_code(results) == 1


def test_warnings_alone_do_not_fail_diagnostics() -> None:
    results = [
        DiagnosticResult(name="speech", status=DiagnosticStatus.WARN, details="local voice only"),
        DiagnosticResult(name="config", status=DiagnosticStatus.PASS, details="ok"),
    ]

    assert exit_code(results) == 0
    assert exit_code([]) == 0
