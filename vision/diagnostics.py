"""Diagnostics routines for detection sources."""

from __future__ import annotations

import importlib.util
from typing import Any, Iterable, Mapping

from config.settings import Settings, load_settings
from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe(
    config: Mapping[str, Any] | None = None,
    *,
    available_modules: Iterable[str] | None = None,
) -> DiagnosticResult:
    """Report which detection sources can answer in this environment.

    Local detection needs ``ultralytics``. Remote sources need a real endpoint
    (and a key where the provider requires one).

    Args:
        config: Optional configuration mapping; the live config is used when omitted.
        available_modules: Optional module names treated as installed, for offline runs.

    Returns:
        PASS when at least the local model can load, WARN when only remote
        sources are usable, FAIL when no source is.
    """

    name = "vision"
    settings = load_settings() if config is None else Settings.from_config(config)

    if available_modules is None:
        local_ready = importlib.util.find_spec("ultralytics") is not None
    else:
        local_ready = "ultralytics" in set(available_modules)

    ready: list[str] = []
    if local_ready:
        ready.append("local")
    if settings.cloud_configured:
        ready.append("cloud")
    if settings.azure_configured:
        ready.append("azure")
    if settings.deepseek_api_key and local_ready:
        ready.append("deepseek")

    if not ready:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="No detection source available (install ultralytics or configure a cloud endpoint)",
        )
    if not local_ready:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details=f"Local model unavailable; sources ready: {', '.join(ready)}",
        )
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Sources ready: {', '.join(ready)} (preferred={settings.preferred_provider})",
    )
