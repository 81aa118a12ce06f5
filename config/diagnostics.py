"""Diagnostics routines for the configuration subsystem."""

from __future__ import annotations

from pathlib import Path

import yaml

from config.controller import DEFAULT_CONFIG_DIR
from diagnostics.models import DiagnosticResult, DiagnosticStatus


REQUIRED_SECTIONS = ("detection", "speech")


def probe(base_dir: Path | None = None) -> DiagnosticResult:
    """Validate that the default config exists, parses, and has required sections.

    Args:
        base_dir: Optional config directory for offline testing.

    Returns:
        Diagnostic result indicating config readiness.
    """

    name = "config"
    config_dir = base_dir if base_dir is not None else DEFAULT_CONFIG_DIR
    default_config = config_dir / "default.yaml"
    override_config = config_dir / "override.yaml"

    if not default_config.exists():
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Missing default config at {default_config}",
        )

    try:
        loaded = yaml.safe_load(default_config.read_text(encoding="utf-8")) or {}
        if override_config.exists():
            yaml.safe_load(override_config.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details=f"Config unreadable: {exc}",
        )

    if not isinstance(loaded, dict):
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Default config is not a mapping",
        )

    missing = [section for section in REQUIRED_SECTIONS if section not in loaded]
    if missing:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details=f"Config sections missing (defaults apply): {', '.join(missing)}",
        )

    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Config files readable at {config_dir}",
    )
