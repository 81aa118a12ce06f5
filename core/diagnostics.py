"""Diagnostics routines for the core subsystem."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe() -> DiagnosticResult:
    """Check that the runtime logger is wired to its console handler.

    Returns:
        Diagnostic result indicating logging readiness.
    """

    name = "core"
    from core import logging as core_logging

    runtime_logger = core_logging.logger
    if not any(isinstance(handler, RichHandler) for handler in runtime_logger.handlers):
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Runtime logger has no console handler",
        )
    level = logging.getLevelName(runtime_logger.level)
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Rich logging enabled (level={level})",
    )
