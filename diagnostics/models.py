"""Result types shared by the camera, detection, speech and config checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DiagnosticStatus(str, Enum):
    """PASS is ready, WARN runs degraded (e.g. local voice only), FAIL blocks startup."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


@dataclass(frozen=True)
class DiagnosticResult:
    """Outcome of one EchoVision readiness check."""

    name: str
    status: DiagnosticStatus
    details: str
