"""Runs the EchoVision readiness checks behind ``main.py --diagnostics``."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable

from core.logging import logger as LOGGER
from diagnostics.models import DiagnosticResult, DiagnosticStatus

Check = Callable[[], DiagnosticResult]


def format_results(results: Iterable[DiagnosticResult]) -> str:
    """Report with one line per check and a status tally at the end."""

    results = list(results)
    lines = ["EchoVision diagnostics", "-" * 60]
    for result in results:
        lines.append(f"[{result.status.value}] {result.name}: {result.details}")
    lines.append("-" * 60)
    tally = Counter(result.status for result in results)
    lines.append(", ".join(f"{tally[status]} {status.value}" for status in DiagnosticStatus))
    return "\n".join(lines)


def exit_code(results: Iterable[DiagnosticResult]) -> int:
    """1 when any check failed; warnings still let the app start."""

    return 1 if any(result.status is DiagnosticStatus.FAIL for result in results) else 0


def run_diagnostics(checks: Iterable[Check]) -> list[DiagnosticResult]:
    """Run every check; one that raises is reported as FAIL and the rest still run."""

    results: list[DiagnosticResult] = []
    for check in checks:
        try:
            result = check()
        except Exception as exc:  # noqa: BLE001 - remaining checks still run
            LOGGER.exception("[DIAG] Check failed: %s", check)
            result = DiagnosticResult(
                name=getattr(check, "__name__", "unnamed_check"),
                status=DiagnosticStatus.FAIL,
                details=f"Check raised exception: {exc}",
            )
        results.append(result)
    return results
