"""Logging utilities for the detection and speech runtime."""

from __future__ import annotations

import atexit
import logging
import logging.handlers
from pathlib import Path
import queue
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text


console = Console(stderr=True)


def setup_logging() -> logging.Logger:
    logger = logging.getLogger("echovision")
    logger.setLevel(logging.INFO)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, console=console)
        formatter = logging.Formatter("%(message)s", datefmt="[%X]")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


logger = setup_logging()

_queue_listener: logging.handlers.QueueListener | None = None
_queue_handlers: list[logging.Handler] = []
_file_log_path: Path | None = None
_atexit_registered = False


def set_level(level_name: str) -> int:
    """Apply a level name (e.g. ``"DEBUG"``) to the runtime logger."""

    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    return level


def _shutdown_file_logging() -> None:
    global _queue_listener

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


def _remove_queue_handlers() -> None:
    for handler in _queue_handlers:
        for target_logger in (logging.getLogger(), logger):
            if handler in target_logger.handlers:
                target_logger.removeHandler(handler)
    _queue_handlers.clear()


def enable_file_logging(log_path: Path) -> None:
    """Enable background file logging to the supplied log path."""

    global _queue_listener, _file_log_path, _atexit_registered

    log_path = log_path.expanduser()
    if _file_log_path == log_path and _queue_listener is not None:
        return

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None

    _remove_queue_handlers()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    file_handler.setFormatter(formatter)

    log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(logging.INFO)

    root_logger = logging.getLogger()
    root_logger.addHandler(queue_handler)
    logger.addHandler(queue_handler)
    _queue_handlers.append(queue_handler)

    _queue_listener = logging.handlers.QueueListener(
        log_queue,
        file_handler,
        respect_handler_level=True,
    )
    _queue_listener.start()

    _file_log_path = log_path

    if not _atexit_registered:
        atexit.register(_shutdown_file_logging)
        _atexit_registered = True


def _format_text(message: str, style: str) -> Any:
    return Text(message, style=style)


def log_error(message: str) -> None:
    logger.error(_format_text(message, style="bold red"))


def log_info(message: str, style: str = "bold white") -> None:
    logger.info(_format_text(message, style=style))


def log_warning(message: str) -> None:
    logger.warning(_format_text(message, style="bold yellow"))


_PRIORITY_STYLES = {
    "high": "bold red",
    "medium": "bold yellow",
    "low": "dim",
}


def log_instruction(text: str, priority: str, source: str) -> None:
    """Log a generated navigation instruction with a priority color."""

    style = _PRIORITY_STYLES.get(priority, "bold white")
    logger.info(_format_text(f"🧭 [{priority.upper()}] {text} (via {source})", style=style))


def log_notification(title: str, message: str, severity: str) -> None:
    """Log a user-facing notification raised by the runtime."""

    style = "bold red" if severity in {"critical", "high", "error"} else "bold cyan"
    logger.info(_format_text(f"🔔 {title}: {message}", style=style))
