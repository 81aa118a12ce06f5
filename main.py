"""Command-line entry point for the EchoVision guidance runtime."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
import tempfile

from config import ConfigController
from core.app import AppConfig, run
from core.logging import enable_file_logging, log_error, logger, set_level


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Raw command-line arguments.

    Returns:
        Parsed arguments namespace.
    """

    parser = argparse.ArgumentParser(
        description="Describe obstacles in a camera stream and speak navigation guidance."
    )
    parser.add_argument("--image", type=Path, help="Image file or directory replayed as the camera.")
    parser.add_argument("--camera", action="store_true", help="Capture from Picamera2.")
    parser.add_argument("--cycles", type=int, default=None, help="Stop after N frame cycles.")
    parser.add_argument(
        "--provider",
        choices=("local", "cloud", "azure", "deepseek"),
        help="Override the preferred detection provider.",
    )
    parser.add_argument("--no-voice", action="store_true", help="Log guidance instead of speaking it.")
    parser.add_argument("--log-level", type=str, default=None, help="Override the configured log level.")
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Run diagnostics probes and exit.",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="With --diagnostics, probe a temporary config instead of the live one.",
    )
    return parser.parse_args(argv)


def run_diagnostics_cli(*, offline: bool) -> int:
    from config.diagnostics import probe as config_probe
    from core.diagnostics import probe as core_probe
    from diagnostics.runner import exit_code, format_results, run_diagnostics
    from interaction.diagnostics import probe as speech_probe
    from vision.diagnostics import probe as vision_probe

    if offline:
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_dir = Path(tmp_dir)
            (config_dir / "default.yaml").write_text(
                "detection: {}\nspeech: {}\n", encoding="utf-8"
            )
            results = run_diagnostics(
                [
                    lambda: config_probe(base_dir=config_dir),
                    core_probe,
                    lambda: vision_probe(config={}),
                    lambda: speech_probe(available_modules=set()),
                ]
            )
    else:
        results = run_diagnostics([config_probe, core_probe, vision_probe, speech_probe])
    print(format_results(results))
    return exit_code(results)


def main(argv: list[str] | None = None) -> int:
    """Application entry point.

    Args:
        argv: Optional list of command-line arguments.

    Returns:
        Process exit code.
    """

    if argv is None:
        argv = sys.argv[1:]

    args = parse_args(argv)
    config = ConfigController.get_instance().get_config()
    set_level(args.log_level or str(config.get("logging_level", "INFO")))

    if args.diagnostics:
        return run_diagnostics_cli(offline=args.offline)

    if not args.camera and args.image is None:
        log_error("Either --image or --camera is required")
        return 2

    if config.get("file_logging_enabled", False):
        log_file_path = Path(str(config.get("log_file", "~/.echovision/logs/echovision.log"))).expanduser()
        enable_file_logging(log_file_path)
        logger.info("Writing logs to %s", log_file_path)

    app_config = AppConfig(
        image_path=args.image,
        use_camera=args.camera,
        max_cycles=args.cycles,
        voice=not args.no_voice,
        preferred_provider=args.provider,
    )
    try:
        return run(app_config)
    except (OSError, RuntimeError, ValueError) as exc:
        logger.exception("Session failed to start: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
