from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from dms_reporter.config import ConfigError, RunConfig, load_run_config

from .json_logger import JsonLogger, get_logger, log_event, new_run_id


# Exit code mapping
class ExitCodes:
    OK = 0                       # report downloaded and notified
    RUN_FAILED = 1               # login/navigation/element/download failure
    BAD_CONFIG = 2               # missing or invalid environment


def configure_logging(logger: JsonLogger) -> None:
    """Hook to extend logging configuration if needed."""

    _ = logger


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {parsed}")
    return parsed


def _apply_cli_overrides(config: RunConfig, args: argparse.Namespace) -> RunConfig:
    changes = {}
    if getattr(args, "headed", False):
        changes["headless"] = False
    if getattr(args, "max_retries", None) is not None:
        changes["login_max_retries"] = args.max_retries
    return config.with_overrides(**changes) if changes else config


async def _run_async(args: argparse.Namespace, config: RunConfig) -> int:
    from dms_reporter.report_downloader.pipeline import run_report

    run_id = args.run_id or new_run_id()
    logger = get_logger(run_id=run_id, log_file_path=config.json_log_file)
    configure_logging(logger)
    try:
        outcome = await run_report(config, logger=logger, keep_download=args.keep_download)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="pipeline failed with unexpected error",
            extras={"error": str(exc), "exc_type": type(exc).__name__},
        )
        return ExitCodes.RUN_FAILED
    finally:
        logger.close()
    return outcome.exit_code


def _notifications_test(args: argparse.Namespace, config: RunConfig) -> int:
    from dms_reporter.report_downloader.notifications import EmailNotifier

    if not config.notifications_enabled:
        print("[notifications] EMAIL_FROM/EMAIL_PASSWORD are not set; nothing to test")
        return ExitCodes.BAD_CONFIG
    run_id = args.run_id or new_run_id()
    try:
        EmailNotifier(config).notify_test(run_id=run_id)
    except Exception as exc:
        print(f"[notifications] send failed: {exc}")
        return ExitCodes.RUN_FAILED
    print(f"[notifications] test message sent to {', '.join(config.recipients)}")
    return ExitCodes.OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dms_reporter")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Download today's DMS report and email it")
    run_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")
    run_parser.add_argument("--headed", action="store_true", help="Show the browser window")
    run_parser.add_argument(
        "--max-retries",
        dest="max_retries",
        type=_positive_int,
        default=None,
        help="Override LOGIN_MAX_RETRIES for this run",
    )
    run_parser.add_argument(
        "--keep-download",
        dest="keep_download",
        action="store_true",
        help="Leave the downloaded report on disk after notifying",
    )

    notifications_parser = subparsers.add_parser("notifications", help="Notification diagnostics")
    notifications_sub = notifications_parser.add_subparsers(dest="notifications_command", required=True)
    notif_test_parser = notifications_sub.add_parser("test", help="Send a test email with the configured SMTP settings")
    notif_test_parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")

    return parser


def main(argv: Optional[List[str]] = None, *, config: RunConfig | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        run_config = config or load_run_config()
    except ConfigError as exc:
        print(f"[config] {exc}")
        return ExitCodes.BAD_CONFIG
    run_config = _apply_cli_overrides(run_config, args)

    if args.command == "run":
        return asyncio.run(_run_async(args, run_config))

    if args.command == "notifications" and args.notifications_command == "test":
        return _notifications_test(args, run_config)

    parser.error("Unknown command")
    return ExitCodes.RUN_FAILED


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
