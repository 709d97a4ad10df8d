from __future__ import annotations

import asyncio
import contextlib
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable

from playwright.async_api import Browser, BrowserContext, async_playwright

from dms_reporter.common.date_utils import get_report_date, get_timezone
from dms_reporter.config import RunConfig

from .browser import launch_browser, new_report_context
from .captcha import OcrReader, TesseractDigitReader
from .download_watcher import ensure_download_dir, remove_download, wait_for_completed_file
from .json_logger import JsonLogger, log_event, timed_event
from .login import establish_session
from .models import AttemptOutcome, DownloadResult, Failure, SequenceReport, Success
from .notifications import EmailNotifier, Notifier
from .report_center import open_report_center
from .report_config import configure_and_export

Sleep = Callable[[float], Awaitable[None]]


async def _capture_failure_screenshot(
    context: BrowserContext | None,
    *,
    target: Path,
    logger: JsonLogger,
) -> Path | None:
    if context is None or not context.pages:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="warn",
            message="no open page to screenshot",
        )
        return None

    active_page = context.pages[-1]
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        await active_page.screenshot(path=str(target), full_page=True)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="warn",
            message="unable to capture failure screenshot",
            error=str(exc),
        )
        return None

    log_event(logger=logger, phase="orchestrator", message="saved failure screenshot", screenshot=str(target))
    return target


async def _notify(
    send: Callable[..., bool],
    *,
    logger: JsonLogger,
    kind: str,
    **kwargs: Any,
) -> bool:
    try:
        sent = await asyncio.to_thread(send, **kwargs)
    except Exception as exc:
        log_event(
            logger=logger,
            phase="notifications",
            status="error",
            message=f"{kind} notification failed",
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        return False
    log_event(
        logger=logger,
        phase="notifications",
        status="ok" if sent else "warn",
        message=f"{kind} notification sent" if sent else f"{kind} notification skipped",
    )
    return sent


async def _close_browser(browser: Browser | None, *, logger: JsonLogger) -> None:
    if browser is None:
        return
    try:
        await browser.close()
    except Exception as exc:
        log_event(
            logger=logger,
            phase="cleanup",
            status="warn",
            message="browser close failed",
            error=str(exc),
        )
        return
    log_event(logger=logger, phase="cleanup", message="browser closed")


async def _run_workflow(
    browser_holder: dict[str, Any],
    playwright: Any,
    config: RunConfig,
    report_date: date,
    *,
    logger: JsonLogger,
    ocr: OcrReader,
    sleep: Sleep,
) -> tuple[DownloadResult, SequenceReport]:
    browser = await launch_browser(playwright=playwright, config=config, logger=logger)
    browser_holder["browser"] = browser
    context = await new_report_context(browser, config=config, logger=logger)
    browser_holder["context"] = context
    page = await context.new_page()

    with timed_event(logger=logger, phase="login", message="establish session"):
        session = await establish_session(page, config, ocr=ocr, logger=logger, sleep=sleep)

    with timed_event(logger=logger, phase="report_center", message="open report center"):
        handle = await open_report_center(session.page, config, logger=logger, sleep=sleep)

    ensure_download_dir(config.download_dir, clear=config.clear_stale_downloads, logger=logger)
    sequence = await configure_and_export(handle, config, report_date, logger=logger, sleep=sleep)

    with timed_event(logger=logger, phase="download", message="wait for report file"):
        result = await wait_for_completed_file(
            config.download_dir,
            config.download_timeout_ms,
            logger=logger,
            sleep=sleep,
        )
    return result, sequence


async def run_report(
    config: RunConfig,
    *,
    logger: JsonLogger,
    ocr: OcrReader | None = None,
    notifier: Notifier | None = None,
    playwright_factory: Callable[[], Any] = async_playwright,
    sleep: Sleep = asyncio.sleep,
    report_date: date | None = None,
    keep_download: bool = False,
) -> AttemptOutcome:
    """Run one end-to-end attempt and return its outcome.

    Sends exactly one notification (success or failure) and always closes
    the browser, even when notifying fails.
    """

    ocr = ocr or TesseractDigitReader()
    notifier = notifier or EmailNotifier(config)
    report_date = report_date or get_report_date(tz=get_timezone(config.timezone))
    holder: dict[str, Any] = {"browser": None, "context": None}

    log_event(
        logger=logger,
        phase="init",
        message="Started GPS report automation",
        report_date=report_date,
        download_dir=str(config.download_dir),
    )

    async with contextlib.AsyncExitStack() as stack:
        try:
            try:
                playwright = await stack.enter_async_context(playwright_factory())
                result, sequence = await _run_workflow(
                    holder,
                    playwright,
                    config,
                    report_date,
                    logger=logger,
                    ocr=ocr,
                    sleep=sleep,
                )
            except Exception as exc:
                log_event(
                    logger=logger,
                    phase="orchestrator",
                    status="error",
                    message="PROCESS FAILED",
                    error=str(exc),
                    exc_type=type(exc).__name__,
                )
                screenshot = await _capture_failure_screenshot(
                    holder["context"], target=config.error_screenshot_path, logger=logger
                )
                await _notify(
                    notifier.notify_failure,
                    logger=logger,
                    kind="failure",
                    context={
                        "error_message": str(exc),
                        "error_type": type(exc).__name__,
                        "run_id": logger.run_id,
                    },
                    screenshot=screenshot,
                )
                return Failure(
                    error_message=str(exc),
                    screenshot_path=screenshot,
                    error_type=type(exc).__name__,
                )

            sent = await _notify(
                notifier.notify_success,
                logger=logger,
                kind="success",
                context={
                    "report_date": report_date.isoformat(),
                    "window_start": config.day_start[:5],
                    "window_end": config.day_end[:5],
                    "missing_alerts": sequence.missing_alerts,
                    "run_id": logger.run_id,
                },
                attachment=result.path,
            )

            if keep_download:
                log_event(logger=logger, phase="cleanup", message="keeping downloaded file", path=str(result.path))
            elif not sent and config.notifications_enabled:
                log_event(
                    logger=logger,
                    phase="cleanup",
                    status="warn",
                    message="notification not delivered; keeping downloaded file",
                    path=str(result.path),
                )
            else:
                try:
                    remove_download(result, logger=logger)
                except OSError as exc:
                    log_event(
                        logger=logger,
                        phase="cleanup",
                        status="warn",
                        message="unable to delete downloaded file",
                        path=str(result.path),
                        error=str(exc),
                    )

            log_event(
                logger=logger,
                phase="orchestrator",
                message="run complete",
                report_date=report_date,
                file=result.name,
                selected_alerts=sequence.selected_alerts,
            )
            return Success(report_date=report_date, attachment=result.path)
        finally:
            await _close_browser(holder["browser"], logger=logger)
