from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from dms_reporter.config import RunConfig

from . import page_selectors
from .browser import VIEWPORT
from .errors import ReportCenterTimeout
from .interactions import CLICK_CSS_JS, JsFallback, Strategy, find_first, first_match
from .json_logger import JsonLogger, log_event
from .models import NotFound, ReportTabHandle

TRIGGER_RETRY_INTERVAL_S = 5.0
INTERSTITIAL_STEP_DELAY_S = 1.0
DOCUMENT_READY_TIMEOUT_MS = 30_000
ROOT_CONTAINER_TIMEOUT_MS = 10_000

Sleep = Callable[[float], Awaitable[None]]

CALL_SHOW_REPORT_CENTER_JS = """(fnName) => {
    if (typeof window[fnName] === 'function') { window[fnName](); return true; }
    return false;
}"""

TRIGGERS = (
    JsFallback("show_report_center_fn", CALL_SHOW_REPORT_CENTER_JS, page_selectors.REPORT_CENTER_FUNCTION),
    JsFallback("onclick_attribute", CLICK_CSS_JS, page_selectors.REPORT_CENTER_ONCLICK),
    JsFallback("header_nav_position", CLICK_CSS_JS, page_selectors.REPORT_CENTER_HEADER_NAV),
)


def looks_like_interstitial(title: str | None) -> bool:
    if not title:
        return False
    lowered = title.lower()
    return any(marker.lower() in lowered for marker in page_selectors.INTERSTITIAL_TITLE_MARKERS)


async def _trigger_report_center(page: Page, *, logger: JsonLogger) -> str | None:
    attempts = [
        (trigger.name, (lambda t=trigger: page.evaluate(t.script, t.arg)))
        for trigger in TRIGGERS
    ]
    lookup = await first_match(attempts, logger=logger, description="report center trigger")
    return getattr(lookup, "strategy", None)


async def _bypass_interstitial(tab: Page, *, logger: JsonLogger, sleep: Sleep) -> bool:
    """Click through Chromium's certificate/safe-browsing page. Best effort."""

    try:
        details = tab.locator(page_selectors.INTERSTITIAL_DETAILS_BUTTON)
        if await details.count():
            await details.first.click()
            await sleep(INTERSTITIAL_STEP_DELAY_S)
        proceed = tab.locator(page_selectors.INTERSTITIAL_PROCEED_LINK)
        if await proceed.count():
            await proceed.first.click()
            log_event(logger=logger, phase="report_center", message="interstitial bypassed")
            return True
    except Exception as exc:
        log_event(
            logger=logger,
            phase="report_center",
            status="warn",
            message="interstitial bypass click failed (may be suppressed by launch flags)",
            error=str(exc),
        )
        return False

    log_event(
        logger=logger,
        phase="report_center",
        status="warn",
        message="interstitial detected but no proceed affordance found",
    )
    return False


async def _wait_for_report_ui(tab: Page, *, logger: JsonLogger) -> None:
    try:
        await tab.wait_for_load_state("domcontentloaded", timeout=DOCUMENT_READY_TIMEOUT_MS)
    except PlaywrightTimeoutError:
        log_event(
            logger=logger,
            phase="report_center",
            status="warn",
            message="report tab did not reach domcontentloaded; continuing",
        )

    root = await find_first(
        tab,
        [Strategy("root_container", page_selectors.REPORT_ROOT)],
        logger=logger,
        description="report center root",
        timeout_ms=ROOT_CONTAINER_TIMEOUT_MS,
        require_visible=False,
    )
    if isinstance(root, NotFound):
        log_event(
            logger=logger,
            phase="report_center",
            status="warn",
            message="root element taking too long, continuing anyway",
        )


async def open_report_center(
    page: Page,
    config: RunConfig,
    *,
    logger: JsonLogger,
    sleep: Sleep = asyncio.sleep,
) -> ReportTabHandle:
    """Open the Report Center and return a handle to the tab it spawns.

    New-tab detection is a poll against the page count captured before the
    first trigger, not a one-shot ``page`` event subscription.
    """

    context = page.context
    baseline = len(context.pages)
    timeout_s = config.report_center_timeout_ms / 1000
    elapsed = 0.0
    tab: Page | None = None

    log_event(
        logger=logger,
        phase="report_center",
        status="info",
        message="starting report center trigger loop",
        initial_pages=baseline,
        timeout_ms=config.report_center_timeout_ms,
    )

    while elapsed < timeout_s:
        pages = context.pages
        if len(pages) > baseline:
            tab = pages[-1]
            break

        try:
            strategy = await _trigger_report_center(page, logger=logger)
        except Exception as exc:
            strategy = None
            log_event(
                logger=logger,
                phase="report_center",
                status="warn",
                message="trigger attempt failed",
                error=str(exc),
            )
        log_event(
            logger=logger,
            phase="report_center",
            status="info",
            message="trigger attempted",
            strategy=strategy,
            elapsed_s=elapsed,
        )
        await sleep(TRIGGER_RETRY_INTERVAL_S)
        elapsed += TRIGGER_RETRY_INTERVAL_S

    if tab is None:
        pages = context.pages
        if len(pages) <= baseline:
            log_event(
                logger=logger,
                phase="report_center",
                status="error",
                message="report center tab never appeared",
                timeout_ms=config.report_center_timeout_ms,
            )
            raise ReportCenterTimeout(config.report_center_timeout_ms)
        tab = pages[-1]

    title = ""
    try:
        title = await tab.title()
    except Exception as exc:
        log_event(logger=logger, phase="report_center", status="warn", message="unable to read tab title", error=str(exc))

    log_event(
        logger=logger,
        phase="report_center",
        message="new tab detected",
        url=tab.url,
        title=title,
    )

    bypassed = False
    if looks_like_interstitial(title):
        log_event(
            logger=logger,
            phase="report_center",
            status="warn",
            message="security warning page detected; attempting bypass",
            title=title,
        )
        bypassed = await _bypass_interstitial(tab, logger=logger, sleep=sleep)

    await _wait_for_report_ui(tab, logger=logger)
    await tab.set_viewport_size(VIEWPORT)

    log_event(logger=logger, phase="report_center", message="switched to report page", url=tab.url)
    return ReportTabHandle(page=tab, url=tab.url, title=title, bypassed_interstitial=bypassed)
