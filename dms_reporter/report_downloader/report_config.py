"""Report Center configuration: the fixed DMS export sequence.

Stages run strictly in order and are never skipped:

1. select the DMS report
2. pick the drowsiness alert types
3. set the daily time window
4. search, then wait out report generation
5. export to Excel
6. confirm the save/download popup

A stage that cannot find its control raises ``ElementNotFound`` and aborts
the run; only individual alert labels are optional.
"""
from __future__ import annotations

import asyncio
from datetime import date
from typing import Awaitable, Callable

from playwright.async_api import Page

from dms_reporter.common.date_utils import daily_window
from dms_reporter.config import RunConfig

from . import page_selectors
from .errors import ElementNotFound
from .interactions import (
    CLICK_BY_TEXT_JS,
    CLICK_CSS_JS,
    CLICK_TEST_ID_PARENT_JS,
    Click,
    JsFallback,
    first_match,
    locate_and_act,
    strategies,
)
from .json_logger import JsonLogger, log_event, timed_event
from .models import Found, ReportTabHandle, SequenceReport

DMS_SELECTOR_TIMEOUT_MS = 5_000
DROPDOWN_SETTLE_S = 2.0
OPTION_SETTLE_S = 1.0
BETWEEN_OPTIONS_S = 0.5
BEFORE_SEARCH_S = 2.0
SLOW_CONTROL_TIMEOUT_MS = 60_000
EXPORT_ATTEMPTS = 3
EXPORT_RETRY_PAUSE_S = 5.0

Sleep = Callable[[float], Awaitable[None]]


class ReportSequencer:
    def __init__(
        self,
        handle: ReportTabHandle,
        config: RunConfig,
        *,
        logger: JsonLogger,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.page: Page = handle.page
        self.config = config
        self.logger = logger.bind(component="report_config")
        self.sleep = sleep

    def _log(self, status: str, message: str, **extras) -> None:
        log_event(logger=self.logger, phase="report_config", status=status, message=message, **extras)

    async def run(self, report_date: date) -> SequenceReport:
        start, end = daily_window(
            report_date, start=self.config.day_start, end=self.config.day_end
        )
        report = SequenceReport(start=start, end=end)

        with timed_event(logger=self.logger, phase="report_config", message="select report type"):
            await self.select_report_type()
        report.stages.append("select_report_type")

        with timed_event(logger=self.logger, phase="report_config", message="choose alert filters"):
            selected, missing = await self.choose_alert_filters()
        report.selected_alerts, report.missing_alerts = selected, missing
        report.stages.append("choose_alert_filters")

        with timed_event(logger=self.logger, phase="report_config", message="set time range"):
            await self.set_time_range(start, end)
        report.stages.append("set_time_range")

        with timed_event(logger=self.logger, phase="report_config", message="trigger search"):
            await self.trigger_search()
        report.stages.append("trigger_search")

        with timed_event(logger=self.logger, phase="report_config", message="trigger export"):
            await self.trigger_export()
        report.stages.append("trigger_export")

        with timed_event(logger=self.logger, phase="report_config", message="confirm save"):
            await self.confirm_save()
        report.stages.append("confirm_save")

        return report

    # ── 1. report type ──────────────────────────────────────────────────────

    async def select_report_type(self) -> Found:
        return await locate_and_act(
            self.page,
            strategies(page_selectors.DMS_REPORT_BUTTONS),
            Click(),
            logger=self.logger,
            description="DMS report button",
            timeout_ms=DMS_SELECTOR_TIMEOUT_MS,
            fallbacks=(
                JsFallback("button_text", CLICK_BY_TEXT_JS, ["button", page_selectors.DMS_REPORT_LABEL]),
                JsFallback("face_icon_parent", CLICK_TEST_ID_PARENT_JS, "FaceIcon"),
            ),
        )

    # ── 2. alert filters ────────────────────────────────────────────────────

    async def _click_option(self, label: str) -> bool:
        options = self.page.locator(page_selectors.alert_option(label))
        if not await options.count():
            return False
        await options.first.click()
        return True

    async def select_alert(self, label: str) -> str | None:
        """Click ``label`` in the open dropdown, or its alternate-language label."""

        attempts = [(label, lambda: self._click_option(label))]
        fallback = self.config.alert_label_fallbacks.get(label)
        if fallback:
            attempts.append((fallback, lambda: self._click_option(fallback)))

        lookup = await first_match(attempts, logger=self.logger, description=f"alert option {label}")
        if isinstance(lookup, Found):
            self._log("ok", "alert type selected", label=lookup.strategy)
            return lookup.strategy

        self._log(
            "warn",
            "alert option not found; report may contain fewer alert types",
            label=label,
            fallback=fallback,
        )
        return None

    async def choose_alert_filters(self) -> tuple[list[str], list[str]]:
        await self.sleep(DROPDOWN_SETTLE_S)
        await locate_and_act(
            self.page,
            strategies(page_selectors.ALERT_TYPE_DROPDOWN),
            Click(),
            logger=self.logger,
            description="Alert Type Dropdown",
            timeout_ms=self.config.step_timeout_ms,
        )
        await self.sleep(OPTION_SETTLE_S)

        selected: list[str] = []
        missing: list[str] = []
        for index, label in enumerate(self.config.alert_labels):
            if index:
                await self.sleep(BETWEEN_OPTIONS_S)
            chosen = await self.select_alert(label)
            if chosen:
                selected.append(chosen)
            else:
                missing.append(label)

        await self.page.keyboard.press("Escape")
        return selected, missing

    # ── 3. time range ───────────────────────────────────────────────────────

    async def _replace_input(self, candidates, value: str, *, description: str) -> None:
        await locate_and_act(
            self.page,
            strategies(candidates),
            Click(),
            logger=self.logger,
            description=description,
            timeout_ms=self.config.step_timeout_ms,
        )
        keyboard = self.page.keyboard
        await keyboard.press("Control+A")
        await keyboard.press("Backspace")
        await keyboard.type(value)
        await keyboard.press("Enter")
        self._log("ok", "date input set", target=description, value=value)

    async def set_time_range(self, start: str, end: str) -> None:
        self._log("info", "setting time range", start=start, end=end)
        await self._replace_input(page_selectors.START_DATE_INPUT, start, description="Start Date Input")
        await self._replace_input(page_selectors.END_DATE_INPUT, end, description="End Date Input")

    # ── 4. search ───────────────────────────────────────────────────────────

    async def trigger_search(self) -> Found:
        await self.sleep(BEFORE_SEARCH_S)
        found = await locate_and_act(
            self.page,
            strategies(page_selectors.SEARCH_BUTTONS),
            Click(),
            logger=self.logger,
            description="Search Button",
            timeout_ms=SLOW_CONTROL_TIMEOUT_MS,
            fallbacks=(
                JsFallback("search_icon_button", CLICK_TEST_ID_PARENT_JS, page_selectors.SEARCH_ICON_TEST_ID),
                JsFallback("search_css_class", CLICK_CSS_JS, page_selectors.SEARCH_BUTTON_CLASS),
            ),
            scripts_first=True,
        )
        # No completion signal exists for report generation; this fixed wait
        # dominates run latency.
        wait_ms = self.config.report_generation_wait_ms
        self._log("info", "waiting for report generation", wait_ms=wait_ms)
        await self.sleep(wait_ms / 1000)
        return found

    # ── 5. export ───────────────────────────────────────────────────────────

    async def trigger_export(self) -> Found:
        for attempt in range(1, EXPORT_ATTEMPTS + 1):
            try:
                found = await locate_and_act(
                    self.page,
                    strategies(page_selectors.EXPORT_BUTTONS),
                    Click(),
                    logger=self.logger,
                    description="Excel Button",
                    timeout_ms=self.config.step_timeout_ms,
                    fallbacks=(
                        JsFallback("excel_text", CLICK_BY_TEXT_JS, ["button", page_selectors.EXPORT_LABEL]),
                        JsFallback(
                            "success_button",
                            CLICK_CSS_JS,
                            f"button.{page_selectors.EXPORT_SUCCESS_CLASS}",
                        ),
                    ),
                    scripts_first=True,
                )
            except ElementNotFound:
                self._log("warn", "export button not ready", attempt=attempt)
                if attempt < EXPORT_ATTEMPTS:
                    await self.sleep(EXPORT_RETRY_PAUSE_S)
                continue
            self._log("ok", "export clicked", attempt=attempt, strategy=found.strategy)
            return found

        raise ElementNotFound("Excel Button (after multiple attempts)")

    # ── 6. save ─────────────────────────────────────────────────────────────

    async def confirm_save(self) -> Found:
        wait_ms = self.config.save_dialog_wait_ms
        self._log("info", "waiting for save/download dialog", wait_ms=wait_ms)
        await self.sleep(wait_ms / 1000)
        return await locate_and_act(
            self.page,
            strategies(page_selectors.SAVE_BUTTONS),
            Click(),
            logger=self.logger,
            description="Save Icon (Download)",
            timeout_ms=SLOW_CONTROL_TIMEOUT_MS,
            fallbacks=(JsFallback("save_button_css", CLICK_CSS_JS, page_selectors.SAVE_BUTTON_CSS),),
            scripts_first=True,
        )


async def configure_and_export(
    handle: ReportTabHandle,
    config: RunConfig,
    report_date: date,
    *,
    logger: JsonLogger,
    sleep: Sleep = asyncio.sleep,
) -> SequenceReport:
    return await ReportSequencer(handle, config, logger=logger, sleep=sleep).run(report_date)
