from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable
from urllib.parse import urlparse

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from dms_reporter.config import RunConfig

from . import page_selectors
from .captcha import OcrReader, normalize_code, validate_code
from .errors import CaptchaUnreadable, LoginFailed
from .json_logger import JsonLogger, log_event
from .models import Session

CAPTCHA_RENDER_SETTLE_S = 2.0
SUBMIT_NAVIGATION_TIMEOUT_MS = 5_000

Sleep = Callable[[float], Awaitable[None]]


def is_login_url(url: str | None) -> bool:
    if not url:
        return True
    path = urlparse(url).path or ""
    return page_selectors.LOGIN_PATH_MARKER in path.lower()


async def _read_captcha(
    page: Page,
    *,
    ocr: OcrReader,
    timeout_ms: int,
    sleep: Sleep,
) -> str:
    captcha = page.locator(page_selectors.LOGIN_CAPTCHA_IMAGE).first
    await captcha.wait_for(state="visible", timeout=timeout_ms)
    await sleep(CAPTCHA_RENDER_SETTLE_S)
    image = await captcha.screenshot()
    return normalize_code(await ocr(image))


async def _submit_and_maybe_navigate(page: Page, *, timeout_ms: int) -> bool:
    """Click submit while waiting for a navigation that may never come.

    The portal sometimes updates the page client-side, so a navigation timeout
    is not a failure; the caller judges success by the resulting URL.
    """

    async def _navigation() -> None:
        await page.wait_for_event("framenavigated", timeout=timeout_ms)
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)

    navigation = asyncio.create_task(_navigation())
    try:
        await page.click(page_selectors.LOGIN_SUBMIT)
    except Exception:
        navigation.cancel()
        with contextlib.suppress(asyncio.CancelledError, PlaywrightTimeoutError):
            await navigation
        raise

    try:
        await navigation
    except PlaywrightTimeoutError:
        return False
    return True


async def establish_session(
    page: Page,
    config: RunConfig,
    *,
    ocr: OcrReader,
    logger: JsonLogger,
    sleep: Sleep = asyncio.sleep,
) -> Session:
    """Log in through the CAPTCHA form, retrying up to ``login_max_retries`` times."""

    max_retries = config.login_max_retries

    for attempt in range(1, max_retries + 1):
        def _log(status: str, message: str, **extras) -> None:
            log_event(
                logger=logger,
                phase="login",
                status=status,
                message=message,
                attempt=attempt,
                max_retries=max_retries,
                **extras,
            )

        try:
            _log("info", "login attempt started")
            await page.goto(config.login_url, wait_until="networkidle")

            code = await _read_captcha(
                page,
                ocr=ocr,
                timeout_ms=config.step_timeout_ms,
                sleep=sleep,
            )
            _log("info", "captcha read", captcha=code)
            validate_code(code)

            await page.fill(page_selectors.LOGIN_ACCOUNT, config.gps_user)
            await page.fill(page_selectors.LOGIN_PASSWORD, config.gps_password)
            await page.fill(page_selectors.LOGIN_CAPTCHA_INPUT, code)

            navigated = await _submit_and_maybe_navigate(
                page, timeout_ms=SUBMIT_NAVIGATION_TIMEOUT_MS
            )

            if is_login_url(page.url):
                _log(
                    "warn",
                    "still on login page after submit; retrying",
                    current_url=page.url,
                    navigated=navigated,
                )
                continue
        except CaptchaUnreadable as exc:
            _log("warn", "captcha unreadable; skipping submission", error=str(exc))
            continue
        except Exception as exc:
            _log("warn", "login attempt failed", error=str(exc), exc_type=type(exc).__name__)
            continue

        _log("ok", "login successful", current_url=page.url, navigated=navigated)
        log_event(
            logger=logger,
            phase="login",
            status="info",
            message="waiting for dashboard to settle",
            settle_ms=config.dashboard_settle_ms,
        )
        await sleep(config.dashboard_settle_ms / 1000)
        return Session(page=page, authenticated=True, attempts=attempt)

    log_event(
        logger=logger,
        phase="login",
        status="error",
        message="login retries exhausted",
        max_retries=max_retries,
    )
    raise LoginFailed(max_retries)
