from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from playwright.async_api import Browser, BrowserContext, Page

from dms_reporter.config import RunConfig

from .json_logger import JsonLogger, log_event

WINDOW_SIZE = (1920, 1080)
VIEWPORT = {"width": WINDOW_SIZE[0], "height": WINDOW_SIZE[1]}


def chromium_args(config: RunConfig) -> List[str]:
    """Launch flags that let Chromium talk to the portal's self-signed, mixed-content setup."""

    args = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        f"--window-size={WINDOW_SIZE[0]},{WINDOW_SIZE[1]}",
        "--disable-popup-blocking",
        "--allow-running-insecure-content",
        "--ignore-certificate-errors",
        "--disable-web-security",
        "--disable-features=IsolateOrigins,site-per-process,SafeBrowsing",
        "--disable-site-isolation-trials",
        "--disable-client-side-phishing-detection",
        "--safebrowsing-disable-auto-update",
        "--safebrowsing-disable-download-protection",
        "--disable-background-networking",
        "--no-first-run",
        "--no-default-browser-check",
        f"--lang={config.locale}",
    ]
    if config.insecure_origins:
        args.append(
            "--unsafely-treat-insecure-origin-as-secure=" + ",".join(config.insecure_origins)
        )
    return args


def _accept_language(locale: str) -> str:
    primary = locale.split("-")[0]
    return f"{locale},{primary};q=0.9,en;q=0.8"


async def launch_browser(*, playwright: Any, config: RunConfig, logger: JsonLogger) -> Browser:
    launch_kwargs: Dict[str, Any] = {
        "headless": config.headless,
        "args": chromium_args(config),
    }
    log_event(
        logger=logger,
        phase="init",
        message="Launching Playwright with bundled Chromium",
        headless=config.headless,
        locale=config.locale,
    )
    return await playwright.chromium.launch(**launch_kwargs)


async def new_report_context(browser: Browser, *, config: RunConfig, logger: JsonLogger) -> BrowserContext:
    context = await browser.new_context(
        accept_downloads=True,
        ignore_https_errors=True,
        locale=config.locale,
        viewport=VIEWPORT,
        extra_http_headers={"Accept-Language": _accept_language(config.locale)},
    )
    context.set_default_timeout(config.default_page_timeout_ms)
    bind_context_downloads(context, config.download_dir, logger=logger)
    log_event(
        logger=logger,
        phase="init",
        message="browser context ready",
        default_timeout_ms=config.default_page_timeout_ms,
        download_dir=str(config.download_dir),
    )
    return context


def download_target(download_dir: Path, suggested_filename: str | None) -> Path:
    name = Path(suggested_filename or "").name or "report.xlsx"
    return download_dir / name


def bind_download_directory(page: Page, download_dir: Path, *, logger: JsonLogger) -> None:
    """Save every download started from ``page`` into ``download_dir``.

    The copy lands under a ``.crdownload`` name and is renamed once complete,
    so the download watcher never sees a half-written report.
    """

    async def _save(download: Any) -> None:
        target = download_target(download_dir, download.suggested_filename)
        partial = target.with_name(target.name + ".crdownload")
        try:
            download_dir.mkdir(parents=True, exist_ok=True)
            await download.save_as(str(partial))
            partial.replace(target)
        except Exception as exc:
            partial.unlink(missing_ok=True)
            log_event(
                logger=logger,
                phase="download",
                status="error",
                message="unable to save browser download",
                suggested_filename=download.suggested_filename,
                error=str(exc),
            )
            return
        log_event(
            logger=logger,
            phase="download",
            message="browser download saved",
            path=str(target),
            url=getattr(download, "url", None),
        )

    page.on("download", _save)


def bind_context_downloads(context: BrowserContext, download_dir: Path, *, logger: JsonLogger) -> None:
    """Bind downloads for every page the context opens, popups included."""

    context.on("page", lambda page: bind_download_directory(page, download_dir, logger=logger))
