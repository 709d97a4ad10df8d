"""Failure taxonomy for a report run.

Transient conditions (``CaptchaUnreadable``, a control not yet interactive, an
interstitial warning page) are recovered locally. Everything else reaches the
orchestrator, which turns it into a single failure notification.
"""
from __future__ import annotations


class DmsReportError(RuntimeError):
    """Base class for report-run failures."""


class CaptchaUnreadable(DmsReportError):
    """OCR produced an empty or too-short code; the login attempt is abandoned."""

    def __init__(self, recognized: str, *, min_length: int = 4) -> None:
        self.recognized = recognized
        self.min_length = min_length
        super().__init__(
            f"CAPTCHA unreadable: recognized {recognized!r} (need at least {min_length} digits)"
        )


class LoginFailed(DmsReportError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Failed to login after {attempts} attempts.")


class ElementNotFound(DmsReportError):
    def __init__(self, description: str, *, tried: list[str] | None = None) -> None:
        self.description = description
        self.tried = list(tried or [])
        super().__init__(f"Element not found: {description}")


class ReportCenterTimeout(DmsReportError):
    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Failed to open Report Center after {timeout_ms // 1000} seconds of retries."
        )


class DownloadTimeout(DmsReportError):
    def __init__(self, directory: str, timeout_ms: int) -> None:
        self.directory = directory
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Download timeout: no completed file in {directory} within {timeout_ms} ms."
        )


class StaleDownloadsError(DmsReportError):
    """The download directory held files before the export was triggered."""

    def __init__(self, directory: str, names: list[str]) -> None:
        self.directory = directory
        self.names = list(names)
        super().__init__(
            f"Download directory {directory} is not empty: {', '.join(sorted(names))}"
        )


class NotificationSendFailure(DmsReportError):
    """Mail submission failed. Logged only; never changes the run outcome."""
