from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Generic, List, TypeVar, Union

from playwright.async_api import Page

H = TypeVar("H")


# ── Page-query results ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Found(Generic[H]):
    handle: H
    strategy: str


@dataclass(frozen=True)
class NotFound:
    tried: List[str] = field(default_factory=list)


Lookup = Union[Found[Any], NotFound]


# ── Run state ────────────────────────────────────────────────────────────────


@dataclass
class Session:
    """One authenticated browser context; closed with the browser at run end."""

    page: Page
    authenticated: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 1


@dataclass
class ReportTabHandle:
    page: Page
    url: str = ""
    title: str = ""
    bypassed_interstitial: bool = False


@dataclass(frozen=True)
class DownloadResult:
    path: Path
    size_bytes: int

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class SequenceReport:
    start: str
    end: str
    selected_alerts: List[str] = field(default_factory=list)
    missing_alerts: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)


# ── Outcome ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Success:
    report_date: date
    attachment: Path | None = None

    @property
    def exit_code(self) -> int:
        return 0


@dataclass(frozen=True)
class Failure:
    error_message: str
    screenshot_path: Path | None = None
    error_type: str = "Exception"

    @property
    def exit_code(self) -> int:
        return 1


AttemptOutcome = Union[Success, Failure]
