"""Daily DMS alert report downloader for the 808gps fleet-tracking portal."""

from typing import Any

__all__ = ["run_report"]


def __getattr__(name: str) -> Any:
    if name == "run_report":
        from dms_reporter.report_downloader.pipeline import run_report as _run_report

        return _run_report
    raise AttributeError(name)
