"""Filesystem polling for the exported report.

The browser writes the export straight into the download directory, so the
only completion signal is the file itself: a non-partial name whose size is
identical (and non-zero) across two reads taken ``settle_s`` apart.

One run owns the directory at a time. Concurrent runs sharing a download
directory are unsupported: they would race on both selection and cleanup.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, List

from .errors import DownloadTimeout, StaleDownloadsError
from .json_logger import JsonLogger, log_event
from .models import DownloadResult

PARTIAL_SUFFIXES = (".crdownload", ".tmp", ".part", ".download")
POLL_INTERVAL_S = 1.0
SETTLE_S = 2.0

Sleep = Callable[[float], Awaitable[None]]


def is_partial(path: Path) -> bool:
    name = path.name.lower()
    return name.startswith(".") or name.endswith(PARTIAL_SUFFIXES)


def _completed_candidates(directory: Path) -> List[Path]:
    if not directory.is_dir():
        return []
    candidates: List[Path] = []
    for entry in directory.iterdir():
        if is_partial(entry):
            continue
        try:
            if entry.is_file():
                candidates.append(entry)
        except OSError:
            continue
    return candidates


def _newest(candidates: List[Path]) -> Path | None:
    newest: Path | None = None
    newest_mtime = float("-inf")
    for path in candidates:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            continue
        if mtime > newest_mtime:
            newest, newest_mtime = path, mtime
    return newest


def _size_or_none(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


def ensure_download_dir(directory: Path, *, clear: bool, logger: JsonLogger) -> Path:
    """Create ``directory`` and make sure it is empty before an export.

    Leftovers from a previous failed run would otherwise be picked up as this
    run's report. With ``clear`` they are deleted; without it the run fails
    fast with ``StaleDownloadsError``.
    """

    directory.mkdir(parents=True, exist_ok=True)
    stray = sorted(entry for entry in directory.iterdir() if entry.is_file())
    if not stray:
        return directory

    if not clear:
        raise StaleDownloadsError(str(directory), [entry.name for entry in stray])

    for entry in stray:
        entry.unlink(missing_ok=True)
    log_event(
        logger=logger,
        phase="download",
        status="warn",
        message="cleared stale files from download directory",
        directory=str(directory),
        files=[entry.name for entry in stray],
    )
    return directory


async def wait_for_completed_file(
    directory: Path,
    timeout_ms: int,
    *,
    logger: JsonLogger,
    poll_interval_s: float = POLL_INTERVAL_S,
    settle_s: float = SETTLE_S,
    sleep: Sleep = asyncio.sleep,
) -> DownloadResult:
    timeout_s = timeout_ms / 1000
    elapsed = 0.0

    while True:
        candidate = _newest(_completed_candidates(directory))
        if candidate is not None:
            first = _size_or_none(candidate)
            await sleep(settle_s)
            elapsed += settle_s
            second = _size_or_none(candidate)
            if first is not None and first == second and first > 0:
                log_event(
                    logger=logger,
                    phase="download",
                    message="download complete",
                    path=str(candidate.resolve()),
                    size_bytes=first,
                    waited_s=round(elapsed, 1),
                )
                return DownloadResult(path=candidate.resolve(), size_bytes=first)
            log_event(
                logger=logger,
                phase="download",
                status="info",
                message="candidate not yet stable",
                path=str(candidate),
                first_size=first,
                second_size=second,
            )

        if elapsed >= timeout_s:
            log_event(
                logger=logger,
                phase="download",
                status="error",
                message="no completed download before timeout",
                directory=str(directory),
                timeout_ms=timeout_ms,
            )
            raise DownloadTimeout(str(directory), timeout_ms)

        await sleep(poll_interval_s)
        elapsed += poll_interval_s


def remove_download(result: DownloadResult, *, logger: JsonLogger) -> bool:
    path = result.path
    if not path.exists():
        return False
    path.unlink()
    log_event(logger=logger, phase="cleanup", message="downloaded file deleted", path=str(path))
    return True
