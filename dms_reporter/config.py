"""
CONFIG.PY: SINGLE SOURCE OF TRUTH (SSOT)

This module is the ONLY place allowed to read environment variables.

Portal credentials are required; everything else has a default that matches
what the portal tolerates today. Notification settings are optional: when the
sender credentials are absent the run still executes and notifications are
skipped.

The configuration is loaded ONCE by the CLI and passed explicitly into every
component as a ``RunConfig`` value:

    from dms_reporter.config import load_run_config

    run_config = load_run_config()

Do not access os.getenv from any other module.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from dotenv import load_dotenv


# Determine project root correctly (directory containing the top-level package)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_URL = "https://dvrai.net/808gps/login.html"
DEFAULT_INSECURE_ORIGINS = ("http://cctvwli.com:3001",)

# Thai portal labels for the two drowsiness alert categories, with the
# English label the portal shows when the account language is switched.
DEFAULT_ALERT_LABELS = ("แจ้งเตือนการหาวนอน", "แจ้งเตือนการหลับตา")
DEFAULT_ALERT_LABEL_FALLBACKS = {
    "แจ้งเตือนการหาวนอน": "Yawning",
    "แจ้งเตือนการหลับตา": "Eyes closed",
}

REQUIRED_ENV_KEYS = [
    "GPS_USER",
    "GPS_PASSWORD",
]

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _require_env(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None:
        message = f"Missing required environment variable: {key}"
        logger.error(message)
        raise ConfigError(message)
    stripped = value.strip()
    if not stripped:
        message = f"Environment variable {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _optional(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be at least {minimum}; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _parse_list(value: str) -> list[str]:
    if not value:
        return []
    tokens = re.split(r"[,\n]", value)
    return [token.strip() for token in tokens if token and token.strip()]


def _parse_time_of_day(value: str, *, key: str) -> str:
    stripped = value.strip()
    if not re.fullmatch(r"([01]\d|2[0-3]):[0-5]\d:[0-5]\d", stripped):
        message = f"Config key {key} must look like HH:MM:SS; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _int_or_default(env: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = _optional(env, key)
    return default if raw is None else _parse_int(raw, key=key, minimum=minimum)


def _bool_or_default(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _optional(env, key)
    return default if raw is None else _parse_bool(raw, key=key)


def _path_or_default(env: Mapping[str, str], key: str, default: Path) -> Path:
    raw = _optional(env, key)
    return Path(raw).expanduser().resolve() if raw else default


@dataclass(slots=True, frozen=True)
class RunConfig:
    gps_user: str
    gps_password: str

    email_from: str | None = None
    email_password: str | None = None
    email_to: tuple[str, ...] = ()
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_use_tls: bool = True

    login_url: str = DEFAULT_LOGIN_URL
    login_max_retries: int = 20
    step_timeout_ms: int = 10_000
    default_page_timeout_ms: int = 60_000
    report_center_timeout_ms: int = 60_000
    download_timeout_ms: int = 120_000
    # The portal gives no "report ready" signal; these are fixed waits.
    report_generation_wait_ms: int = 120_000
    save_dialog_wait_ms: int = 20_000
    dashboard_settle_ms: int = 10_000

    alert_labels: tuple[str, ...] = DEFAULT_ALERT_LABELS
    alert_label_fallbacks: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_ALERT_LABEL_FALLBACKS))
    )
    day_start: str = "06:00:00"
    day_end: str = "18:00:00"
    timezone: str = "Asia/Bangkok"

    download_dir: Path = PROJECT_ROOT / "downloads"
    error_screenshot_path: Path = PROJECT_ROOT / "error_debug.png"
    headless: bool = True
    locale: str = "th-TH"
    insecure_origins: tuple[str, ...] = DEFAULT_INSECURE_ORIGINS
    clear_stale_downloads: bool = True
    json_log_file: str | None = None

    def __post_init__(self) -> None:
        # overrides may hand in plain lists and dicts
        object.__setattr__(self, "email_to", tuple(self.email_to))
        object.__setattr__(
            self, "alert_label_fallbacks", MappingProxyType(dict(self.alert_label_fallbacks))
        )

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.email_from and self.email_password)

    @property
    def recipients(self) -> list[str]:
        if self.email_to:
            return list(self.email_to)
        return [self.email_from] if self.email_from else []

    def with_overrides(self, **changes) -> RunConfig:
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> RunConfig:
        gps_user = _require_env(env, "GPS_USER")
        gps_password = _require_env(env, "GPS_PASSWORD")

        login_url = (_optional(env, "GPS_LOGIN_URL") or DEFAULT_LOGIN_URL).rstrip("/")
        insecure_raw = _optional(env, "INSECURE_ORIGINS")
        insecure_origins = (
            tuple(_parse_list(insecure_raw)) if insecure_raw else DEFAULT_INSECURE_ORIGINS
        )

        alert_raw = _optional(env, "ALERT_LABELS")
        alert_labels = tuple(_parse_list(alert_raw)) if alert_raw else DEFAULT_ALERT_LABELS

        return cls(
            gps_user=gps_user,
            gps_password=gps_password,
            email_from=_optional(env, "EMAIL_FROM"),
            email_password=_optional(env, "EMAIL_PASSWORD"),
            email_to=tuple(_parse_list(_optional(env, "EMAIL_TO") or "")),
            smtp_host=_optional(env, "SMTP_HOST") or "smtp.gmail.com",
            smtp_port=_int_or_default(env, "SMTP_PORT", 587),
            smtp_use_tls=_bool_or_default(env, "SMTP_USE_TLS", True),
            login_url=login_url,
            login_max_retries=_int_or_default(env, "LOGIN_MAX_RETRIES", 20, minimum=1),
            step_timeout_ms=_int_or_default(env, "STEP_TIMEOUT_MS", 10_000),
            default_page_timeout_ms=_int_or_default(env, "PAGE_TIMEOUT_MS", 60_000),
            report_center_timeout_ms=_int_or_default(env, "REPORT_CENTER_TIMEOUT_MS", 60_000),
            download_timeout_ms=_int_or_default(env, "DOWNLOAD_TIMEOUT_MS", 120_000),
            report_generation_wait_ms=_int_or_default(env, "REPORT_GENERATION_WAIT_MS", 120_000),
            save_dialog_wait_ms=_int_or_default(env, "SAVE_DIALOG_WAIT_MS", 20_000),
            dashboard_settle_ms=_int_or_default(env, "DASHBOARD_SETTLE_MS", 10_000),
            alert_labels=alert_labels,
            day_start=_parse_time_of_day(_optional(env, "DAY_START") or "06:00:00", key="DAY_START"),
            day_end=_parse_time_of_day(_optional(env, "DAY_END") or "18:00:00", key="DAY_END"),
            timezone=_optional(env, "PORTAL_TIMEZONE") or "Asia/Bangkok",
            download_dir=_path_or_default(env, "DOWNLOAD_DIR", PROJECT_ROOT / "downloads"),
            error_screenshot_path=_path_or_default(
                env, "ERROR_SCREENSHOT_PATH", PROJECT_ROOT / "error_debug.png"
            ),
            headless=_bool_or_default(env, "HEADLESS", True),
            clear_stale_downloads=_bool_or_default(env, "CLEAR_STALE_DOWNLOADS", True),
            locale=_optional(env, "PORTAL_LOCALE") or "th-TH",
            insecure_origins=insecure_origins,
            json_log_file=_optional(env, "JSON_LOG_FILE"),
        )


def load_run_config(*, env_file: Path | None = None) -> RunConfig:
    """Load ``.env`` (OS env wins) and build the immutable run configuration."""

    dotenv_path = env_file or PROJECT_ROOT / ".env"
    load_dotenv(dotenv_path)
    if os.getenv("DEBUG_CONFIG") == "1":
        print("[CONFIG] Loaded .env from:", dotenv_path)
    return RunConfig.from_env(os.environ)
