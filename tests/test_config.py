import pytest

from dms_reporter.config import (
    DEFAULT_ALERT_LABELS,
    DEFAULT_LOGIN_URL,
    ConfigError,
    RunConfig,
    load_run_config,
)

BASE_ENV = {"GPS_USER": "fleet-admin", "GPS_PASSWORD": "s3cret"}


def test_from_env_applies_defaults():
    run_config = RunConfig.from_env(BASE_ENV)

    assert run_config.gps_user == "fleet-admin"
    assert run_config.login_url == DEFAULT_LOGIN_URL
    assert run_config.login_max_retries == 20
    assert run_config.report_center_timeout_ms == 60_000
    assert run_config.download_timeout_ms == 120_000
    assert run_config.alert_labels == DEFAULT_ALERT_LABELS
    assert run_config.alert_label_fallbacks[DEFAULT_ALERT_LABELS[0]] == "Yawning"
    assert (run_config.day_start, run_config.day_end) == ("06:00:00", "18:00:00")
    assert run_config.headless is True
    assert run_config.clear_stale_downloads is True
    assert run_config.notifications_enabled is False
    assert run_config.recipients == []


def test_from_env_reads_overrides(tmp_path):
    env = {
        **BASE_ENV,
        "EMAIL_FROM": "reports@example.com",
        "EMAIL_PASSWORD": "app-password",
        "EMAIL_TO": "ops@example.com, fleet@example.com",
        "LOGIN_MAX_RETRIES": "5",
        "HEADLESS": "false",
        "DAY_START": "05:30:00",
        "DOWNLOAD_DIR": str(tmp_path / "dl"),
        "ALERT_LABELS": "Yawning\nEyes closed",
        "CLEAR_STALE_DOWNLOADS": "no",
    }

    run_config = RunConfig.from_env(env)

    assert run_config.notifications_enabled is True
    assert run_config.recipients == ["ops@example.com", "fleet@example.com"]
    assert run_config.login_max_retries == 5
    assert run_config.headless is False
    assert run_config.day_start == "05:30:00"
    assert run_config.download_dir == (tmp_path / "dl").resolve()
    assert run_config.alert_labels == ("Yawning", "Eyes closed")
    assert run_config.clear_stale_downloads is False


def test_recipients_fall_back_to_sender():
    run_config = RunConfig.from_env({**BASE_ENV, "EMAIL_FROM": "reports@example.com"})

    assert run_config.recipients == ["reports@example.com"]
    assert run_config.notifications_enabled is False


@pytest.mark.parametrize("missing", ["GPS_USER", "GPS_PASSWORD"])
def test_missing_credentials_raise(missing):
    env = dict(BASE_ENV)
    env.pop(missing)

    with pytest.raises(ConfigError, match=missing):
        RunConfig.from_env(env)


def test_blank_credentials_raise():
    with pytest.raises(ConfigError, match="cannot be blank"):
        RunConfig.from_env({**BASE_ENV, "GPS_PASSWORD": "   "})


@pytest.mark.parametrize(
    "key, value",
    [
        ("LOGIN_MAX_RETRIES", "many"),
        ("STEP_TIMEOUT_MS", "-1"),
        ("HEADLESS", "sometimes"),
        ("DAY_END", "18:00"),
        ("LOGIN_MAX_RETRIES", "0"),
        ("CLEAR_STALE_DOWNLOADS", "maybe"),
    ],
)
def test_invalid_values_raise(key, value):
    with pytest.raises(ConfigError, match=key):
        RunConfig.from_env({**BASE_ENV, key: value})


def test_with_overrides_returns_new_instance():
    run_config = RunConfig.from_env(BASE_ENV)

    headed = run_config.with_overrides(headless=False)

    assert headed.headless is False
    assert run_config.headless is True


def test_load_run_config_reads_dotenv(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("GPS_USER=from-dotenv\nGPS_PASSWORD=pw\n", encoding="utf-8")
    for key in ("GPS_USER", "GPS_PASSWORD"):
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)

    run_config = load_run_config(env_file=env_file)

    assert run_config.gps_user == "from-dotenv"


def test_collection_fields_cannot_be_mutated():
    run_config = RunConfig.from_env({**BASE_ENV, "EMAIL_TO": "ops@example.com"})

    assert run_config.email_to == ("ops@example.com",)
    with pytest.raises(TypeError):
        run_config.alert_label_fallbacks[DEFAULT_ALERT_LABELS[0]] = "Sneezing"
    assert run_config.alert_label_fallbacks[DEFAULT_ALERT_LABELS[0]] == "Yawning"


def test_overrides_are_frozen_too():
    fallbacks = {"Yawning": "Yawn"}
    run_config = RunConfig.from_env(BASE_ENV).with_overrides(
        email_to=["ops@example.com"], alert_label_fallbacks=fallbacks
    )
    fallbacks["Yawning"] = "changed later"

    assert run_config.email_to == ("ops@example.com",)
    assert run_config.alert_label_fallbacks["Yawning"] == "Yawn"
    with pytest.raises(TypeError):
        run_config.alert_label_fallbacks["Yawning"] = "Yawn again"
