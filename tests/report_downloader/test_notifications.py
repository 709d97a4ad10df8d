import smtplib

import pytest

from dms_reporter.config import RunConfig
from dms_reporter.report_downloader import notifications
from dms_reporter.report_downloader.errors import NotificationSendFailure
from dms_reporter.report_downloader.notifications import (
    EmailNotifier,
    EmailPlan,
    SmtpConfig,
    build_message,
    send_email,
)


def _config(**overrides) -> RunConfig:
    base = RunConfig(
        gps_user="u",
        gps_password="p",
        email_from="reports@example.com",
        email_password="app-password",
    )
    return base.with_overrides(**overrides)


class CapturingSender:
    def __init__(self):
        self.sent = []

    def __call__(self, smtp, plan):
        self.sent.append((smtp, plan))


def test_success_email_has_dated_subject_and_attachment(tmp_path):
    report = tmp_path / "Report_2024-05-01.xlsx"
    report.write_bytes(b"workbook")
    sender = CapturingSender()
    notifier = EmailNotifier(_config(), sender=sender)

    sent = notifier.notify_success(
        context={
            "report_date": "2024-05-01",
            "window_start": "06:00",
            "window_end": "18:00",
            "missing_alerts": [],
        },
        attachment=report,
    )

    assert sent is True
    smtp, plan = sender.sent[0]
    assert smtp.host == "smtp.gmail.com"
    assert smtp.port == 587
    assert plan.subject == "GPS Report: 2024-05-01"
    assert "06:00-18:00" in plan.body
    assert "not found" not in plan.body
    assert plan.to == ["reports@example.com"]
    assert plan.attachments == [report]


def test_success_email_lists_missing_alert_types(tmp_path):
    sender = CapturingSender()
    notifier = EmailNotifier(_config(email_to=["ops@example.com", "fleet@example.com"]), sender=sender)

    notifier.notify_success(
        context={"report_date": "2024-05-01", "missing_alerts": ["Yawning"]},
        attachment=tmp_path / "missing.xlsx",
    )

    _, plan = sender.sent[0]
    assert plan.to == ["ops@example.com", "fleet@example.com"]
    assert "Alert types not found in the portal: Yawning" in plan.body
    assert plan.attachments == []


def test_failure_email_carries_error_text_and_screenshot(tmp_path):
    screenshot = tmp_path / "error_debug.png"
    screenshot.write_bytes(b"png")
    sender = CapturingSender()
    notifier = EmailNotifier(_config(), sender=sender)

    notifier.notify_failure(
        context={"error_message": "Element not found: DMS report button", "error_type": "ElementNotFound"},
        screenshot=screenshot,
    )

    _, plan = sender.sent[0]
    assert plan.subject == "GPS Automation FAILED"
    assert plan.body.startswith("Error details: Element not found: DMS report button")
    assert "Error type: ElementNotFound" in plan.body
    assert plan.attachments == [screenshot]


def test_missing_credentials_skip_sending():
    sender = CapturingSender()
    notifier = EmailNotifier(_config(email_password=None), sender=sender)

    assert notifier.notify_failure(context={"error_message": "boom"}, screenshot=None) is False
    assert sender.sent == []


def test_build_message_attaches_files(tmp_path):
    report = tmp_path / "Report.xlsx"
    report.write_bytes(b"workbook")
    smtp = SmtpConfig(
        host="smtp.example.com", port=587, sender="reports@example.com",
        username="reports@example.com", password="pw", use_tls=True,
    )

    message = build_message(smtp, EmailPlan(subject="s", body="b", to=["a@example.com"], attachments=[report]))

    attachments = list(message.iter_attachments())
    assert [part.get_filename() for part in attachments] == ["Report.xlsx"]
    assert "reports@example.com" in message["From"]


def test_send_email_uses_starttls_and_login(monkeypatch):
    events = []

    class FakeSMTP:
        def __init__(self, host, port):
            events.append(("connect", host, port))

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            events.append(("starttls",))

        def login(self, username, password):
            events.append(("login", username, password))

        def send_message(self, message, to_addrs):
            events.append(("send", message["Subject"], tuple(to_addrs)))

    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    smtp = SmtpConfig(
        host="smtp.example.com", port=587, sender="reports@example.com",
        username="reports@example.com", password="pw", use_tls=True,
    )

    send_email(smtp, EmailPlan(subject="GPS Report: 2024-05-01", body="b", to=["a@example.com", "a@example.com"]))

    assert events == [
        ("connect", "smtp.example.com", 587),
        ("starttls",),
        ("login", "reports@example.com", "pw"),
        ("send", "GPS Report: 2024-05-01", ("a@example.com",)),
    ]


def test_send_email_wraps_smtp_errors(monkeypatch):
    class BrokenSMTP:
        def __init__(self, host, port):
            raise smtplib.SMTPConnectError(421, "try later")

    monkeypatch.setattr(notifications.smtplib, "SMTP", BrokenSMTP)
    smtp = SmtpConfig(host="h", port=25, sender="s@example.com", username=None, password=None, use_tls=False)

    with pytest.raises(NotificationSendFailure):
        send_email(smtp, EmailPlan(subject="s", body="b", to=["a@example.com"]))


def test_send_email_requires_recipients():
    smtp = SmtpConfig(host="h", port=25, sender="s@example.com", username=None, password=None, use_tls=False)

    with pytest.raises(NotificationSendFailure):
        send_email(smtp, EmailPlan(subject="s", body="b", to=[]))
