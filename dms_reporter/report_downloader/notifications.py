from __future__ import annotations

import logging
import mimetypes
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Iterable, Protocol

from jinja2 import Template

from dms_reporter.config import RunConfig

from .errors import NotificationSendFailure

logger = logging.getLogger(__name__)

SENDER_DISPLAY_NAME = "Thai Tracking DMS Reporter"

SUCCESS_SUBJECT_TEMPLATE = "GPS Report: {{ report_date }}"
SUCCESS_BODY_TEMPLATE = (
    "Please find the attached daily GPS report ({{ window_start }}-{{ window_end }}) "
    "for {{ report_date }}."
    "{% if missing_alerts %}\n\nAlert types not found in the portal: "
    "{{ missing_alerts | join(', ') }}{% endif %}"
)
FAILURE_SUBJECT_TEMPLATE = "GPS Automation FAILED"
FAILURE_BODY_TEMPLATE = (
    "Error details: {{ error_message }}"
    "{% if error_type %}\nError type: {{ error_type }}{% endif %}"
    "{% if screenshot %}\nScreenshot: {{ screenshot }}{% endif %}"
    "{% if run_id %}\nRun id: {{ run_id }}{% endif %}"
)
TEST_SUBJECT_TEMPLATE = "GPS Report notifier test"
TEST_BODY_TEMPLATE = "SMTP settings for {{ sender }} are working (run {{ run_id }})."


@dataclass
class SmtpConfig:
    host: str
    port: int
    sender: str
    username: str | None
    password: str | None
    use_tls: bool


@dataclass
class EmailPlan:
    subject: str
    body: str
    to: list[str]
    attachments: list[Path] = field(default_factory=list)


class Notifier(Protocol):
    def notify_success(self, *, context: dict[str, Any], attachment: Path | None) -> bool: ...

    def notify_failure(self, *, context: dict[str, Any], screenshot: Path | None) -> bool: ...


def smtp_config_from_run_config(config: RunConfig) -> SmtpConfig | None:
    if not config.notifications_enabled:
        return None
    return SmtpConfig(
        host=config.smtp_host,
        port=config.smtp_port,
        sender=config.email_from or "",
        username=config.email_from,
        password=config.email_password,
        use_tls=config.smtp_use_tls,
    )


def _render_template(raw: str, context: dict[str, Any]) -> str:
    try:
        return Template(raw).render(**context)
    except Exception:
        logger.exception("failed to render notification template")
        return raw


def _unique(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        ordered.append(item)
    return ordered


def _mime_parts(path: Path) -> tuple[str, str]:
    guessed, _ = mimetypes.guess_type(path.name)
    if not guessed or "/" not in guessed:
        return "application", "octet-stream"
    maintype, subtype = guessed.split("/", 1)
    return maintype, subtype


def build_message(smtp: SmtpConfig, plan: EmailPlan) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = plan.subject
    message["From"] = formataddr((SENDER_DISPLAY_NAME, smtp.sender))
    message["To"] = ", ".join(plan.to)
    message.set_content(plan.body)
    for attachment in plan.attachments:
        try:
            data = attachment.read_bytes()
        except FileNotFoundError:
            logger.warning("attachment missing during send", extra={"path": str(attachment)})
            continue
        maintype, subtype = _mime_parts(attachment)
        message.add_attachment(data, maintype=maintype, subtype=subtype, filename=attachment.name)
    return message


def send_email(smtp: SmtpConfig, plan: EmailPlan) -> None:
    recipients = _unique(plan.to)
    if not recipients:
        raise NotificationSendFailure("no recipients configured")
    message = build_message(smtp, plan)
    try:
        with smtplib.SMTP(smtp.host, smtp.port) as client:
            if smtp.use_tls:
                client.starttls()
            if smtp.username and smtp.password:
                client.login(smtp.username, smtp.password)
            client.send_message(message, to_addrs=recipients)
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationSendFailure(f"failed to send email: {exc}") from exc


class EmailNotifier:
    """Renders the success/failure messages and submits them over SMTP.

    Missing sender credentials disable sending; calls then return ``False``
    without raising, matching a run configured without notifications.
    """

    def __init__(self, config: RunConfig, *, sender=send_email) -> None:
        self.smtp = smtp_config_from_run_config(config)
        self.recipients = config.recipients
        self._send = sender

    def _deliver(self, plan: EmailPlan) -> bool:
        if self.smtp is None:
            logger.info("skipping email: no sender credentials configured")
            return False
        self._send(self.smtp, plan)
        return True

    def notify_success(self, *, context: dict[str, Any], attachment: Path | None) -> bool:
        plan = EmailPlan(
            subject=_render_template(SUCCESS_SUBJECT_TEMPLATE, context),
            body=_render_template(SUCCESS_BODY_TEMPLATE, context),
            to=list(self.recipients),
            attachments=[attachment] if attachment and attachment.exists() else [],
        )
        return self._deliver(plan)

    def notify_failure(self, *, context: dict[str, Any], screenshot: Path | None) -> bool:
        plan = EmailPlan(
            subject=_render_template(FAILURE_SUBJECT_TEMPLATE, context),
            body=_render_template(FAILURE_BODY_TEMPLATE, {**context, "screenshot": screenshot}),
            to=list(self.recipients),
            attachments=[screenshot] if screenshot and screenshot.exists() else [],
        )
        return self._deliver(plan)

    def notify_test(self, *, run_id: str) -> bool:
        sender = self.smtp.sender if self.smtp else ""
        context = {"sender": sender, "run_id": run_id}
        plan = EmailPlan(
            subject=_render_template(TEST_SUBJECT_TEMPLATE, context),
            body=_render_template(TEST_BODY_TEMPLATE, context),
            to=list(self.recipients),
        )
        return self._deliver(plan)
