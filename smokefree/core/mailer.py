"""
SMTP delivery for account emails (activation links).

Delivery is best effort: every failure is logged and reported as False so
callers never roll back account changes because a mail server is down.
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import smtplib
import ssl

from .config import Settings, get_settings
from .logging import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 15


def smtp_configured(settings: Settings) -> bool:
    return bool(
        settings.smtp_host and settings.smtp_port and settings.smtp_user and settings.smtp_password and settings.smtp_from
    )


def _build_message(settings: Settings, subject: str, to_email: str, html_body: str, text_body: str | None) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from
    message["To"] = to_email
    message.attach(MIMEText(text_body or html_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))
    return message


def _connect(settings: Settings) -> smtplib.SMTP:
    context = ssl.create_default_context()
    if settings.smtp_port == 465:
        return smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, context=context, timeout=SMTP_TIMEOUT_SECONDS)
    server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT_SECONDS)
    server.ehlo()
    server.starttls(context=context)
    return server


def send_email(
    subject: str,
    to_email: str,
    html_body: str,
    text_body: str | None = None,
    *,
    settings: Settings | None = None,
) -> bool:
    """Send one multipart email; False when SMTP is unset or delivery fails."""
    settings = settings or get_settings()
    if not smtp_configured(settings):
        logger.info("email_skipped_smtp_not_configured", subject=subject)
        return False
    message = _build_message(settings, subject, to_email, html_body, text_body)
    try:
        with _connect(settings) as server:
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.smtp_from, [to_email], message.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("email_send_failed", to_email=to_email, error=str(exc))
        return False
    logger.info("email_sent", subject=subject, to_email=to_email)
    return True
