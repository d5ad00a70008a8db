"""
Notify module for the Grade Watcher pipeline.

This module formats detected grade changes into a plain text summary and
delivers it by email over SMTP with TLS. It also sends the error report
used when a run fails.

Delivery failures raise EmailNotificationError; only the error report is
best effort.
"""

import os
import smtplib
import ssl
import traceback
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import List, Optional, Sequence, Tuple

from grade_watcher.compare import ChangeEvent, FieldChanged, NewRecord
from grade_watcher.utils import get_env_var, get_logger


# Module logger
logger = get_logger("notify")

NOTIFICATION_SUBJECT = "Workday Grade Update Detected"
ERROR_SUBJECT = "Workday Grade Checker ERROR"
CHANGE_SEPARATOR = "\n----------------\n"
MISSING_VALUE = "N/A"

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = "465"
SMTP_TIMEOUT = 30


class EmailNotificationError(Exception):
    """Custom exception for email notification errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


def _or_missing(value: str) -> str:
    return value or MISSING_VALUE


def format_change_block(event: ChangeEvent) -> str:
    """
    Format one change event as a text block.

    Args:
        event: NewRecord or FieldChanged event.

    Returns:
        Multi-line block describing the change.
    """
    if isinstance(event, NewRecord):
        record = event.record
        return "\n".join([
            "NEW COURSE ADDED",
            f"Course: {record.course}",
            f"Grade: {record.grade}",
            f"Percent: {record.percent}",
            f"Credits: {record.credits}",
        ])

    if isinstance(event, FieldChanged):
        lines = ["GRADE UPDATED", f"Course: {event.key}"]
        for name, old, new in zip(event.field_names, event.old_fields, event.new_fields):
            label = name.capitalize()
            lines.append(f"Old {label}: {_or_missing(old)}")
            lines.append(f"New {label}: {_or_missing(new)}")
        if event.current is not None and "credits" not in event.field_names:
            lines.append(f"Credits: {event.current.credits}")
        return "\n".join(lines)

    raise TypeError(f"Unsupported change event: {event!r}")


def format_changes_body(events: Sequence[ChangeEvent]) -> str:
    """
    Format all change events as the notification body.

    Args:
        events: Change events in table order.

    Returns:
        Blocks joined by a separator line.
    """
    return CHANGE_SEPARATOR.join(format_change_block(e) for e in events)


def format_error_body(error: BaseException) -> str:
    """
    Format a failed run's exception for the error report.

    Args:
        error: The exception that aborted the run.

    Returns:
        Plain text body with the formatted traceback.
    """
    details = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return f"An error occurred during execution:\n\n{details}"


def get_email_credentials() -> Tuple[str, int, str, str, str, str]:
    """
    Get email credentials from environment variables.

    Returns:
        Tuple of (smtp_host, smtp_port, smtp_user, smtp_password, email_from, email_to).

    Raises:
        ValueError: If any required environment variable is not set.
    """
    smtp_host = get_env_var("SMTP_HOST", required=False, default=DEFAULT_SMTP_HOST)
    smtp_port_str = get_env_var("SMTP_PORT", required=False, default=DEFAULT_SMTP_PORT)
    smtp_user = get_env_var("SMTP_USER", required=True)
    smtp_password = get_env_var("SMTP_PASSWORD", required=True)
    email_to = get_env_var("EMAIL_TO", required=True)
    email_from = get_env_var("EMAIL_FROM", required=False, default=f'"Workday Grades" <{smtp_user}>')

    # Type assertions - get_env_var with a default or required=True never returns None
    assert smtp_host is not None
    assert smtp_port_str is not None
    assert smtp_user is not None
    assert smtp_password is not None
    assert email_from is not None
    assert email_to is not None

    try:
        smtp_port = int(smtp_port_str)
    except ValueError:
        raise ValueError(f"SMTP_PORT must be a valid integer, got: {smtp_port_str}")

    return smtp_host, smtp_port, smtp_user, smtp_password, email_from, email_to


def is_email_configured() -> bool:
    """
    Check if email notification is configured.

    Returns:
        True if all required email environment variables are set, False otherwise.
    """
    return not get_missing_email_vars()


def get_missing_email_vars() -> List[str]:
    """Return the required email variables that are unset."""
    required_vars = ["SMTP_USER", "SMTP_PASSWORD", "EMAIL_TO"]
    return [
        var for var in required_vars
        if not os.environ.get(var, "").strip()
    ]


def _open_smtp(host: str, port: int, timeout: int) -> smtplib.SMTP:
    ssl_context = ssl.create_default_context()

    if port == 465:
        # Port 465 uses implicit SSL (SMTP_SSL)
        logger.debug("Using SMTP_SSL (implicit TLS) for port 465")
        return smtplib.SMTP_SSL(host, port, timeout=timeout, context=ssl_context)

    # Port 587 (and others) use STARTTLS
    logger.debug(f"Using SMTP with STARTTLS for port {port}")
    server = smtplib.SMTP(host, port, timeout=timeout)
    try:
        server.starttls(context=ssl_context)
    except Exception:
        server.close()
        raise
    return server


def send_email(subject: str, body: str, dry_run: bool = False) -> None:
    """
    Send a plain text email via SMTP with TLS.

    Supports both:
    - Port 465: SMTP_SSL (implicit TLS)
    - Port 587: SMTP with STARTTLS (explicit TLS)

    Args:
        subject: Email subject.
        body: Plain text body.
        dry_run: If True, don't actually send the email, just log.

    Raises:
        ValueError: If email settings are missing or invalid.
        EmailNotificationError: If the message could not be delivered.
    """
    smtp_host, smtp_port, smtp_user, smtp_password, email_from, email_to = get_email_credentials()

    if dry_run:
        logger.info(f"[DRY RUN] Would send email to: {email_to}")
        logger.info(f"[DRY RUN] Subject: {subject}")
        logger.debug(f"[DRY RUN] Body:\n{body}")
        return

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = email_from
    msg["To"] = email_to
    msg["Date"] = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S +0000")
    msg.set_content(body)

    logger.info(f"Connecting to SMTP server: {smtp_host}:{smtp_port}")

    try:
        with _open_smtp(smtp_host, smtp_port, SMTP_TIMEOUT) as server:
            logger.debug("Connection established, authenticating...")
            server.login(smtp_user, smtp_password)
            logger.debug("Authentication successful, sending message...")
            server.send_message(msg)

    except smtplib.SMTPAuthenticationError as e:
        raise EmailNotificationError(f"SMTP authentication failed: {e}", e)

    except smtplib.SMTPException as e:
        raise EmailNotificationError(f"SMTP error while sending email: {e}", e)

    except ssl.SSLError as e:
        raise EmailNotificationError(f"SSL/TLS error while sending email: {e}", e)

    except (TimeoutError, OSError) as e:
        raise EmailNotificationError(f"Connection error while sending email: {e}", e)

    logger.info(f"Email sent to {email_to}: {subject}")


def send_error_notification(error: BaseException, dry_run: bool = False) -> bool:
    """
    Send the error report for a failed run.

    This is best effort: delivery problems are logged, never raised,
    so they cannot mask the original failure.

    Args:
        error: The exception that aborted the run.
        dry_run: If True, only log the report.

    Returns:
        True if the report was sent (or logged in dry run), False otherwise.
    """
    try:
        send_email(ERROR_SUBJECT, format_error_body(error), dry_run=dry_run)
        return True

    except ValueError as e:
        logger.error(f"Email configuration error, error report not sent: {e}")
        return False

    except EmailNotificationError as e:
        logger.error(f"Failed to send error report: {e}")
        return False


def check_email_connection() -> bool:
    """
    Verify SMTP connection and credentials.

    Returns:
        True if connection is successful, False otherwise.
    """
    if not is_email_configured():
        logger.debug("Email not configured, skipping connection check")
        return False

    try:
        smtp_host, smtp_port, smtp_user, smtp_password, _, _ = get_email_credentials()

        logger.debug(f"Testing email connection to {smtp_host}:{smtp_port}")

        with _open_smtp(smtp_host, smtp_port, 10) as server:
            server.login(smtp_user, smtp_password)

        logger.debug(f"Email connection OK, authenticated with {smtp_user}")
        return True

    except (ValueError, smtplib.SMTPException, ssl.SSLError, OSError) as e:
        logger.warning(f"Email connection check failed: {e}")
        return False
