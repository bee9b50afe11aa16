"""Outbound guest email. Every message is logged in ``email_logs`` before it is sent,
so the Celery worker can pick up whatever the first attempt failed to deliver."""
import base64
import logging
import smtplib
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage

import requests
from sqlalchemy.orm import Session

from villa_api.core.config import settings
from villa_api.models.email_log import EmailLog

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

Attachment = tuple[str, bytes, str]  # (filename, content, mime type)


def _deliver(log: EmailLog, attachments: list[Attachment]) -> bool:
    log.attempts = (log.attempts or 0) + 1
    try:
        send_email(log.to_email, log.subject, log.body or "", attachments=attachments)
    except Exception as e:
        logger.warning("email %s to %s failed (attempt %s): %s", log.id, log.to_email, log.attempts, e)
        log.status = "failed"
        log.last_error = str(e)[:1000]
        return False
    log.status = "sent"
    log.sent_at = datetime.now(timezone.utc)
    log.last_error = ""
    return True


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_ref: str = "",
                attachments: list[Attachment] | None = None) -> str:
    """Log the message, then try to send it right away.

    A failed send leaves the row in ``failed`` for ``process_pending_emails``.
    """
    log = EmailLog(
        id=str(uuid.uuid4()),
        to_email=to_email,
        subject=subject,
        body=body,
        status="queued",
        related_booking_ref=related_booking_ref,
        attempts=0,
    )
    db.add(log)
    db.commit()

    _deliver(log, attachments or [])
    db.commit()
    return log.id


def send_email(to_email: str, subject: str, body: str, attachments: list[Attachment]):
    """SendGrid when an API key is configured, plain SMTP otherwise (MailHog locally)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body, attachments)
    else:
        _send_via_smtp(to_email, subject, body, attachments)


def _send_via_smtp(to_email: str, subject: str, body: str, attachments: list[Attachment]):
    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    for filename, content, mime in attachments:
        maintype, _, subtype = mime.partition("/")
        msg.add_attachment(content, maintype=maintype, subtype=subtype or "octet-stream", filename=filename)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _sendgrid_payload(to_email: str, subject: str, body: str, attachments: list[Attachment]) -> dict:
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    if attachments:
        payload["attachments"] = [
            {"content": base64.b64encode(content).decode("ascii"), "type": mime,
             "filename": filename, "disposition": "attachment"}
            for filename, content, mime in attachments
        ]
    return payload


def _send_via_sendgrid(to_email: str, subject: str, body: str, attachments: list[Attachment]):
    r = requests.post(
        SENDGRID_URL,
        json=_sendgrid_payload(to_email, subject, body, attachments),
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50, max_attempts: int = 5) -> dict:
    """Retry queued or failed messages that still have attempts left.

    Attachments are not persisted, so a retried confirmation goes out as text only;
    the guest can still download the PDF from the booking page.
    """
    pending = (
        db.query(EmailLog)
        .filter(
            EmailLog.status.in_(["queued", "failed"]),
            EmailLog.body.isnot(None),
            EmailLog.body != "",
            EmailLog.attempts < max_attempts,
        )
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = sum(1 for log in pending if _deliver(log, []))
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": len(pending) - sent}
