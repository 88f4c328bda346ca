"""Outgoing e-mail (invitations and admin notifications).

Messages are sent over SMTP when SMTP_HOST is configured. Every message is
also recorded in an in-memory ring buffer (last 100) so operators and tests
can inspect what was sent; with no SMTP host, recording is all that happens.
Send failures are logged and reported as False, never raised to callers.
"""

from __future__ import annotations

import html
import logging
import smtplib
import threading
from collections import deque
from email.message import EmailMessage
from typing import Any, Deque, Dict, Iterable, List, Optional

from cinescan.core import config
from cinescan.core.metrics import metrics
from cinescan.core.time_utils import isoformat_utc, utc_now

logger = logging.getLogger(__name__)

_MAX_OUTBOX = 100
_outbox: Deque[Dict[str, Any]] = deque(maxlen=_MAX_OUTBOX)
_outbox_lock = threading.Lock()


def get_outbox() -> List[Dict[str, Any]]:
    with _outbox_lock:
        return list(_outbox)


def clear_outbox() -> None:
    with _outbox_lock:
        _outbox.clear()


class Mailer:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None,
    ) -> None:
        self.host = config.get_smtp_host() if host is None else host
        self.port = port or config.SMTP_PORT
        self.username = config.SMTP_USERNAME if username is None else username
        self.password = config.SMTP_PASSWORD if password is None else password
        self.use_tls = config.SMTP_USE_TLS if use_tls is None else use_tls
        self.sender = sender or config.MAIL_FROM

    def send(self, to: Iterable[str] | str, subject: str, text: str, html: Optional[str] = None) -> bool:
        recipients = [to] if isinstance(to, str) else [r for r in to if r]
        if not recipients:
            return False
        record = {
            "to": recipients,
            "subject": subject,
            "text": text,
            "sent_at": isoformat_utc(utc_now()),
            "delivered": False,
        }
        with _outbox_lock:
            _outbox.append(record)

        if not self.host:
            logger.info("mail_recorded_only subject=%s recipients=%s", subject, len(recipients))
            return True

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")
        try:
            with smtplib.SMTP(self.host, self.port, timeout=15) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            metrics.increment_event("mail.failed")
            logger.warning("mail_send_failed subject=%s err=%s", subject, exc)
            return False
        record["delivered"] = True
        metrics.increment_event("mail.sent")
        logger.info("mail_sent subject=%s recipients=%s", subject, len(recipients))
        return True

    def send_user_invitation(self, email: str, name: str, temp_password: str, login_url: Optional[str] = None) -> bool:
        url = login_url or config.FRONTEND_URL
        subject = "Your CineScan account is ready"
        text = (
            f"Hello {name},\n\n"
            f"An account has been created for you on CineScan.\n\n"
            f"Email: {email}\n"
            f"Temporary password: {temp_password}\n\n"
            f"Sign in at {url} and change your password from your profile.\n"
        )
        html_body = (
            f"<p>Hello {html.escape(name)},</p>"
            f"<p>An account has been created for you on CineScan.</p>"
            f"<p>Email: <strong>{html.escape(email)}</strong><br>Temporary password: <strong>{html.escape(temp_password)}</strong></p>"
            f'<p><a href="{html.escape(url)}">Sign in</a> and change your password from your profile.</p>'
        )
        return self.send(email, subject, text, html_body)

    def notify_admins_of_registration(self, admin_emails: Iterable[str], name: str, email: str) -> bool:
        subject = f"New access request from {name}"
        text = (
            f"{name} <{email}> asked for access to CineScan.\n\n"
            f"Review pending requests in the admin panel: {config.FRONTEND_URL}/admin\n"
        )
        return self.send(list(admin_emails), subject, text)


def get_mailer() -> Mailer:
    return Mailer()
