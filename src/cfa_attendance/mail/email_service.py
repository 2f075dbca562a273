"""SMTP email transport.

Every send returns an EmailResult instead of raising, so a batch of signature
emails can report failures per recipient.
"""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message: str


@dataclass(frozen=True)
class MailSettings:
    host: str = "localhost"
    port: int = 25
    use_tls: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    sender_address: str = "noreply@cfa.local"
    sender_name: str = "CFA Gestion"
    timeout: float = 10.0
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings) -> "MailSettings":
        return cls(
            host=str(getattr(settings, "MAIL_HOST", "localhost")),
            port=int(getattr(settings, "MAIL_PORT", 25)),
            use_tls=bool(getattr(settings, "MAIL_USE_TLS", False)),
            username=getattr(settings, "MAIL_USERNAME", None) or None,
            password=getattr(settings, "MAIL_PASSWORD", None) or None,
            sender_address=str(getattr(settings, "MAIL_SENDER_ADDRESS", "noreply@cfa.local")),
            sender_name=str(getattr(settings, "MAIL_SENDER_NAME", "CFA Gestion")),
            enabled=bool(getattr(settings, "MAIL_ENABLED", True)),
        )


class EmailService:
    def __init__(self, settings: MailSettings):
        self._settings = settings

    def build_message(self, to: str, subject: str, text_body: str, html_body: Optional[str] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self._settings.sender_name, self._settings.sender_address))
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, to: str, subject: str, text_body: str, html_body: Optional[str] = None) -> EmailResult:
        if not to:
            return EmailResult(False, "Adresse email manquante")

        msg = self.build_message(to, subject, text_body, html_body)

        if not self._settings.enabled:
            logger.info("Mail disabled, not sending %r to %s", subject, to)
            return EmailResult(True, "Envoi désactivé (MAIL_ENABLED=0)")

        s = self._settings
        try:
            with smtplib.SMTP(s.host, s.port, timeout=s.timeout) as server:
                if s.use_tls:
                    server.starttls()
                if s.username and s.password:
                    server.login(s.username, s.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email to %s failed: %s", to, e)
            return EmailResult(False, f"Échec de l'envoi : {e}")

        logger.debug("Email %r sent to %s", subject, to)
        return EmailResult(True, "Email envoyé")
