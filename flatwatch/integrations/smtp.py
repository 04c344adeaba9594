from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr

from ..config import Settings
from .base import DeliveryResult, EmailMessageSpec, Mailer

log = logging.getLogger(__name__)


class SmtpMailer(Mailer):
    """
    Blocking smtplib session run in a worker thread. One connection per message;
    digests are sent a handful of times per cycle at most.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        encryption: str = "tls",
        from_addr: str = "",
        from_name: str | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.encryption = (encryption or "none").lower()
        self.from_addr = from_addr
        self.from_name = from_name
        self.timeout_s = float(timeout_s)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            encryption=settings.SMTP_ENCRYPTION,
            from_addr=settings.EMAIL_FROM,
            from_name=settings.EMAIL_FROM_NAME,
            timeout_s=settings.SMTP_TIMEOUT_S,
        )

    def build_message(self, message: EmailMessageSpec) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = formataddr((self.from_name, self.from_addr)) if self.from_name else self.from_addr
        msg["To"] = message.to
        msg.set_content(message.text)
        msg.add_alternative(message.html, subtype="html")
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        if self.encryption == "ssl":
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout_s, context=ssl.create_default_context()
            )
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout_s)

        with smtp:
            smtp.ehlo()
            if self.encryption == "tls":
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(msg)

    async def send(self, message: EmailMessageSpec) -> DeliveryResult:
        if not self.host:
            return DeliveryResult(ok=False, error="SMTP_HOST is not configured")
        try:
            await asyncio.to_thread(self._send_blocking, self.build_message(message))
        except (smtplib.SMTPException, OSError) as e:
            log.warning("smtp send to %s failed: %r", message.to, e)
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")
        return DeliveryResult(ok=True)
