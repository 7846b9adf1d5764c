"""
SMTP notification sender.

smtplib is blocking; each send opens its own connection in the default
executor so a slow mail server never stalls the event loop.
"""

import asyncio
import smtplib
import time
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from pydantic import BaseModel, ConfigDict

from webinar_api.core.config import Settings
from webinar_api.core.exceptions import UpstreamError
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import upstream_errors, upstream_latency

logger = get_logger(__name__)

PROVIDER = "smtp"


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"


def build_message(
    sender: str, to: str, subject: str, html: str, attachment: Optional[Attachment] = None
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html, subtype="html")

    if attachment is not None:
        maintype, _, subtype = attachment.mime_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return message


class SmtpNotificationSender:
    def __init__(self, settings: Settings):
        self._host = settings.SMTP_HOST
        self._port = settings.SMTP_PORT
        self._use_tls = settings.SMTP_USE_TLS
        self._user = settings.SMTP_USER
        self._password = settings.SMTP_PASSWORD
        self._timeout = settings.SMTP_TIMEOUT_SECONDS
        self._sender = formataddr((settings.SMTP_FROM_NAME, settings.SMTP_FROM_EMAIL))

    def _deliver(self, message: EmailMessage) -> None:
        if self._port == 465:
            with smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout) as smtp:
                if self._user:
                    smtp.login(self._user, self._password)
                smtp.send_message(message)
            return

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._user:
                smtp.login(self._user, self._password)
            smtp.send_message(message)

    async def send(
        self, to: str, subject: str, html: str, attachment: Optional[Attachment] = None
    ) -> None:
        message = build_message(self._sender, to, subject, html, attachment)
        start = time.perf_counter()
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            upstream_errors.labels(provider=PROVIDER, operation="send").inc()
            logger.error("email_send_failed", to=to, subject=subject, error=str(e))
            raise UpstreamError("Failed to send e-mail", provider=PROVIDER) from e
        finally:
            upstream_latency.labels(provider=PROVIDER, operation="send").observe(
                time.perf_counter() - start
            )

        logger.info("email_sent", to=to, subject=subject, has_attachment=attachment is not None)
