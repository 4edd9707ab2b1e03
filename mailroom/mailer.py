"""Outbound SMTP delivery through the shared service account."""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import List, Optional, Protocol, Sequence

import aiosmtplib

from .config import SMTPSettings
from .errors import DeliveryError

logger = logging.getLogger("mailroom.mailer")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class OutgoingAttachment:
    filename: str
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class OutgoingEmail:
    """Everything needed to produce a single SMTP transaction."""

    from_name: str
    from_address: str
    to: Sequence[str]
    subject: str
    html: str
    cc: Sequence[str] = ()
    bcc: Sequence[str] = ()
    reply_to: Sequence[str] = ()
    attachments: Sequence[OutgoingAttachment] = field(default_factory=tuple)

    @property
    def recipients(self) -> List[str]:
        """Envelope recipients; Bcc addresses only ever appear here."""

        seen: set[str] = set()
        result: List[str] = []
        for address in [*self.to, *self.cc, *self.bcc]:
            key = address.lower()
            if key in seen:
                continue
            seen.add(key)
            result.append(address)
        return result


def _split_content_type(content_type: Optional[str]) -> tuple[str, str]:
    maintype, _, subtype = (content_type or "").strip().lower().partition("/")
    if not maintype or not subtype or maintype == "multipart":
        maintype, _, subtype = DEFAULT_CONTENT_TYPE.partition("/")
    return maintype, subtype.split(";", 1)[0].strip() or "octet-stream"


def build_message(email: OutgoingEmail) -> EmailMessage:
    """Assemble the MIME document for ``email``."""

    domain = email.from_address.rsplit("@", 1)[-1]

    message = EmailMessage()
    message["Subject"] = email.subject
    message["From"] = formataddr((email.from_name, email.from_address))
    message["To"] = ", ".join(email.to)
    if email.cc:
        message["Cc"] = ", ".join(email.cc)
    if email.reply_to:
        message["Reply-To"] = ", ".join(email.reply_to)
    message["Date"] = formatdate(localtime=False, usegmt=True)
    message["Message-ID"] = make_msgid(domain=domain)
    message.set_content(email.html, subtype="html")

    for attachment in email.attachments:
        maintype, subtype = _split_content_type(attachment.content_type)
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype,
            filename=attachment.filename,
        )

    return message


class Mailer(Protocol):
    async def send(self, message: EmailMessage, *, sender: str, recipients: Sequence[str]) -> None:
        ...


class SMTPMailer:
    """Deliver messages through the configured relay, one connection per send.

    There is no retry: any transport failure surfaces once as
    :class:`~mailroom.errors.DeliveryError`.
    """

    def __init__(self, settings: SMTPSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> SMTPSettings:
        return self._settings

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self._settings.tls_min_version == "TLSv1.3":
            context.minimum_version = ssl.TLSVersion.TLSv1_3
        else:
            context.minimum_version = ssl.TLSVersion.TLSv1_2
        if not self._settings.tls_reject_unauthorized:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _start_tls(self) -> Optional[bool]:
        if self._settings.secure:
            return False
        # None lets aiosmtplib upgrade opportunistically when the server offers it.
        return True if self._settings.require_tls else None

    async def send(self, message: EmailMessage, *, sender: str, recipients: Sequence[str]) -> None:
        settings = self._settings
        try:
            await aiosmtplib.send(
                message,
                sender=sender,
                recipients=list(recipients),
                hostname=settings.host,
                port=settings.port,
                username=settings.username,
                password=settings.password,
                use_tls=settings.secure,
                start_tls=self._start_tls(),
                validate_certs=settings.tls_reject_unauthorized,
                tls_context=self._tls_context(),
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error(
                "SMTP delivery via %s:%s failed: %s",
                settings.host,
                settings.port,
                exc,
            )
            raise DeliveryError("Failed to send email. Please try again.") from exc


__all__ = [
    "Mailer",
    "OutgoingAttachment",
    "OutgoingEmail",
    "SMTPMailer",
    "build_message",
]
