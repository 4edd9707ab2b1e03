"""Password-gated composition and delivery of branded emails."""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import anyio

from .config import Settings
from .database import Database
from .errors import MailroomError, UnauthorizedError
from .mailer import Mailer, OutgoingAttachment, OutgoingEmail, build_message
from .models import AuthorizedUser, EmailLog
from .rendering import render_email_html
from .schemas import SendEmailRequest, dedupe_addresses
from .security import SessionIdentity, require_authorized_user

logger = logging.getLogger("mailroom.composer")


class SendStage(str, Enum):
    AUTHORIZING = "authorizing"
    RENDERING = "rendering"
    DISPATCHING = "dispatching"


@dataclass(frozen=True)
class SendResult:
    message_id: str
    log: EmailLog
    reply_to: List[str]


class EmailComposer:
    """Runs one send attempt from a validated draft to a logged delivery.

    The session alone is not enough to send: the caller re-enters their
    password, which is checked against the allow-list before anything is
    rendered or dispatched. Nothing is logged unless the relay accepts the
    message.
    """

    def __init__(self, database: Database, mailer: Mailer, settings: Settings) -> None:
        self._database = database
        self._mailer = mailer
        self._settings = settings

    def display_name_for(self, identity: Optional[SessionIdentity]) -> str:
        if identity is not None and identity.name:
            return identity.name
        return self._settings.from_name or self._settings.brand.name

    def reply_to_for(self, sender_email: str, request: SendEmailRequest) -> List[str]:
        """Service address first, then the sender, explicit entries, and every Cc."""

        return dedupe_addresses(
            [
                self._settings.from_address,
                sender_email,
                *request.reply_to,
                *request.cc,
            ]
        )

    async def _authorize(self, identity: Optional[SessionIdentity], password: str) -> AuthorizedUser:
        user = await anyio.to_thread.run_sync(require_authorized_user, self._database, identity)
        matches = await anyio.to_thread.run_sync(self._database.verify_password, user.id, password)
        if not matches:
            raise UnauthorizedError("Incorrect password.")
        return user

    def _compose(
        self,
        identity: Optional[SessionIdentity],
        user: AuthorizedUser,
        request: SendEmailRequest,
    ) -> OutgoingEmail:
        sender_email = (identity.email if identity is not None and identity.email else None) or user.email
        return OutgoingEmail(
            from_name=self.display_name_for(identity),
            from_address=self._settings.from_address,
            to=list(request.to),
            cc=list(request.cc),
            bcc=list(request.bcc),
            reply_to=self.reply_to_for(sender_email, request),
            subject=request.subject,
            html=render_email_html(request.body, brand=self._settings.brand, subject=request.subject),
            attachments=[
                OutgoingAttachment(
                    filename=attachment.name,
                    content=attachment.decode(),
                    content_type=attachment.type,
                )
                for attachment in request.attachments
            ],
        )

    async def send(self, identity: Optional[SessionIdentity], request: SendEmailRequest) -> SendResult:
        caller = identity.email if identity is not None else None
        stage = SendStage.AUTHORIZING
        try:
            user = await self._authorize(identity, request.password)

            stage = SendStage.RENDERING
            outgoing = self._compose(identity, user, request)
            message = build_message(outgoing)

            stage = SendStage.DISPATCHING
            await self._mailer.send(
                message,
                sender=outgoing.from_address,
                recipients=outgoing.recipients,
            )
        except MailroomError as exc:
            logger.warning("Send by %s failed while %s: %s", caller, stage.value, exc.message)
            raise

        log = await anyio.to_thread.run_sync(
            functools.partial(
                self._database.add_email_log,
                user_email=caller or user.email,
                subject=request.subject,
                body=request.body,
                has_attachment=bool(request.attachments),
            )
        )
        logger.info(
            "%s sent '%s' to %d recipient(s)",
            log.user_email,
            request.subject,
            len(outgoing.recipients),
        )
        return SendResult(
            message_id=str(message["Message-ID"]),
            log=log,
            reply_to=list(outgoing.reply_to),
        )


__all__ = ["EmailComposer", "SendResult", "SendStage"]
