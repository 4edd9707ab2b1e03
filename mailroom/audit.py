"""Append-only audit trail and access to the email delivery log."""
from __future__ import annotations

import logging
from typing import List, Optional

from .database import Database
from .errors import InvalidRequestError
from .models import AuditLog, AuthorizedUser, EmailLog
from .security import SessionIdentity, require_admin_user, require_authorized_user

logger = logging.getLogger("mailroom.audit")

AUDIT_DEFAULT_LIMIT = 100
AUDIT_MAX_LIMIT = 500
EMAIL_LOG_DEFAULT_LIMIT = 50
EMAIL_LOG_MAX_LIMIT = 100
MY_EMAIL_LOG_DEFAULT_LIMIT = 20
MY_EMAIL_LOG_MAX_LIMIT = 50


def _check_limit(limit: int, maximum: int) -> int:
    if limit < 1 or limit > maximum:
        raise InvalidRequestError(f"Limit must be between 1 and {maximum}.")
    return limit


class AuditTrail:
    """Records sensitive actions and serves both logs to their readers."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def record(self, description: str, *, actor: Optional[AuthorizedUser]) -> AuditLog:
        entry = self._database.add_audit_log(
            description,
            user_id=actor.id if actor is not None else None,
            user_email=actor.email if actor is not None else None,
        )
        logger.info("%s (actor=%s)", description, actor.email if actor is not None else "system")
        return entry

    def list(self, identity: Optional[SessionIdentity], *, limit: int = AUDIT_DEFAULT_LIMIT) -> List[AuditLog]:
        require_admin_user(self._database, identity)
        return self._database.list_audit_logs(limit=_check_limit(limit, AUDIT_MAX_LIMIT))

    def email_logs(
        self,
        identity: Optional[SessionIdentity],
        *,
        limit: int = EMAIL_LOG_DEFAULT_LIMIT,
    ) -> List[EmailLog]:
        require_admin_user(self._database, identity)
        return self._database.list_email_logs(limit=_check_limit(limit, EMAIL_LOG_MAX_LIMIT))

    def my_email_logs(
        self,
        identity: Optional[SessionIdentity],
        *,
        limit: int = MY_EMAIL_LOG_DEFAULT_LIMIT,
    ) -> List[EmailLog]:
        user = require_authorized_user(self._database, identity)
        return self._database.list_email_logs(
            limit=_check_limit(limit, MY_EMAIL_LOG_MAX_LIMIT),
            user_email=user.email,
        )


__all__ = [
    "AUDIT_DEFAULT_LIMIT",
    "AUDIT_MAX_LIMIT",
    "AuditTrail",
    "EMAIL_LOG_DEFAULT_LIMIT",
    "EMAIL_LOG_MAX_LIMIT",
    "MY_EMAIL_LOG_DEFAULT_LIMIT",
    "MY_EMAIL_LOG_MAX_LIMIT",
]
