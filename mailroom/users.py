"""Management of the sender allow-list."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional

from .audit import AuditTrail
from .database import Database
from .errors import ConflictError, InvalidRequestError, NotFoundError, UnauthorizedError
from .models import AuthorizedUser, Role
from .security import SessionIdentity, require_admin_user, require_authorized_user

logger = logging.getLogger("mailroom.users")


@dataclass(frozen=True)
class CreationResult:
    email: str
    status: Literal["created", "duplicate"]


class AuthorizedUserService:
    """Operations on :class:`~mailroom.models.AuthorizedUser` records.

    Every mutation leaves an entry in the audit trail.
    """

    def __init__(self, database: Database, audit: AuditTrail) -> None:
        self._database = database
        self._audit = audit

    def current(self, identity: Optional[SessionIdentity]) -> AuthorizedUser:
        return require_authorized_user(self._database, identity)

    def change_password(
        self,
        identity: Optional[SessionIdentity],
        *,
        current_password: str,
        new_password: str,
    ) -> None:
        user = require_authorized_user(self._database, identity)
        if not self._database.verify_password(user.id, current_password):
            raise UnauthorizedError("Current password is incorrect.")

        self._database.set_password(user.id, new_password, must_change_password=False)
        self._audit.record(f"Changed password for {user.email}", actor=user)

    def list(self, identity: Optional[SessionIdentity]) -> List[AuthorizedUser]:
        require_admin_user(self._database, identity)
        return self._database.list_authorized_users()

    def create(
        self,
        identity: Optional[SessionIdentity],
        emails: Iterable[str],
        *,
        role: Role = Role.USER,
    ) -> List[CreationResult]:
        """Add every new address in ``emails``; existing ones are reported as duplicates.

        A new user's temporary password is their own email address and they
        are asked to change it on first use.
        """

        admin = require_admin_user(self._database, identity)

        candidates = [email.strip().lower() for email in emails]
        candidates = [email for email in candidates if email]
        if not candidates:
            raise InvalidRequestError("No valid email addresses provided.")

        results: List[CreationResult] = []
        seen: set[str] = set()
        for email in candidates:
            if email in seen or self._database.get_authorized_user_by_email(email) is not None:
                seen.add(email)
                results.append(CreationResult(email=email, status="duplicate"))
                continue
            seen.add(email)
            try:
                self._database.create_authorized_user(
                    email,
                    email,
                    role=role,
                    must_change_password=True,
                )
            except ConflictError:
                # Lost a race with a concurrent insert of the same address.
                results.append(CreationResult(email=email, status="duplicate"))
                continue
            self._audit.record(f"Added authorized user {email}", actor=admin)
            results.append(CreationResult(email=email, status="created"))

        logger.info(
            "%s added %d of %d submitted address(es) to the allow-list",
            admin.email,
            sum(1 for result in results if result.status == "created"),
            len(results),
        )
        return results

    def create_one(
        self,
        email: str,
        password: str,
        *,
        role: Role = Role.USER,
        must_change_password: bool = True,
    ) -> AuthorizedUser:
        """Add a single address, failing with :class:`ConflictError` when it exists."""

        user = self._database.create_authorized_user(
            email,
            password,
            role=role,
            must_change_password=must_change_password,
        )
        self._audit.record(f"Added authorized user {user.email}", actor=None)
        return user

    def reset_password(self, identity: Optional[SessionIdentity], user_id: int, password: str) -> AuthorizedUser:
        admin = require_admin_user(self._database, identity)
        updated = self._database.set_password(user_id, password, must_change_password=True)
        if updated is None:
            raise NotFoundError("Authorized user not found.")
        self._audit.record(f"Reset password for authorized user {updated.email}", actor=admin)
        return updated

    def remove(self, identity: Optional[SessionIdentity], user_id: int) -> AuthorizedUser:
        admin = require_admin_user(self._database, identity)
        if admin.id == user_id:
            raise ConflictError("You cannot remove your own account.")

        target = self._database.get_authorized_user(user_id)
        if target is None or not self._database.delete_authorized_user(user_id):
            raise NotFoundError("Authorized user not found.")
        self._audit.record(f"Removed authorized user {target.email}", actor=admin)
        return target


__all__ = ["AuthorizedUserService", "CreationResult"]
