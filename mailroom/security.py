"""Password hashing and authorization guards for the mailroom API."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Optional

from passlib.context import CryptContext

from .errors import ForbiddenError
from .models import AuthorizedUser

if TYPE_CHECKING:  # pragma: no cover
    from .database import Database

DEFAULT_BCRYPT_ROUNDS = 12


class PasswordHasher:
    """Salted bcrypt hashing with constant-time verification."""

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: Optional[str]) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            return False


@dataclass(frozen=True)
class SessionIdentity:
    """The caller as described by the session cookie.

    ``role`` mirrors what was true at login time and is never used for
    authorization decisions; the allow-list is queried on every request.
    """

    email: Optional[str]
    name: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_session(cls, session: Mapping[str, object]) -> Optional["SessionIdentity"]:
        email = session.get("email")
        if not isinstance(email, str) or not email.strip():
            return None
        name = session.get("name")
        role = session.get("role")
        return cls(
            email=email.strip().lower(),
            name=name if isinstance(name, str) and name.strip() else None,
            role=role if isinstance(role, str) else None,
        )


def require_authorized_user(database: "Database", identity: Optional[SessionIdentity]) -> AuthorizedUser:
    """Return the allow-list record for the session email or raise :class:`ForbiddenError`."""

    email = identity.email if identity is not None else None
    if not email:
        raise ForbiddenError("Missing email for authorization.")

    record = database.get_authorized_user_by_email(email)
    if record is None:
        raise ForbiddenError("You are not authorized to use this tool.")
    return record


def require_admin_user(database: "Database", identity: Optional[SessionIdentity]) -> AuthorizedUser:
    """Return the caller's record when the allow-list grants them the admin role."""

    email = identity.email if identity is not None else None
    record = database.get_authorized_user_by_email(email) if email else None
    if record is None or not record.is_admin:
        raise ForbiddenError("Admin access required.")
    return record


__all__ = [
    "DEFAULT_BCRYPT_ROUNDS",
    "PasswordHasher",
    "SessionIdentity",
    "require_admin_user",
    "require_authorized_user",
]
