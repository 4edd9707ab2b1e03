"""Domain models stored in the mailroom database."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class AuthorizedUser:
    """A member of the allow-list permitted to send mail."""

    id: int
    email: str
    password_hash: str
    must_change_password: bool
    role: Role
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Template:
    """A reusable subject/body pair offered in the composer."""

    id: int
    name: str
    subject: Optional[str]
    body: str
    updated_at: datetime


@dataclass(frozen=True)
class EmailLog:
    id: int
    user_email: str
    subject: str
    body: str
    has_attachment: bool
    created_at: datetime


@dataclass(frozen=True)
class AuditLog:
    """An administrative action, optionally joined with the acting user."""

    id: int
    description: str
    user_id: Optional[int]
    user_email: Optional[str]
    created_at: datetime
    actor_email: Optional[str] = None


__all__ = ["AuditLog", "AuthorizedUser", "EmailLog", "Role", "Template"]
