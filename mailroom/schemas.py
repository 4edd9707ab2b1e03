"""Request and response models for the mailroom JSON API."""
from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .models import AuditLog, AuthorizedUser, EmailLog, Role, Template

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024
MAX_SUBJECT_LENGTH = 120
MAX_BODY_LENGTH = 5000
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def dedupe_addresses(values: List[str]) -> List[str]:
    """Drop blanks and case-insensitive repeats, keeping the first spelling."""

    seen: set[str] = set()
    result: List[str] = []
    for value in values:
        if not value:
            continue
        trimmed = value.strip()
        if not trimmed:
            continue
        key = trimmed.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(trimmed)
    return result


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    name: Optional[str] = Field(default=None, max_length=120)

    @field_validator("name")
    @classmethod
    def _blank_name_is_null(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class AttachmentPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: str = Field(..., min_length=1, max_length=120)
    size: int = Field(..., gt=0, le=MAX_ATTACHMENT_BYTES)
    data: str = Field(..., min_length=1)

    @field_validator("name", "type", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("data")
    @classmethod
    def _validate_base64(cls, value: str) -> str:
        compact = "".join(value.split())
        if not compact:
            raise ValueError("Attachment data must not be empty.")
        try:
            decoded = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Attachment data must be base64 encoded.") from exc
        if len(decoded) > MAX_ATTACHMENT_BYTES:
            raise ValueError("Attachments must be 5 MB or smaller.")
        return compact

    @model_validator(mode="after")
    def _size_matches_data(self) -> "AttachmentPayload":
        if len(self.decode()) != self.size:
            raise ValueError("Attachment size does not match its data.")
        return self

    def decode(self) -> bytes:
        return base64.b64decode(self.data)


class SendEmailRequest(BaseModel):
    to: List[EmailStr]
    cc: List[EmailStr] = Field(default_factory=list)
    bcc: List[EmailStr] = Field(default_factory=list)
    reply_to: List[EmailStr] = Field(default_factory=list)
    subject: str = Field(..., min_length=1, max_length=MAX_SUBJECT_LENGTH)
    body: str = Field(..., min_length=1, max_length=MAX_BODY_LENGTH)
    attachments: List[AttachmentPayload] = Field(default_factory=list, max_length=MAX_ATTACHMENTS)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("to")
    @classmethod
    def _require_recipient(cls, value: List[str]) -> List[str]:
        recipients = dedupe_addresses(value)
        if not recipients:
            raise ValueError("At least one recipient is required.")
        return recipients

    @field_validator("subject")
    @classmethod
    def _single_line_subject(cls, value: str) -> str:
        if "\n" in value or "\r" in value:
            raise ValueError("Subject must be a single line.")
        if not value.strip():
            raise ValueError("Subject is required.")
        return value

    @field_validator("cc", "bcc", "reply_to", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("cc", "bcc", "reply_to")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return dedupe_addresses(value)

    @field_validator("attachments", mode="before")
    @classmethod
    def _attachments_none_as_empty(cls, value: object) -> object:
        return [] if value is None else value


class TemplateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=80)
    subject: Optional[str] = Field(default=None, max_length=MAX_SUBJECT_LENGTH)
    body: str = Field(..., min_length=1, max_length=MAX_BODY_LENGTH)

    @field_validator("subject")
    @classmethod
    def _blank_subject_is_null(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class CreateAuthorizedUsersRequest(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1, max_length=100)
    role: Role = Role.USER


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class StatusResponse(BaseModel):
    status: str = "ok"


class SendEmailResponse(StatusResponse):
    message_id: str


class SessionResponse(BaseModel):
    email: str
    name: Optional[str]
    role: Optional[str]


class CurrentUserResponse(BaseModel):
    id: int
    email: str
    role: Role
    must_change_password: bool

    @classmethod
    def from_user(cls, user: AuthorizedUser) -> "CurrentUserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            must_change_password=user.must_change_password,
        )


class AuthorizedUserResponse(BaseModel):
    id: int
    email: str
    role: Role
    must_change_password: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user: AuthorizedUser) -> "AuthorizedUserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            must_change_password=user.must_change_password,
            created_at=user.created_at,
        )


class CreateResult(BaseModel):
    email: str
    status: Literal["created", "duplicate"]


class CreateAuthorizedUsersResponse(BaseModel):
    results: List[CreateResult]


class TemplateResponse(BaseModel):
    id: int
    name: str
    subject: Optional[str]
    body: str
    updated_at: datetime

    @classmethod
    def from_template(cls, template: Template) -> "TemplateResponse":
        return cls(
            id=template.id,
            name=template.name,
            subject=template.subject,
            body=template.body,
            updated_at=template.updated_at,
        )


class EmailLogResponse(BaseModel):
    id: int
    user_email: str
    subject: str
    body: str
    has_attachment: bool
    created_at: datetime

    @classmethod
    def from_log(cls, log: EmailLog) -> "EmailLogResponse":
        return cls(
            id=log.id,
            user_email=log.user_email,
            subject=log.subject,
            body=log.body,
            has_attachment=log.has_attachment,
            created_at=log.created_at,
        )


class AuditActor(BaseModel):
    id: int
    email: str


class AuditLogResponse(BaseModel):
    id: int
    description: str
    user_email: Optional[str]
    created_at: datetime
    user: Optional[AuditActor] = None

    @classmethod
    def from_log(cls, log: AuditLog) -> "AuditLogResponse":
        actor = None
        if log.user_id is not None and log.actor_email is not None:
            actor = AuditActor(id=log.user_id, email=log.actor_email)
        return cls(
            id=log.id,
            description=log.description,
            user_email=log.user_email,
            created_at=log.created_at,
            user=actor,
        )


__all__ = [
    "AttachmentPayload",
    "AuditLogResponse",
    "AuthorizedUserResponse",
    "ChangePasswordRequest",
    "CreateAuthorizedUsersRequest",
    "CreateAuthorizedUsersResponse",
    "CreateResult",
    "CurrentUserResponse",
    "EmailLogResponse",
    "LoginRequest",
    "MAX_ATTACHMENTS",
    "MAX_ATTACHMENT_BYTES",
    "PASSWORD_MIN_LENGTH",
    "ResetPasswordRequest",
    "SendEmailRequest",
    "SendEmailResponse",
    "SessionResponse",
    "StatusResponse",
    "TemplateRequest",
    "TemplateResponse",
    "dedupe_addresses",
]
