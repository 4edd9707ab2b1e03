"""Exceptions raised by the mailroom services and their HTTP status codes."""

from __future__ import annotations

from fastapi import status


class MailroomError(Exception):
    """Base class for failures that are reported back to the caller verbatim."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(MailroomError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(MailroomError):
    """Raised when a re-entered or current password does not match."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(MailroomError):
    """Raised when the caller is not on the allow-list or lacks the admin role."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(MailroomError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(MailroomError):
    status_code = status.HTTP_409_CONFLICT


class DeliveryError(MailroomError):
    """Raised when the SMTP relay rejects or fails to accept a message."""

    status_code = status.HTTP_502_BAD_GATEWAY


__all__ = [
    "ConflictError",
    "DeliveryError",
    "ForbiddenError",
    "InvalidRequestError",
    "MailroomError",
    "NotFoundError",
    "UnauthorizedError",
]
