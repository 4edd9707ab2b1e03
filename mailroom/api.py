"""JSON procedures consumed by the mailroom UI."""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Dict, List, TypeVar

import anyio
from fastapi import Depends, FastAPI, Query, Request, status

from .audit import (
    AUDIT_DEFAULT_LIMIT,
    AUDIT_MAX_LIMIT,
    EMAIL_LOG_DEFAULT_LIMIT,
    EMAIL_LOG_MAX_LIMIT,
    MY_EMAIL_LOG_DEFAULT_LIMIT,
    MY_EMAIL_LOG_MAX_LIMIT,
    AuditTrail,
)
from .composer import EmailComposer
from .database import Database
from .errors import UnauthorizedError
from .schemas import (
    AuditLogResponse,
    AuthorizedUserResponse,
    ChangePasswordRequest,
    CreateAuthorizedUsersRequest,
    CreateAuthorizedUsersResponse,
    CreateResult,
    CurrentUserResponse,
    EmailLogResponse,
    LoginRequest,
    ResetPasswordRequest,
    SendEmailRequest,
    SendEmailResponse,
    SessionResponse,
    StatusResponse,
    TemplateRequest,
    TemplateResponse,
)
from .security import SessionIdentity
from .templates import TemplateService
from .users import AuthorizedUserService

logger = logging.getLogger("mailroom.api")

T = TypeVar("T")


async def _run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run blocking store or hashing work off the event loop."""

    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))


def current_identity(request: Request) -> SessionIdentity:
    identity = SessionIdentity.from_session(request.session)
    if identity is None:
        raise UnauthorizedError("Authentication required.")
    return identity


def register_api_routes(
    app: FastAPI,
    *,
    database: Database,
    composer: EmailComposer,
    users: AuthorizedUserService,
    templates: TemplateService,
    audit: AuditTrail,
) -> None:
    """Expose the session, email, template, allow-list, and audit endpoints."""

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @app.post("/auth/login", response_model=SessionResponse)
    async def login(payload: LoginRequest, request: Request) -> SessionResponse:
        user = await _run_sync(database.authenticate, payload.email, payload.password)
        if user is None:
            logger.info("Rejected login for %s", payload.email)
            raise UnauthorizedError("Invalid email or password.")

        request.session.clear()
        request.session["email"] = user.email
        request.session["role"] = user.role.value
        if payload.name:
            request.session["name"] = payload.name
        logger.info("%s signed in", user.email)
        return SessionResponse(email=user.email, name=payload.name, role=user.role.value)

    @app.post("/auth/logout", response_model=StatusResponse)
    async def logout(request: Request) -> StatusResponse:
        request.session.clear()
        return StatusResponse()

    @app.get("/auth/session", response_model=SessionResponse)
    async def session_info(identity: SessionIdentity = Depends(current_identity)) -> SessionResponse:
        return SessionResponse(email=identity.email or "", name=identity.name, role=identity.role)

    # ------------------------------------------------------------------
    # email.*
    # ------------------------------------------------------------------
    @app.post("/api/email/send", response_model=SendEmailResponse)
    async def send_email(
        payload: SendEmailRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> SendEmailResponse:
        result = await composer.send(identity, payload)
        return SendEmailResponse(message_id=result.message_id)

    @app.get("/api/email/logs", response_model=List[EmailLogResponse])
    async def email_logs(
        limit: int = Query(EMAIL_LOG_DEFAULT_LIMIT, ge=1, le=EMAIL_LOG_MAX_LIMIT),
        identity: SessionIdentity = Depends(current_identity),
    ) -> List[EmailLogResponse]:
        logs = await _run_sync(audit.email_logs, identity, limit=limit)
        return [EmailLogResponse.from_log(log) for log in logs]

    @app.get("/api/email/my-logs", response_model=List[EmailLogResponse])
    async def my_email_logs(
        limit: int = Query(MY_EMAIL_LOG_DEFAULT_LIMIT, ge=1, le=MY_EMAIL_LOG_MAX_LIMIT),
        identity: SessionIdentity = Depends(current_identity),
    ) -> List[EmailLogResponse]:
        logs = await _run_sync(audit.my_email_logs, identity, limit=limit)
        return [EmailLogResponse.from_log(log) for log in logs]

    # ------------------------------------------------------------------
    # templates.*
    # ------------------------------------------------------------------
    @app.get("/api/templates", response_model=List[TemplateResponse])
    async def list_templates(identity: SessionIdentity = Depends(current_identity)) -> List[TemplateResponse]:
        items = await _run_sync(templates.list, identity)
        return [TemplateResponse.from_template(item) for item in items]

    @app.post(
        "/api/templates",
        status_code=status.HTTP_201_CREATED,
        response_model=TemplateResponse,
    )
    async def create_template(
        payload: TemplateRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> TemplateResponse:
        template = await _run_sync(
            templates.create,
            identity,
            name=payload.name,
            subject=payload.subject,
            body=payload.body,
        )
        return TemplateResponse.from_template(template)

    @app.put("/api/templates/{template_id}", response_model=TemplateResponse)
    async def update_template(
        template_id: int,
        payload: TemplateRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> TemplateResponse:
        template = await _run_sync(
            templates.update,
            identity,
            template_id,
            name=payload.name,
            subject=payload.subject,
            body=payload.body,
        )
        return TemplateResponse.from_template(template)

    @app.delete("/api/templates/{template_id}", response_model=StatusResponse)
    async def remove_template(
        template_id: int,
        identity: SessionIdentity = Depends(current_identity),
    ) -> StatusResponse:
        await _run_sync(templates.remove, identity, template_id)
        return StatusResponse()

    # ------------------------------------------------------------------
    # authorizedUsers.*
    # ------------------------------------------------------------------
    @app.get("/api/authorized-users/current", response_model=CurrentUserResponse)
    async def current_user(identity: SessionIdentity = Depends(current_identity)) -> CurrentUserResponse:
        user = await _run_sync(users.current, identity)
        return CurrentUserResponse.from_user(user)

    @app.post("/api/authorized-users/change-password", response_model=StatusResponse)
    async def change_password(
        payload: ChangePasswordRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> StatusResponse:
        await _run_sync(
            users.change_password,
            identity,
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
        return StatusResponse()

    @app.get("/api/authorized-users", response_model=List[AuthorizedUserResponse])
    async def list_authorized_users(
        identity: SessionIdentity = Depends(current_identity),
    ) -> List[AuthorizedUserResponse]:
        records = await _run_sync(users.list, identity)
        return [AuthorizedUserResponse.from_user(record) for record in records]

    @app.post("/api/authorized-users", response_model=CreateAuthorizedUsersResponse)
    async def create_authorized_users(
        payload: CreateAuthorizedUsersRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> CreateAuthorizedUsersResponse:
        results = await _run_sync(users.create, identity, payload.emails, role=payload.role)
        return CreateAuthorizedUsersResponse(
            results=[CreateResult(email=result.email, status=result.status) for result in results]
        )

    @app.post("/api/authorized-users/{user_id}/reset-password", response_model=StatusResponse)
    async def reset_password(
        user_id: int,
        payload: ResetPasswordRequest,
        identity: SessionIdentity = Depends(current_identity),
    ) -> StatusResponse:
        await _run_sync(users.reset_password, identity, user_id, payload.password)
        return StatusResponse()

    @app.delete("/api/authorized-users/{user_id}", response_model=StatusResponse)
    async def remove_authorized_user(
        user_id: int,
        identity: SessionIdentity = Depends(current_identity),
    ) -> StatusResponse:
        await _run_sync(users.remove, identity, user_id)
        return StatusResponse()

    # ------------------------------------------------------------------
    # audit.*
    # ------------------------------------------------------------------
    @app.get("/api/audit", response_model=List[AuditLogResponse])
    async def list_audit(
        limit: int = Query(AUDIT_DEFAULT_LIMIT, ge=1, le=AUDIT_MAX_LIMIT),
        identity: SessionIdentity = Depends(current_identity),
    ) -> List[AuditLogResponse]:
        entries = await _run_sync(audit.list, identity, limit=limit)
        return [AuditLogResponse.from_log(entry) for entry in entries]


__all__ = ["current_identity", "register_api_routes"]
