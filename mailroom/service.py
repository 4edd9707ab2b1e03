"""Application factory for the mailroom service."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api import register_api_routes
from .audit import AuditTrail
from .composer import EmailComposer
from .config import Settings, load_settings, resolve_config_path
from .database import Database, resolve_database_path
from .errors import MailroomError
from .mailer import Mailer, SMTPMailer
from .security import PasswordHasher
from .templates import TemplateService
from .users import AuthorizedUserService

logger = logging.getLogger("mailroom.service")

SESSION_COOKIE_NAME = "mailroom_session"
SESSION_MAX_AGE = 60 * 60 * 8


def _trusted_proxy_hosts() -> List[str] | str:
    raw = os.getenv("MAILROOM_TRUSTED_PROXIES")
    if not raw:
        return "127.0.0.1"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "127.0.0.1"


def _validation_message(error: Dict[str, Any]) -> str:
    ctx = error.get("ctx") or {}
    cause = ctx.get("error")
    if isinstance(cause, Exception):
        return str(cause)

    message = str(error.get("msg", "Invalid request."))
    location = [str(part) for part in error.get("loc", ()) if part != "body"]
    if location:
        return f"{'.'.join(location)}: {message}"
    return message


def _error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MailroomError)
    async def handle_mailroom_error(request: Request, exc: MailroomError) -> JSONResponse:
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = _validation_message(errors[0]) if errors else "Invalid request."
        return _error_response(
            422,
            message,
            errors=[
                {
                    "loc": [str(part) for part in error.get("loc", ())],
                    "message": _validation_message(error),
                    "type": error.get("type"),
                }
                for error in errors
            ],
        )


def _build_database(settings: Settings) -> Database:
    env_path = str(settings.database_path) if settings.database_path else os.getenv("MAILROOM_DB_PATH")
    return Database(
        resolve_database_path(env_path),
        hasher=PasswordHasher(rounds=settings.password_rounds),
    )


def create_app(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Every collaborator can be injected; anything omitted is built from the
    configuration file named by ``MAILROOM_CONFIG`` and the environment.
    """

    if settings is None:
        settings = load_settings(resolve_config_path(os.getenv("MAILROOM_CONFIG")))

    if not settings.session_secret:
        raise RuntimeError("MAILROOM_SESSION_SECRET must be configured to run the mailroom service")

    db = database or _build_database(settings)
    db.initialize()

    transport = mailer or SMTPMailer(settings.smtp)

    audit = AuditTrail(db)
    users = AuthorizedUserService(db, audit)
    templates = TemplateService(db)
    composer = EmailComposer(db, transport, settings)

    app = FastAPI(
        title="Mailroom",
        version="0.1.0",
        description="Compose and send branded email through the shared service account.",
    )

    if not settings.session_secure:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.session_secure,
        same_site="lax",
        max_age=SESSION_MAX_AGE,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())

    app.state.settings = settings
    app.state.database = db
    app.state.mailer = transport
    app.state.composer = composer

    _register_exception_handlers(app)
    register_api_routes(
        app,
        database=db,
        composer=composer,
        users=users,
        templates=templates,
        audit=audit,
    )

    return app


__all__ = ["SESSION_COOKIE_NAME", "create_app"]
