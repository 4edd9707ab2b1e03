"""Reusable message templates offered in the composer."""
from __future__ import annotations

import logging
from typing import List, Optional

from .database import Database
from .errors import NotFoundError
from .models import Template
from .security import SessionIdentity, require_admin_user, require_authorized_user

logger = logging.getLogger("mailroom.templates")


def _normalize_subject(subject: Optional[str]) -> Optional[str]:
    if subject is None:
        return None
    stripped = subject.strip()
    return stripped or None


class TemplateService:
    def __init__(self, database: Database) -> None:
        self._database = database

    def list(self, identity: Optional[SessionIdentity]) -> List[Template]:
        require_authorized_user(self._database, identity)
        return self._database.list_templates()

    def create(
        self,
        identity: Optional[SessionIdentity],
        *,
        name: str,
        subject: Optional[str],
        body: str,
    ) -> Template:
        admin = require_admin_user(self._database, identity)
        template = self._database.create_template(
            name=name,
            subject=_normalize_subject(subject),
            body=body,
        )
        logger.info("%s created template #%s (%s)", admin.email, template.id, template.name)
        return template

    def update(
        self,
        identity: Optional[SessionIdentity],
        template_id: int,
        *,
        name: str,
        subject: Optional[str],
        body: str,
    ) -> Template:
        admin = require_admin_user(self._database, identity)
        template = self._database.update_template(
            template_id,
            name=name,
            subject=_normalize_subject(subject),
            body=body,
        )
        if template is None:
            raise NotFoundError("Template not found.")
        logger.info("%s updated template #%s (%s)", admin.email, template.id, template.name)
        return template

    def remove(self, identity: Optional[SessionIdentity], template_id: int) -> None:
        admin = require_admin_user(self._database, identity)
        if not self._database.delete_template(template_id):
            raise NotFoundError("Template not found.")
        logger.info("%s removed template #%s", admin.email, template_id)


__all__ = ["TemplateService"]
