from __future__ import annotations

import pytest

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_EMAIL, USER_PASSWORD, login
from mailroom.database import Database
from mailroom.errors import ForbiddenError, NotFoundError
from mailroom.security import SessionIdentity
from mailroom.templates import TemplateService

ADMIN = SessionIdentity(email=ADMIN_EMAIL)
SENDER = SessionIdentity(email=USER_EMAIL)


def test_templates_are_listed_by_name(database: Database) -> None:
    service = TemplateService(database)
    service.create(ADMIN, name="Welcome", subject="  ", body="Hello there")
    service.create(ADMIN, name="Invoice", subject="Your invoice", body="Attached.")

    templates = service.list(SENDER)
    assert [template.name for template in templates] == ["Invoice", "Welcome"]
    assert templates[1].subject is None


def test_only_admins_manage_templates(database: Database) -> None:
    service = TemplateService(database)
    with pytest.raises(ForbiddenError):
        service.create(SENDER, name="Welcome", subject=None, body="Hello")


def test_update_and_remove_unknown_template(database: Database) -> None:
    service = TemplateService(database)
    template = service.create(ADMIN, name="Welcome", subject=None, body="Hello")

    with pytest.raises(NotFoundError):
        service.update(ADMIN, template.id + 1, name="Other", subject=None, body="Body")
    with pytest.raises(NotFoundError):
        service.remove(ADMIN, template.id + 1)

    assert [item.id for item in database.list_templates()] == [template.id]

    updated = service.update(ADMIN, template.id, name="Welcome back", subject="Hi", body="Hello again")
    assert updated.name == "Welcome back"
    assert updated.subject == "Hi"
    assert updated.updated_at >= template.updated_at


def test_template_routes(client, database: Database) -> None:
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    created = client.post("/api/templates", json={"name": "Welcome", "subject": "Hi", "body": "Hello"})
    assert created.status_code == 201
    template_id = created.json()["id"]

    short_name = client.post("/api/templates", json={"name": "ab", "body": "Hello"})
    assert short_name.status_code == 422
    assert short_name.json()["status"] == "error"

    missing = client.delete(f"/api/templates/{template_id + 1}")
    assert missing.status_code == 404
    assert missing.json() == {"status": "error", "message": "Template not found."}
    assert len(database.list_templates()) == 1

    updated = client.put(f"/api/templates/{template_id}", json={"name": "Welcome", "body": "Changed"})
    assert updated.status_code == 200
    assert updated.json()["body"] == "Changed"
    assert updated.json()["subject"] is None

    assert client.delete(f"/api/templates/{template_id}").json() == {"status": "ok"}
    assert database.list_templates() == []


def test_senders_can_read_but_not_write_templates(client) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)

    assert client.get("/api/templates").status_code == 200
    response = client.post("/api/templates", json={"name": "Welcome", "body": "Hello"})
    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required."
