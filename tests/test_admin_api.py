from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_EMAIL, USER_PASSWORD, login
from mailroom.database import Database


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/api/authorized-users"),
        ("get", "/api/audit"),
        ("get", "/api/email/logs"),
        ("delete", "/api/authorized-users/1"),
    ],
)
def test_admin_routes_reject_senders(client: TestClient, method: str, path: str) -> None:
    assert getattr(client, method)(path).status_code == 401

    login(client, USER_EMAIL, USER_PASSWORD)
    response = getattr(client, method)(path)
    assert response.status_code == 403
    assert response.json() == {"status": "error", "message": "Admin access required."}


def test_bulk_create_and_audit_trail(client: TestClient, database: Database) -> None:
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    response = client.post(
        "/api/authorized-users",
        json={"emails": ["new@example.com", USER_EMAIL, "NEW@example.com"], "role": "ADMIN"},
    )
    assert response.status_code == 200
    assert response.json()["results"] == [
        {"email": "new@example.com", "status": "created"},
        {"email": USER_EMAIL, "status": "duplicate"},
        {"email": "new@example.com", "status": "duplicate"},
    ]

    listed = client.get("/api/authorized-users").json()
    assert [entry["email"] for entry in listed] == [ADMIN_EMAIL, "new@example.com", USER_EMAIL]
    assert listed[1]["role"] == "ADMIN"
    assert "password_hash" not in listed[1]

    audit = client.get("/api/audit").json()
    assert audit[0]["description"] == "Added authorized user new@example.com"
    assert audit[0]["user"]["email"] == ADMIN_EMAIL

    assert client.get("/api/audit", params={"limit": 0}).status_code == 422


def test_reset_and_remove(client: TestClient, database: Database) -> None:
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    admin = database.get_authorized_user_by_email(ADMIN_EMAIL)
    sender = database.get_authorized_user_by_email(USER_EMAIL)

    short = client.post(f"/api/authorized-users/{sender.id}/reset-password", json={"password": "short"})
    assert short.status_code == 422

    reset = client.post(f"/api/authorized-users/{sender.id}/reset-password", json={"password": "reset-password-1"})
    assert reset.status_code == 200
    assert database.authenticate(USER_EMAIL, "reset-password-1").must_change_password is True

    itself = client.delete(f"/api/authorized-users/{admin.id}")
    assert itself.status_code == 409

    assert client.delete("/api/authorized-users/9999").status_code == 404
    assert client.delete(f"/api/authorized-users/{sender.id}").json() == {"status": "ok"}
    assert database.get_authorized_user_by_email(USER_EMAIL) is None


def test_demoted_admin_loses_access_immediately(client: TestClient, database: Database) -> None:
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert client.get("/api/audit").status_code == 200

    admin = database.get_authorized_user_by_email(ADMIN_EMAIL)
    database.delete_authorized_user(admin.id)

    assert client.get("/api/audit").status_code == 403
    assert client.get("/api/templates").status_code == 403
