from __future__ import annotations

from email.message import EmailMessage
from pathlib import Path
import sys
from typing import List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mailroom.config import BrandSettings, Settings, SMTPSettings
from mailroom.database import Database
from mailroom.errors import DeliveryError
from mailroom.models import Role
from mailroom.security import PasswordHasher
from mailroom.service import create_app


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password-123"
USER_EMAIL = "sender@example.com"
USER_PASSWORD = "sender-password-123"
SERVICE_ADDRESS = "no-reply@example.org"


class RecordingMailer:
    """Stands in for the SMTP relay and keeps every accepted message."""

    def __init__(self) -> None:
        self.sent: List[dict] = []

    async def send(self, message: EmailMessage, *, sender: str, recipients: Sequence[str]) -> None:
        self.sent.append({"message": message, "sender": sender, "recipients": list(recipients)})


class FailingMailer(RecordingMailer):
    async def send(self, message: EmailMessage, *, sender: str, recipients: Sequence[str]) -> None:
        raise DeliveryError("Failed to send email. Please try again.")


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        smtp=SMTPSettings(host="smtp.example.org"),
        from_address=SERVICE_ADDRESS,
        brand=BrandSettings(name="Acme"),
        session_secret="tests-secret-key",
        session_secure=False,
        password_rounds=4,
    )


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "mailroom.sqlite3", hasher=PasswordHasher(rounds=4))
    db.initialize()
    db.create_authorized_user(ADMIN_EMAIL, ADMIN_PASSWORD, role=Role.ADMIN, must_change_password=False)
    db.create_authorized_user(USER_EMAIL, USER_PASSWORD, role=Role.USER, must_change_password=False)
    return db


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(settings: Settings, database: Database, mailer: RecordingMailer):
    app = create_app(settings=settings, database=database, mailer=mailer)
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, email: str, password: str, name: Optional[str] = None) -> None:
    payload = {"email": email, "password": password}
    if name is not None:
        payload["name"] = name
    response = client.post("/auth/login", json=payload)
    assert response.status_code == 200, response.text
