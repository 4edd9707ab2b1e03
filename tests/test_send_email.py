from __future__ import annotations

import base64

from fastapi.testclient import TestClient

from conftest import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    SERVICE_ADDRESS,
    USER_EMAIL,
    USER_PASSWORD,
    FailingMailer,
    login,
)
from mailroom.database import Database
from mailroom.schemas import MAX_ATTACHMENT_BYTES, MAX_BODY_LENGTH, MAX_SUBJECT_LENGTH
from mailroom.service import create_app


def _payload(**overrides):
    payload = {
        "to": ["recipient@example.com"],
        "cc": ["copy@example.com"],
        "bcc": ["hidden@example.com"],
        "subject": "Quarterly update",
        "body": "Hello <b>team</b>\nSee attached.",
        "password": USER_PASSWORD,
    }
    payload.update(overrides)
    return payload


def test_send_requires_session(client: TestClient, mailer, database: Database) -> None:
    response = client.post("/api/email/send", json=_payload())
    assert response.status_code == 401
    assert response.json() == {"status": "error", "message": "Authentication required."}
    assert mailer.sent == []
    assert database.count_email_logs() == 0


def test_send_delivers_and_logs(client: TestClient, mailer, database: Database) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)
    attachment = {
        "name": "notes.txt",
        "type": "text/plain",
        "size": 5,
        "data": base64.b64encode(b"notes").decode("ascii"),
    }

    response = client.post("/api/email/send", json=_payload(attachments=[attachment]))

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "ok"
    assert len(mailer.sent) == 1

    delivery = mailer.sent[0]
    message = delivery["message"]
    assert delivery["sender"] == SERVICE_ADDRESS
    assert delivery["recipients"] == ["recipient@example.com", "copy@example.com", "hidden@example.com"]
    assert message["Bcc"] is None
    assert message["From"] == f"Acme <{SERVICE_ADDRESS}>"
    assert message["Reply-To"] == f"{SERVICE_ADDRESS}, {USER_EMAIL}, copy@example.com"
    assert message["Message-ID"] == response.json()["message_id"]

    html = message.get_body(("html",)).get_content()
    assert "Hello &lt;b&gt;team&lt;/b&gt;<br />" in html

    logs = database.list_email_logs(limit=10)
    assert len(logs) == 1
    assert logs[0].user_email == USER_EMAIL
    assert logs[0].subject == "Quarterly update"
    assert logs[0].has_attachment is True


def test_session_name_is_used_as_display_name(client: TestClient, mailer) -> None:
    login(client, USER_EMAIL, USER_PASSWORD, name="Ada Lovelace")
    assert client.get("/auth/session").json()["name"] == "Ada Lovelace"

    response = client.post("/api/email/send", json=_payload())

    assert response.status_code == 200, response.text
    assert mailer.sent[0]["message"]["From"] == f"Ada Lovelace <{SERVICE_ADDRESS}>"


def test_reply_to_merges_explicit_entries_case_insensitively(client: TestClient, mailer) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)

    response = client.post(
        "/api/email/send",
        json=_payload(
            cc=["SENDER@example.com", "copy@example.com"],
            reply_to=["desk@example.com", "NO-REPLY@example.org"],
        ),
    )

    assert response.status_code == 200, response.text
    assert mailer.sent[0]["message"]["Reply-To"] == (
        f"{SERVICE_ADDRESS}, {USER_EMAIL}, desk@example.com, copy@example.com"
    )


def test_each_send_is_logged(client: TestClient, mailer, database: Database) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)

    for _ in range(2):
        response = client.post("/api/email/send", json=_payload(cc=None, bcc=None))
        assert response.status_code == 200

    assert len(mailer.sent) == 2
    logs = database.list_email_logs(limit=10)
    assert len(logs) == 2
    assert all(log.has_attachment is False for log in logs)


def test_wrong_password_is_rejected_before_dispatch(client: TestClient, mailer, database: Database) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)

    response = client.post("/api/email/send", json=_payload(password="not-the-password"))

    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect password."
    assert mailer.sent == []
    assert database.count_email_logs() == 0


def test_invalid_drafts_are_rejected(client: TestClient, mailer, database: Database) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)

    no_recipients = client.post("/api/email/send", json=_payload(to=[]))
    assert no_recipients.status_code == 422
    assert no_recipients.json()["message"] == "At least one recipient is required."

    multiline = client.post("/api/email/send", json=_payload(subject="Line one\nLine two"))
    assert multiline.status_code == 422

    bad_address = client.post("/api/email/send", json=_payload(cc=["not-an-address"]))
    assert bad_address.status_code == 422

    too_many = client.post(
        "/api/email/send",
        json=_payload(
            attachments=[
                {"name": f"f{index}.txt", "type": "text/plain", "size": 1, "data": "YQ=="}
                for index in range(6)
            ]
        ),
    )
    assert too_many.status_code == 422

    not_base64 = client.post(
        "/api/email/send",
        json=_payload(attachments=[{"name": "f.txt", "type": "text/plain", "size": 1, "data": "***"}]),
    )
    assert not_base64.status_code == 422

    long_subject = client.post("/api/email/send", json=_payload(subject="s" * (MAX_SUBJECT_LENGTH + 1)))
    assert long_subject.status_code == 422

    long_body = client.post("/api/email/send", json=_payload(body="b" * (MAX_BODY_LENGTH + 1)))
    assert long_body.status_code == 422

    oversized = client.post(
        "/api/email/send",
        json=_payload(
            attachments=[
                {
                    "name": "huge.bin",
                    "type": "application/octet-stream",
                    "size": MAX_ATTACHMENT_BYTES,
                    "data": base64.b64encode(b"\0" * (MAX_ATTACHMENT_BYTES + 1)).decode("ascii"),
                }
            ]
        ),
    )
    assert oversized.status_code == 422
    assert oversized.json()["message"] == "Attachments must be 5 MB or smaller."

    understated = client.post(
        "/api/email/send",
        json=_payload(
            attachments=[
                {
                    "name": "notes.txt",
                    "type": "text/plain",
                    "size": 1,
                    "data": base64.b64encode(b"much more than one byte").decode("ascii"),
                }
            ]
        ),
    )
    assert understated.status_code == 422
    assert understated.json()["message"] == "Attachment size does not match its data."

    assert mailer.sent == []
    assert database.count_email_logs() == 0


def test_removed_sender_cannot_send(client: TestClient, mailer, database: Database) -> None:
    login(client, USER_EMAIL, USER_PASSWORD)
    user = database.get_authorized_user_by_email(USER_EMAIL)
    database.delete_authorized_user(user.id)

    response = client.post("/api/email/send", json=_payload())

    assert response.status_code == 403
    assert mailer.sent == []
    assert database.count_email_logs() == 0


def test_relay_failure_is_not_logged(settings, database: Database) -> None:
    app = create_app(settings=settings, database=database, mailer=FailingMailer())
    with TestClient(app) as client:
        login(client, USER_EMAIL, USER_PASSWORD)
        response = client.post("/api/email/send", json=_payload())

    assert response.status_code == 502
    assert response.json() == {"status": "error", "message": "Failed to send email. Please try again."}
    assert database.count_email_logs() == 0


def test_my_logs_only_show_own_sends(client: TestClient, database: Database) -> None:
    database.add_email_log(user_email=ADMIN_EMAIL, subject="admin", body="a", has_attachment=False)
    database.add_email_log(user_email=USER_EMAIL, subject="mine", body="b", has_attachment=False)

    login(client, USER_EMAIL, USER_PASSWORD)
    mine = client.get("/api/email/my-logs")
    assert mine.status_code == 200
    assert [entry["subject"] for entry in mine.json()] == ["mine"]

    assert client.get("/api/email/my-logs", params={"limit": 51}).status_code == 422
    assert client.get("/api/email/logs").status_code == 403

    client.post("/auth/logout")
    login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    every = client.get("/api/email/logs")
    assert [entry["subject"] for entry in every.json()] == ["mine", "admin"]
