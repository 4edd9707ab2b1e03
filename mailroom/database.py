"""SQLite-backed persistence for authorized users, templates, and logs."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import ConflictError
from .models import AuditLog, AuthorizedUser, EmailLog, Role, Template
from .security import PasswordHasher


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "mailroom.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class Database:
    """Simple wrapper around SQLite for the allow-list, templates, and logs.

    A connection is opened per operation, so a single instance can be shared
    by every request handler without any in-process locking.
    """

    def __init__(self, path: Path, *, hasher: Optional[PasswordHasher] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._hasher = hasher or PasswordHasher()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS authorized_users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    must_change_password INTEGER NOT NULL DEFAULT 1,
                    role TEXT NOT NULL DEFAULT 'USER',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    subject TEXT,
                    body TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS email_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_email TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    body TEXT NOT NULL,
                    has_attachment INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    description TEXT NOT NULL,
                    user_id INTEGER REFERENCES authorized_users(id) ON DELETE SET NULL,
                    user_email TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_email_logs_user_email ON email_logs(user_email);
                CREATE INDEX IF NOT EXISTS idx_email_logs_created_at ON email_logs(created_at);
                CREATE INDEX IF NOT EXISTS idx_audit_logs_created_at ON audit_logs(created_at);
                """
            )

            # Databases created before roles and template subjects existed.
            user_columns = {
                row["name"]
                for row in conn.execute("PRAGMA table_info(authorized_users)").fetchall()
            }
            if "role" not in user_columns:
                conn.execute(
                    "ALTER TABLE authorized_users ADD COLUMN role TEXT NOT NULL DEFAULT 'USER'"
                )

            template_columns = {
                row["name"]
                for row in conn.execute("PRAGMA table_info(templates)").fetchall()
            }
            if "subject" not in template_columns:
                conn.execute("ALTER TABLE templates ADD COLUMN subject TEXT")

    # ------------------------------------------------------------------
    # Authorized users
    # ------------------------------------------------------------------
    def create_authorized_user(
        self,
        email: str,
        password: str,
        *,
        role: Role = Role.USER,
        must_change_password: bool = True,
    ) -> AuthorizedUser:
        """Add an email to the allow-list with the given initial password."""

        normalized_email = _normalize_email(email)
        if not normalized_email:
            raise ValueError("Email must not be empty")

        password_hash = self._hasher.hash(password)
        created_at = _current_timestamp()

        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO authorized_users (email, password_hash, must_change_password, role, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        normalized_email,
                        password_hash,
                        int(bool(must_change_password)),
                        role.value,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError("An authorized user with that email already exists.") from exc
            user_id = cursor.lastrowid

        return AuthorizedUser(
            id=int(user_id),
            email=normalized_email,
            password_hash=password_hash,
            must_change_password=bool(must_change_password),
            role=role,
            created_at=created_at,
        )

    def get_authorized_user(self, user_id: int) -> Optional[AuthorizedUser]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM authorized_users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_authorized_user_by_email(self, email: str) -> Optional[AuthorizedUser]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM authorized_users WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_authorized_users(self) -> List[AuthorizedUser]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM authorized_users ORDER BY email").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate(self, email: str, password: str) -> Optional[AuthorizedUser]:
        user = self.get_authorized_user_by_email(email)
        if user is None:
            return None
        if not self._hasher.verify(password, user.password_hash):
            return None
        return user

    def verify_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT password_hash FROM authorized_users WHERE id = ?",
                (user_id,),
            ).fetchone()

        if row is None:
            return False

        return self._hasher.verify(password, row["password_hash"])

    def set_password(
        self,
        user_id: int,
        password: str,
        *,
        must_change_password: bool,
    ) -> Optional[AuthorizedUser]:
        """Replace the stored hash; returns ``None`` when the user does not exist."""

        password_hash = self._hasher.hash(password)
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE authorized_users
                   SET password_hash = ?, must_change_password = ?
                 WHERE id = ?
                """,
                (password_hash, int(bool(must_change_password)), user_id),
            )
            if cursor.rowcount == 0:
                return None

        return self.get_authorized_user(user_id)

    def delete_authorized_user(self, user_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM authorized_users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def list_templates(self) -> List[Template]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM templates ORDER BY name, id").fetchall()
        return [self._row_to_template(row) for row in rows]

    def get_template(self, template_id: int) -> Optional[Template]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM templates WHERE id = ?", (template_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_template(row)

    def create_template(self, *, name: str, subject: Optional[str], body: str) -> Template:
        updated_at = _current_timestamp()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO templates (name, subject, body, updated_at) VALUES (?, ?, ?, ?)",
                (name, subject, body, _serialize_datetime(updated_at)),
            )
            template_id = cursor.lastrowid

        return Template(
            id=int(template_id),
            name=name,
            subject=subject,
            body=body,
            updated_at=updated_at,
        )

    def update_template(
        self,
        template_id: int,
        *,
        name: str,
        subject: Optional[str],
        body: str,
    ) -> Optional[Template]:
        updated_at = _current_timestamp()
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE templates SET name = ?, subject = ?, body = ?, updated_at = ? WHERE id = ?",
                (name, subject, body, _serialize_datetime(updated_at), template_id),
            )
            if cursor.rowcount == 0:
                return None

        return self.get_template(template_id)

    def delete_template(self, template_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM templates WHERE id = ?", (template_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Email delivery log
    # ------------------------------------------------------------------
    def add_email_log(
        self,
        *,
        user_email: str,
        subject: str,
        body: str,
        has_attachment: bool,
    ) -> EmailLog:
        created_at = _current_timestamp()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO email_logs (user_email, subject, body, has_attachment, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_email, subject, body, int(bool(has_attachment)), _serialize_datetime(created_at)),
            )
            log_id = cursor.lastrowid

        return EmailLog(
            id=int(log_id),
            user_email=user_email,
            subject=subject,
            body=body,
            has_attachment=bool(has_attachment),
            created_at=created_at,
        )

    def list_email_logs(self, *, limit: int, user_email: Optional[str] = None) -> List[EmailLog]:
        with self._transaction() as conn:
            if user_email is None:
                rows = conn.execute(
                    "SELECT * FROM email_logs ORDER BY created_at DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM email_logs
                     WHERE user_email = ?
                     ORDER BY created_at DESC, id DESC
                     LIMIT ?
                    """,
                    (_normalize_email(user_email), limit),
                ).fetchall()
        return [self._row_to_email_log(row) for row in rows]

    def count_email_logs(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM email_logs").fetchone()
        return int(row["total"])

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------
    def add_audit_log(
        self,
        description: str,
        *,
        user_id: Optional[int],
        user_email: Optional[str],
    ) -> AuditLog:
        created_at = _current_timestamp()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO audit_logs (description, user_id, user_email, created_at) VALUES (?, ?, ?, ?)",
                (description, user_id, user_email, _serialize_datetime(created_at)),
            )
            log_id = cursor.lastrowid

        return AuditLog(
            id=int(log_id),
            description=description,
            user_id=user_id,
            user_email=user_email,
            created_at=created_at,
        )

    def list_audit_logs(self, *, limit: int) -> List[AuditLog]:
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT audit_logs.*, authorized_users.email AS actor_email
                  FROM audit_logs
                  LEFT JOIN authorized_users ON authorized_users.id = audit_logs.user_id
                 ORDER BY audit_logs.created_at DESC, audit_logs.id DESC
                 LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_audit_log(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> AuthorizedUser:
        return AuthorizedUser(
            id=int(row["id"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            must_change_password=bool(row["must_change_password"]),
            role=Role(str(row["role"])),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_template(self, row: sqlite3.Row) -> Template:
        return Template(
            id=int(row["id"]),
            name=str(row["name"]),
            subject=row["subject"],
            body=str(row["body"]),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )

    def _row_to_email_log(self, row: sqlite3.Row) -> EmailLog:
        return EmailLog(
            id=int(row["id"]),
            user_email=str(row["user_email"]),
            subject=str(row["subject"]),
            body=str(row["body"]),
            has_attachment=bool(row["has_attachment"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_audit_log(self, row: sqlite3.Row) -> AuditLog:
        return AuditLog(
            id=int(row["id"]),
            description=str(row["description"]),
            user_id=row["user_id"],
            user_email=row["user_email"],
            created_at=_parse_datetime(str(row["created_at"])),
            actor_email=row["actor_email"],
        )


__all__ = ["Database", "resolve_database_path"]
