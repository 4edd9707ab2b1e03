"""Configuration management for the mailroom service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

TLS_VERSIONS = ("TLSv1.2", "TLSv1.3")

DEFAULT_BRAND_NAME = "Mailroom"

# (section, key) -> environment variable overriding the YAML value.
_ENV_OVERRIDES: Dict[tuple[str, str], str] = {
    ("smtp", "host"): "MAILROOM_SMTP_HOST",
    ("smtp", "port"): "MAILROOM_SMTP_PORT",
    ("smtp", "username"): "MAILROOM_SMTP_USER",
    ("smtp", "password"): "MAILROOM_SMTP_PASSWORD",
    ("smtp", "secure"): "MAILROOM_SMTP_SECURE",
    ("smtp", "require_tls"): "MAILROOM_SMTP_REQUIRE_TLS",
    ("smtp", "tls_min_version"): "MAILROOM_SMTP_TLS_MIN_VERSION",
    ("smtp", "tls_reject_unauthorized"): "MAILROOM_SMTP_TLS_REJECT_UNAUTHORIZED",
    ("email", "from_address"): "MAILROOM_FROM_ADDRESS",
    ("email", "from_name"): "MAILROOM_FROM_NAME",
    ("brand", "name"): "MAILROOM_BRAND_NAME",
    ("brand", "logo_url"): "MAILROOM_LOGO_URL",
    ("brand", "footer"): "MAILROOM_FOOTER_TEXT",
    ("session", "secret"): "MAILROOM_SESSION_SECRET",
    ("session", "secure"): "MAILROOM_SESSION_SECURE",
    ("database", "path"): "MAILROOM_DB_PATH",
    ("security", "password_rounds"): "MAILROOM_PASSWORD_ROUNDS",
}


def _env_flag(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if not lowered:
        return default
    return lowered in {"1", "true", "yes", "on"}


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


@dataclass(frozen=True)
class SMTPSettings:
    """Connection details for the shared SMTP relay."""

    host: str
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    secure: bool = False
    require_tls: bool = True
    tls_min_version: str = "TLSv1.2"
    tls_reject_unauthorized: bool = True

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "SMTPSettings":
        host = _optional_str(data.get("host"))
        if host is None:
            raise ValueError("SMTP host must be configured (smtp.host or MAILROOM_SMTP_HOST)")

        tls_min_version = _optional_str(data.get("tls_min_version")) or "TLSv1.2"
        if tls_min_version not in TLS_VERSIONS:
            raise ValueError(
                f"Unsupported SMTP TLS minimum version '{tls_min_version}'."
                f" Expected one of: {', '.join(TLS_VERSIONS)}"
            )

        try:
            port = int(data.get("port") or 587)
        except (TypeError, ValueError) as exc:
            raise ValueError("SMTP port must be an integer") from exc

        return SMTPSettings(
            host=host,
            port=port,
            username=_optional_str(data.get("username")),
            password=None if data.get("password") is None else str(data["password"]),
            secure=_env_flag(data.get("secure"), False),
            require_tls=_env_flag(data.get("require_tls"), True),
            tls_min_version=tls_min_version,
            tls_reject_unauthorized=_env_flag(data.get("tls_reject_unauthorized"), True),
        )


@dataclass(frozen=True)
class BrandSettings:
    """Branding applied to every outgoing HTML message."""

    name: str = DEFAULT_BRAND_NAME
    logo_url: Optional[str] = None
    footer: Optional[str] = None

    @property
    def footer_text(self) -> str:
        return self.footer or f"Team {self.name}"


@dataclass(frozen=True)
class Settings:
    smtp: SMTPSettings
    from_address: str
    from_name: Optional[str] = None
    brand: BrandSettings = field(default_factory=BrandSettings)
    session_secret: Optional[str] = None
    session_secure: bool = True
    database_path: Optional[Path] = None
    password_rounds: int = 12


def _read_config_file(config_path: Optional[Path]) -> Dict[str, Dict[str, object]]:
    if config_path is None or not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")

    sections: Dict[str, Dict[str, object]] = {}
    for section, values in raw.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Configuration section '{section}' must be a mapping")
        sections[str(section)] = dict(values)
    return sections


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    sections = _read_config_file(config_path)

    for (section, key), variable in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value is None or value == "":
            continue
        sections.setdefault(section, {})[key] = value

    email = sections.get("email", {})
    from_address = _optional_str(email.get("from_address"))
    if from_address is None:
        raise ValueError(
            "Service sender address must be configured (email.from_address or MAILROOM_FROM_ADDRESS)"
        )

    brand = sections.get("brand", {})
    session = sections.get("session", {})
    database = sections.get("database", {})
    security = sections.get("security", {})

    raw_db_path = _optional_str(database.get("path"))
    rounds = security.get("password_rounds")

    return Settings(
        smtp=SMTPSettings.from_dict(sections.get("smtp", {})),
        from_address=from_address,
        from_name=_optional_str(email.get("from_name")),
        brand=BrandSettings(
            name=_optional_str(brand.get("name")) or DEFAULT_BRAND_NAME,
            logo_url=_optional_str(brand.get("logo_url")),
            footer=_optional_str(brand.get("footer")),
        ),
        session_secret=_optional_str(session.get("secret")),
        session_secure=_env_flag(session.get("secure"), True),
        database_path=Path(raw_db_path).expanduser().resolve(strict=False) if raw_db_path else None,
        password_rounds=int(rounds) if rounds is not None else 12,
    )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "mailroom.yaml").resolve(strict=False)
    return candidate


__all__ = [
    "BrandSettings",
    "SMTPSettings",
    "Settings",
    "TLS_VERSIONS",
    "load_settings",
    "resolve_config_path",
]
