# mailbox_mcp/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from mailbox_mcp.auth import PasswordAuth
from mailbox_mcp.errors import ConfigError

DEFAULT_IMAP_PORT = 993
DEFAULT_SMTP_PORT = 587
SMTP_IMPLICIT_TLS_PORT = 465
DEFAULT_HTTP_PORT = 3001
DEFAULT_HTTP_HOST = "127.0.0.1"

TRANSPORTS = ("stdio", "sse")

REQUIRED_SMTP_VARS = ("SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS")


@dataclass(frozen=True)
class IMAPConfig:
    host: str
    port: int = DEFAULT_IMAP_PORT
    use_ssl: bool = True
    auth: Optional[PasswordAuth] = None
    timeout: Optional[float] = 30.0

    @property
    def username(self) -> str:
        return self.auth.username if self.auth else ""


@dataclass(frozen=True)
class SMTPConfig:
    host: str
    port: int = DEFAULT_SMTP_PORT
    use_ssl: bool = False
    auth: Optional[PasswordAuth] = None
    from_email: Optional[str] = None
    timeout: Optional[float] = 30.0

    @property
    def username(self) -> str:
        return self.auth.username if self.auth else ""


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at startup and passed explicitly
    into every session / client that needs it.
    """
    smtp: SMTPConfig
    imap: IMAPConfig
    log_level: str = "INFO"
    log_json: bool = False
    transport: str = "stdio"
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv(override=False)
            env = os.environ

        missing = [name for name in REQUIRED_SMTP_VARS if not env.get(name)]
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        try:
            smtp_port = int(env.get("SMTP_PORT") or DEFAULT_SMTP_PORT)
            imap_port = int(env.get("IMAP_PORT") or DEFAULT_IMAP_PORT)
            http_port = int(env.get("PORT") or DEFAULT_HTTP_PORT)
        except ValueError as e:
            raise ConfigError(f"Invalid port number: {e}") from e

        transport = (env.get("TRANSPORT") or "stdio").strip().lower()
        if transport not in TRANSPORTS:
            raise ConfigError(
                f"Invalid TRANSPORT {transport!r}: expected one of {', '.join(TRANSPORTS)}"
            )

        smtp_user = env["SMTP_USER"]
        smtp_pass = env["SMTP_PASS"]

        smtp = SMTPConfig(
            host=env["SMTP_HOST"],
            port=smtp_port,
            use_ssl=_is_true(env.get("SMTP_SECURE")) or smtp_port == SMTP_IMPLICIT_TLS_PORT,
            auth=PasswordAuth(username=smtp_user, password=smtp_pass),
            from_email=env.get("SMTP_FROM") or None,
        )

        # retrieval side falls back to the send side's credentials
        imap = IMAPConfig(
            host=env.get("IMAP_HOST") or env["SMTP_HOST"],
            port=imap_port,
            use_ssl=(env.get("IMAP_TLS") or "").strip().lower() != "false",
            auth=PasswordAuth(
                username=env.get("IMAP_USER") or smtp_user,
                password=env.get("IMAP_PASS") or smtp_pass,
            ),
        )

        return cls(
            smtp=smtp,
            imap=imap,
            log_level=env.get("LOG_LEVEL") or "INFO",
            log_json=_is_true(env.get("LOG_JSON")),
            transport=transport,
            http_host=env.get("HOST") or DEFAULT_HTTP_HOST,
            http_port=http_port,
        )
