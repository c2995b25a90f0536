"""Connection settings for the IMAP and SMTP clients.

Settings are plain pydantic models so callers can build them directly, or load
them from the environment (and an optional ``.env`` file) with ``from_env()``.
IMAP falls back to the SMTP host and credentials when its own are unset.
"""

import os
from typing import Any, Dict, List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidConfigError
from .logging import get_logger
from .paths import ENV_FILE_PATH

logger = get_logger(__name__)

DEFAULT_ALLOWED_RECIPIENTS = ["us@plazen.org", "support@plazen.org"]


def _read_environ(environ: Optional[Mapping[str, str]], load_env_file: bool):
    """Return the mapping to read settings from, loading ``.env`` if asked."""
    if environ is not None:
        return environ

    if load_env_file and ENV_FILE_PATH.exists():
        load_dotenv(ENV_FILE_PATH, override=False)
        logger.debug(f"Loaded environment from {ENV_FILE_PATH}")

    return os.environ


def _build(model: type[BaseModel], data: Dict[str, Any]):
    """Validate ``data`` into ``model`` and surface failures as InvalidConfigError."""
    try:
        return model(**data)

    except PydanticValidationError as e:
        logger.error(f"Invalid {model.__name__}: {e.error_count()} error(s)")
        raise InvalidConfigError(
            f"{model.__name__} does not match expected schema: {str(e)}",
            details={"model": model.__name__},
        ) from e


class IMAPConfig(BaseModel):
    """Pydantic model for IMAP account configuration."""

    host: str = ""
    port: int = 993
    secure: bool = True  # TLS on connect; False means STARTTLS when offered
    username: str = ""
    password: str = Field(default="", repr=False)
    verify_tls: bool = True
    timeout: float = 60.0  # seconds per command
    allowed_recipients: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_RECIPIENTS)
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def redacted(self) -> Dict[str, Any]:
        """Configuration with the password removed, safe to display or log."""
        return self.model_dump(exclude={"password"})

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True
    ) -> "IMAPConfig":
        """Build an IMAPConfig from ``IMAP_*`` variables, falling back to ``SMTP_*``."""
        env = _read_environ(environ, load_env_file)

        data: Dict[str, Any] = {
            "host": env.get("IMAP_HOST") or env.get("SMTP_HOST") or "",
            "port": env.get("IMAP_PORT") or 993,
            "secure": env.get("IMAP_SECURE", "true").lower() != "false",
            "username": env.get("IMAP_USER") or env.get("SMTP_USER") or "",
            "password": env.get("IMAP_PASS") or env.get("SMTP_PASS") or "",
            "verify_tls": env.get("IMAP_VERIFY_TLS", "true").lower() != "false",
        }

        if env.get("IMAP_TIMEOUT"):
            data["timeout"] = env["IMAP_TIMEOUT"]

        if env.get("IMAP_ALLOWED_RECIPIENTS"):
            data["allowed_recipients"] = [
                address.strip()
                for address in env["IMAP_ALLOWED_RECIPIENTS"].split(",")
                if address.strip()
            ]

        return _build(cls, data)


class SMTPConfig(BaseModel):
    """Pydantic model for SMTP account configuration."""

    host: str = ""
    port: int = 587
    secure: bool = False  # True for TLS on connect (465), False for STARTTLS (587)
    username: str = ""
    password: str = Field(default="", repr=False)
    from_name: str = "Plazen"
    from_email: str = ""
    verify_tls: bool = True
    timeout: float = 30.0  # seconds per reply

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def redacted(self) -> Dict[str, Any]:
        """Configuration with the password removed, safe to display or log."""
        return self.model_dump(exclude={"password"})

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True
    ) -> "SMTPConfig":
        """Build an SMTPConfig from ``SMTP_*`` variables."""
        env = _read_environ(environ, load_env_file)

        data: Dict[str, Any] = {
            "host": env.get("SMTP_HOST") or "smtp.gmail.com",
            "port": env.get("SMTP_PORT") or 587,
            "secure": env.get("SMTP_SECURE", "false").lower() == "true",
            "username": env.get("SMTP_USER", ""),
            "password": env.get("SMTP_PASS", ""),
            "from_name": env.get("SMTP_FROM_NAME") or "Plazen",
            "from_email": env.get("SMTP_FROM_EMAIL", ""),
            "verify_tls": env.get("SMTP_VERIFY_TLS", "true").lower() != "false",
        }

        if env.get("SMTP_TIMEOUT"):
            data["timeout"] = env["SMTP_TIMEOUT"]

        return _build(cls, data)


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_to_file: bool = True

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True
    ) -> "LoggingConfig":
        env = _read_environ(environ, load_env_file)

        return _build(
            cls,
            {
                "log_level": (env.get("WIREMAIL_LOG_LEVEL") or "INFO").upper(),
                "log_to_file": env.get("WIREMAIL_LOG_TO_FILE", "true").lower()
                != "false",
            },
        )
