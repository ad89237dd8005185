"""Environment-driven configuration for the webhook relay."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

_TRUTHY = {"true", "1", "yes"}


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


class BackendConfig(BaseModel):
    """Coordinates of the remote FileMaker script endpoint."""

    model_config = ConfigDict(frozen=True)

    server: str = ""
    database: str = ""
    script: str = ""
    username: str = ""
    password: str = Field(default="", repr=False)
    timeout_seconds: float | None = 30.0

    @property
    def configured(self) -> bool:
        return all((self.server, self.database, self.script, self.username, self.password))


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: BackendConfig = Field(default_factory=BackendConfig)
    audit_db_path: str = ""
    audit_logging_flag: bool = False
    logs_token: str = Field(default="", repr=False)
    inbound_method: str = "POST"
    ack_channels: frozenset[str] = frozenset({"other-hooks"})
    port: str = "3000"
    log_level: str = "INFO"

    @property
    def audit_configured(self) -> bool:
        return bool(self.audit_db_path)

    @property
    def audit_enabled(self) -> bool:
        return self.audit_configured and self.audit_logging_flag

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables."""
        env = os.environ if environ is None else environ
        raw_timeout = env.get("REMOTE_TIMEOUT_SECONDS", "").strip()
        backend = BackendConfig(
            server=env.get("FM_SERVER", ""),
            database=env.get("FM_DB", ""),
            script=env.get("FM_SCRIPT", ""),
            username=env.get("FM_USER", ""),
            password=env.get("FM_PASS", ""),
            # "0" or "none" leaves the call without a timeout
            timeout_seconds=_parse_timeout(raw_timeout),
        )
        ack = env.get("ACK_CHANNELS", "other-hooks")
        return cls(
            backend=backend,
            audit_db_path=env.get("AUDIT_DB_PATH", ""),
            audit_logging_flag=_flag(env.get("AUDIT_LOGGING"), default=False),
            logs_token=env.get("LOGS_TOKEN", ""),
            inbound_method=env.get("INBOUND_METHOD", "POST").strip().upper() or "POST",
            ack_channels=frozenset(c.strip() for c in ack.split(",") if c.strip()),
            port=env.get("PORT", "3000"),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )


def _parse_timeout(raw: str) -> float | None:
    if not raw:
        return 30.0
    if raw.lower() == "none":
        return None
    try:
        seconds = float(raw)
    except ValueError:
        raise ConfigError(
            f"REMOTE_TIMEOUT_SECONDS must be a number of seconds, got {raw!r}"
        ) from None
    if not math.isfinite(seconds) or seconds < 0:
        raise ConfigError(
            f"REMOTE_TIMEOUT_SECONDS must be a non-negative number of seconds, got {raw!r}"
        )
    return seconds if seconds > 0 else None
