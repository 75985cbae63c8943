"""
Server configuration.

Read once from the process environment into an immutable ServerConfig and
passed explicitly to every component. A missing required value raises
ConfigurationError; the entry point treats that as fatal.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from eventshub.core.temporal import DEFAULT_TIMEZONE
from eventshub.core.database import MEMORY_DB

ENV_PREFIX = "EVENTSHUB_"

# Fixed timings (seconds)
SHUTDOWN_GRACE_SECONDS = 10.0
KILL_DELAY_SECONDS = 2.0
KEEPALIVE_TIMEOUT_SECONDS = 60.0
DEFAULT_TOKEN_LIFETIME_SECONDS = 60

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Required configuration missing or invalid"""
    pass


@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int
    adminUsername: str
    adminHash: str
    tokenSecret: str
    killSecret: str
    tlsCertificate: Optional[str] = None
    tlsKey: Optional[str] = None
    dbPath: str = MEMORY_DB
    timezone: str = DEFAULT_TIMEZONE
    tokenLifetimeSeconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS
    logDir: Optional[str] = None
    logLevel: str = "INFO"
    shutdownGraceSeconds: float = SHUTDOWN_GRACE_SECONDS
    killDelaySeconds: float = KILL_DELAY_SECONDS
    keepaliveTimeoutSeconds: float = KEEPALIVE_TIMEOUT_SECONDS

    @property
    def secure(self) -> bool:
        return bool(self.tlsCertificate and self.tlsKey)

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return (f"ServerConfig(host={self.host!r}, port={self.port}, adminUsername={self.adminUsername!r}, "
                f"dbPath={self.dbPath!r}, timezone={self.timezone!r}, secure={self.secure})")


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(ENV_PREFIX + name, "").strip()
    if not value:
        raise ConfigurationError(f"Missing required environment variable {ENV_PREFIX + name}")
    return value


def _optional(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(ENV_PREFIX + name, "").strip()
    return value or default


def _integer(raw: str, name: str, low: int, high: int) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX + name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ConfigurationError(f"{ENV_PREFIX + name} must be between {low} and {high}, got {value}")
    return value


def loadServerConfig(environ: Optional[Mapping[str, str]] = None, requireTls: bool = True) -> ServerConfig:
    """
    Build ServerConfig from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)
        requireTls: Certificate and key paths are mandatory when True

    Raises:
        ConfigurationError: On any missing or malformed required value
    """
    env = os.environ if environ is None else environ

    host = _required(env, "HOST")
    port = _integer(_required(env, "PORT"), "PORT", 0, 65535)

    tlsCertificate = _optional(env, "TLS_CERTIFICATE")
    tlsKey = _optional(env, "TLS_KEY")
    if requireTls:
        if not tlsCertificate:
            raise ConfigurationError(f"Missing required environment variable {ENV_PREFIX}TLS_CERTIFICATE")
        if not tlsKey:
            raise ConfigurationError(f"Missing required environment variable {ENV_PREFIX}TLS_KEY")
    else:
        tlsCertificate = tlsKey = None

    lifetime = _optional(env, "TOKEN_LIFETIME_SECONDS")

    logLevel = _optional(env, "LOG_LEVEL", "INFO").upper()
    if logLevel not in LOG_LEVELS:
        raise ConfigurationError(f"{ENV_PREFIX}LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {logLevel!r}")

    return ServerConfig(
        host=host,
        port=port,
        adminUsername=_required(env, "ADMIN_USERNAME"),
        adminHash=_required(env, "ADMIN_HASH"),
        tokenSecret=_required(env, "TOKEN_SECRET"),
        killSecret=_required(env, "KILL_SECRET"),
        tlsCertificate=tlsCertificate,
        tlsKey=tlsKey,
        dbPath=_optional(env, "DB_PATH", MEMORY_DB),
        timezone=_optional(env, "TIMEZONE", DEFAULT_TIMEZONE),
        tokenLifetimeSeconds=_integer(lifetime, "TOKEN_LIFETIME_SECONDS", 1, 86400) if lifetime
        else DEFAULT_TOKEN_LIFETIME_SECONDS,
        logDir=_optional(env, "LOG_DIR"),
        logLevel=logLevel
    )
