"""
Connection settings for the dependent application, and the gate's parsed
invocation. Everything here is built once at process start and frozen.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .endpoint import Endpoint
from .errors import ConfigError

DEFAULT_TIMEOUT = 15
DEFAULT_DB_PORT = 5432


@dataclass(frozen=True)
class WaitConfig:
    endpoint: Endpoint
    timeout_seconds: int = DEFAULT_TIMEOUT
    quiet: bool = False
    command: Tuple[str, ...] = ()
    http_url: Optional[str] = None


@dataclass(frozen=True)
class DatabaseConfig:
    username: str
    password: str = field(repr=False)
    hostname: str
    port: int
    database: str

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DatabaseConfig":
        env = os.environ if environ is None else environ
        missing = [k for k in ("USERNAME", "HOSTNAME", "DATABASE") if not env.get(k)]
        if missing:
            raise ConfigError("missing environment: " + ", ".join(missing))
        port_s = env.get("PORT") or str(DEFAULT_DB_PORT)
        if not (port_s.isascii() and port_s.isdigit()) or not (1 <= int(port_s) <= 65535):
            raise ConfigError(f"invalid PORT: {port_s!r}")
        return cls(
            username=env["USERNAME"],
            password=env.get("PASSWORD", ""),
            hostname=env["HOSTNAME"],
            port=int(port_s),
            database=env["DATABASE"],
        )

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.hostname, self.port)

    def describe(self) -> str:
        return f"{self.username}@{self.endpoint}/{self.database}"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: Optional[int] = None  # None = retry forever
    interval_ms: int = 500
    connect_timeout_ms: int = 10000

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1 (or None for unbounded)")
        if self.interval_ms <= 0:
            raise ConfigError("interval_ms must be > 0")
        if self.connect_timeout_ms <= 0:
            raise ConfigError("connect_timeout_ms must be > 0")

    @property
    def unbounded(self) -> bool:
        return self.max_attempts is None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RetryPolicy":
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(name, default):
            raw = env.get(name, "")
            if raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigError(f"invalid {name}: {raw!r}") from None

        attempts = _int("RETRY_MAX_ATTEMPTS", 0)
        return cls(
            max_attempts=attempts or None,
            interval_ms=_int("RETRY_INTERVAL_MS", defaults.interval_ms),
            connect_timeout_ms=_int("CONNECT_TIMEOUT_MS", defaults.connect_timeout_ms),
        )
