"""
Process-wide configuration for a tool host app.

Architecture:
- AppEnv: immutable bundle of identity + runtime settings
- Loaded from TOOLHOST_APP_* environment variables set by the hosting
  platform's sandbox, or constructed directly (tests, embedding)
- The app identity (name) is mandatory; everything else has a default
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, TypeVar

from .errors import ConfigurationError

ENV_PREFIX = "TOOLHOST_APP_"

DEFAULT_SHUTDOWN_GRACE = 5.0  # seconds in-flight executions get on shutdown
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

T = TypeVar("T")


@dataclass(frozen=True)
class AppEnv:
    """
    Immutable app environment.

    Identity fields (name, id, version) are reported in health checks and used
    when the transport opens a session. Listen fields (sock_path, host, port)
    are read by the HTTP transport. The rest tunes the dispatcher and the run
    loop.
    """

    name: str
    id: str = ""
    version: str = ""
    dir: str = ""
    data_dir: str = ""
    sock_path: str = ""
    host: str = ""
    port: int = 0
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE
    max_concurrency: int = 0  # 0 = unbounded
    execution_timeout: float | None = None
    strict_inputs: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError(
                f"App identity missing: set {ENV_PREFIX}NAME"
            )
        if self.shutdown_grace < 0:
            raise ConfigurationError("shutdown_grace must be >= 0")
        if self.max_concurrency < 0:
            raise ConfigurationError("max_concurrency must be >= 0")
        if self.execution_timeout is not None and self.execution_timeout <= 0:
            raise ConfigurationError("execution_timeout must be > 0")
        if not 0 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port: {self.port}")
        # getLevelName returns "Level X" for unknown names
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Invalid log level: {self.log_level}")

    @classmethod
    def load(cls, environ: Mapping[str, str] | None = None) -> AppEnv:
        """
        Read the environment.

        Raises:
            ConfigurationError: missing identity or unparsable value
        """
        env = os.environ if environ is None else environ

        def get(key: str, default: str = "") -> str:
            return env.get(ENV_PREFIX + key, default).strip()

        timeout_raw = get("EXECUTION_TIMEOUT")
        return cls(
            name=get("NAME"),
            id=get("ID"),
            version=get("VERSION"),
            dir=get("DIR"),
            data_dir=get("DATA"),
            sock_path=get("SOCK"),
            host=get("HOST"),
            port=_parse("PORT", get("PORT", "0") or "0", int),
            shutdown_grace=_parse(
                "SHUTDOWN_GRACE",
                get("SHUTDOWN_GRACE") or str(DEFAULT_SHUTDOWN_GRACE),
                float,
            ),
            max_concurrency=_parse("MAX_CONCURRENCY", get("MAX_CONCURRENCY", "0") or "0", int),
            execution_timeout=(
                _parse("EXECUTION_TIMEOUT", timeout_raw, float) if timeout_raw else None
            ),
            strict_inputs=_parse_bool("STRICT_INPUTS", get("STRICT_INPUTS")),
            log_level=get("LOG_LEVEL") or DEFAULT_LOG_LEVEL,
        )

    @property
    def listen_address(self) -> str:
        """Human-readable listen address for logs."""
        if self.sock_path:
            return f"unix:{self.sock_path}"
        if self.port:
            return f"http://{self.host or '127.0.0.1'}:{self.port}"
        return "(none)"


def _parse(key: str, raw: str, convert: Callable[[str], T]) -> T:
    try:
        return convert(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {ENV_PREFIX}{key}: {raw!r}") from e


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"Invalid {ENV_PREFIX}{key}: {raw!r}")


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging to stderr."""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
