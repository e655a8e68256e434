"""
Shared configuration for the Engram MCP server.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from engram_mcp.errors import ConfigError

LOGGER_NAME = "engram_mcp"

logger = logging.getLogger(LOGGER_NAME)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}
TRANSPORTS = {"stdio", "http"}

DEFAULT_BASE_URL = "http://localhost:3001"
DEFAULT_USER_ID = "default"
DEFAULT_TIMEOUT_MS = 10000
DEFAULT_MAX_RETRIES = 2

# Input limits
MAX_CONTENT_LENGTH = 50_000
MAX_QUERY_LENGTH = 2_000
MAX_FOCUS_LENGTH = 2_000
MAX_SHORT_TEXT_LENGTH = 255
MAX_TAG_LENGTH = 100
MAX_TAGS = 20
MAX_METADATA_BYTES = 20_000

DEFAULT_RESULT_LIMIT = 10
MAX_RESULT_LIMIT = 50
DEFAULT_MAX_TOKENS = 4000
MIN_MAX_TOKENS = 100
MAX_MAX_TOKENS = 32000

# Retry pacing between attempts against the backend
RETRY_DELAY_SECONDS = 1.0

_SENSITIVE_KEY = re.compile(r"apikey|api_key|secret|password|token", re.IGNORECASE)
REDACTED = "[REDACTED]"


def _get_bool(env: Mapping[str, str], env_name: str, default: bool) -> bool:
    value = env.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env: Mapping[str, str], env_name: str, default: int, errors: list) -> int:
    value = env.get(env_name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        errors.append(f"{env_name} must be an integer")
        return default


def _get_optional(env: Mapping[str, str], env_name: str) -> Optional[str]:
    value = env.get(env_name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class BackendConfig:
    api_key: str
    user_id: str = DEFAULT_USER_ID
    base_url: str = DEFAULT_BASE_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    log_level: str = "warn"
    tls_skip_verify: bool = False
    allow_http: bool = False
    default_layer: Optional[str] = None
    default_project_id: Optional[str] = None
    transport: str = "stdio"
    http_host: str = "127.0.0.1"
    http_port: int = 8000

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


def is_loopback_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host in LOOPBACK_HOSTS


def load_config(environ: Optional[Mapping[str, str]] = None) -> BackendConfig:
    """Read BackendConfig from the environment and validate it at startup.

    All problems are collected and reported together in a single ConfigError.
    """
    from engram_mcp.validators import validate_layer

    env = os.environ if environ is None else environ
    errors: list[str] = []

    api_key = (env.get("ENGRAM_API_KEY") or "").strip()
    if not api_key:
        errors.append("ENGRAM_API_KEY is required")

    user_id = (env.get("ENGRAM_USER_ID") or "").strip() or DEFAULT_USER_ID

    base_url = (
        _get_optional(env, "ENGRAM_API_URL")
        or _get_optional(env, "ENGRAM_BASE_URL")
        or DEFAULT_BASE_URL
    ).rstrip("/")
    allow_http = _get_bool(env, "ENGRAM_ALLOW_HTTP", False)
    parsed = urlparse(base_url)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        errors.append(f"ENGRAM_API_URL must be an http(s) URL, got {base_url!r}")
    elif parsed.scheme != "https" and not is_loopback_url(base_url) and not allow_http:
        errors.append(
            f"HTTPS required for non-localhost URLs. Got: {base_url}. "
            "Set ENGRAM_ALLOW_HTTP=true to override."
        )

    timeout_ms = _get_int(env, "ENGRAM_TIMEOUT_MS", DEFAULT_TIMEOUT_MS, errors)
    if timeout_ms <= 0:
        errors.append("ENGRAM_TIMEOUT_MS must be positive")

    max_retries = _get_int(env, "ENGRAM_MAX_RETRIES", DEFAULT_MAX_RETRIES, errors)
    if max_retries < 0:
        errors.append("ENGRAM_MAX_RETRIES must be zero or greater")

    log_level = (env.get("ENGRAM_LOG_LEVEL") or "warn").strip().lower()
    if log_level not in LOG_LEVELS:
        errors.append(f"Invalid ENGRAM_LOG_LEVEL: {log_level}")

    default_layer = _get_optional(env, "ENGRAM_DEFAULT_LAYER")
    if default_layer is not None:
        try:
            default_layer = validate_layer(default_layer)
        except ValueError as exc:
            errors.append(f"ENGRAM_DEFAULT_LAYER: {exc}")

    transport = (env.get("ENGRAM_TRANSPORT") or "stdio").strip().lower()
    if transport not in TRANSPORTS:
        errors.append("ENGRAM_TRANSPORT must be 'stdio' or 'http'")

    http_port = _get_int(env, "ENGRAM_HTTP_PORT", 8000, errors)

    if errors:
        raise ConfigError("Configuration invalid: " + "; ".join(errors))

    return BackendConfig(
        api_key=api_key,
        user_id=user_id,
        base_url=base_url,
        timeout_ms=timeout_ms,
        max_retries=max_retries,
        log_level=log_level,
        tls_skip_verify=_get_bool(env, "ENGRAM_TLS_SKIP_VERIFY", False),
        allow_http=allow_http,
        default_layer=default_layer,
        default_project_id=_get_optional(env, "ENGRAM_PROJECT_ID"),
        transport=transport,
        http_host=(env.get("ENGRAM_HTTP_HOST") or "127.0.0.1").strip(),
        http_port=http_port,
    )


# =============================================================================
# Logging
# =============================================================================

_RESERVED_RECORD_ATTRS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


def _normalize_key(key: str) -> str:
    return key.strip().lower().replace("-", "_")


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and bool(_SENSITIVE_KEY.search(_normalize_key(key)))


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive(key) else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    return value


class RedactingFilter(logging.Filter):
    """Blank out credentials passed to the logger through ``extra=``."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in list(vars(record).items()):
            if name in _RESERVED_RECORD_ATTRS:
                continue
            if _is_sensitive(name):
                setattr(record, name, REDACTED)
            else:
                setattr(record, name, _redact(value))
        return True


class ExtraFormatter(logging.Formatter):
    """Append ``extra=`` fields to the message as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = {
            name: value
            for name, value in vars(record).items()
            if name not in _RESERVED_RECORD_ATTRS
        }
        if not fields:
            return base
        rendered = " ".join(f"{name}={value!r}" for name, value in sorted(fields.items()))
        return f"{base} {rendered}"


def configure_logging(level: str = "warn") -> logging.Logger:
    """Attach a stderr handler to the package logger; stdout belongs to stdio MCP."""
    if not any(isinstance(f, RedactingFilter) for f in logger.filters):
        logger.addFilter(RedactingFilter())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ExtraFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(LOG_LEVELS.get(level, logging.WARNING))
    logger.propagate = False
    return logger
