"""
Codex Relay Configuration
-------------------------
Runtime settings for the relay, loaded from environment variables and
optionally overridden by CLI flags.
"""

import os
import shlex
import logging
from typing import List, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger("CodexRelay.Config")

DEFAULT_CODEX_COMMAND = ["codex"]
DEFAULT_MAX_SESSIONS = 1024
DEFAULT_TOOL_CALL_WARN_MS = 120_000.0
DEFAULT_STDOUT_CHUNK_BYTES = 64 * 1024
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_optional_float_env(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Ignoring.",
            name,
            raw,
        )
        return None


def _parse_int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
        if value < minimum:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected integer >= %d. Using %d.",
            name,
            raw,
            minimum,
            default,
        )
        return default


def _parse_command_env(name: str) -> List[str]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return list(DEFAULT_CODEX_COMMAND)
    try:
        parts = shlex.split(raw)
    except ValueError as exc:
        logger.warning("Invalid %s value '%s' (%s). Using 'codex'.", name, raw, exc)
        return list(DEFAULT_CODEX_COMMAND)
    return parts or list(DEFAULT_CODEX_COMMAND)


def _normalize_log_level(level: Optional[str]) -> str:
    candidate = (level or "").strip().upper()
    if candidate in LOG_LEVELS:
        return candidate
    if candidate:
        logger.warning(
            "Unsupported log level '%s'; expected one of %s. Falling back to 'INFO'.",
            level,
            LOG_LEVELS,
        )
    return "INFO"


class RelayConfig(BaseModel):
    """Top-level relay configuration."""
    # Command prefix used to launch the agent; "exec ..." is appended.
    codex_command: List[str] = Field(default_factory=lambda: list(DEFAULT_CODEX_COMMAND), min_length=1)
    # None keeps the reference behavior: no deadline on a codex run.
    invocation_timeout_sec: Optional[float] = Field(default=None, gt=0)
    # 0 disables the bound on the in-memory session table.
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=0)
    log_level: str = "INFO"
    log_file: Optional[str] = None
    tool_call_warn_ms: float = Field(default=DEFAULT_TOOL_CALL_WARN_MS, gt=0)
    stdout_chunk_bytes: int = Field(default=DEFAULT_STDOUT_CHUNK_BYTES, ge=1)

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from CODEX_RELAY_* environment variables."""
        warn_ms = _parse_optional_float_env("CODEX_RELAY_TOOL_CALL_WARN_MS")
        return cls(
            codex_command=_parse_command_env("CODEX_RELAY_CODEX_COMMAND"),
            invocation_timeout_sec=_parse_optional_float_env("CODEX_RELAY_TIMEOUT_SEC"),
            max_sessions=_parse_int_env("CODEX_RELAY_MAX_SESSIONS", DEFAULT_MAX_SESSIONS),
            log_level=_normalize_log_level(os.environ.get("CODEX_RELAY_LOG_LEVEL")),
            log_file=os.environ.get("CODEX_RELAY_LOG_FILE") or None,
            tool_call_warn_ms=warn_ms if warn_ms is not None else DEFAULT_TOOL_CALL_WARN_MS,
            stdout_chunk_bytes=_parse_int_env(
                "CODEX_RELAY_STDOUT_CHUNK_BYTES", DEFAULT_STDOUT_CHUNK_BYTES, minimum=1
            ),
        )

    def with_overrides(self, **overrides) -> "RelayConfig":
        """Return a copy with non-None overrides applied (used by the CLI)."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if "log_level" in updates:
            updates["log_level"] = _normalize_log_level(updates["log_level"])
        return type(self).model_validate({**self.model_dump(), **updates})
