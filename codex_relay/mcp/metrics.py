import time
import logging
from typing import Any, Optional

logger = logging.getLogger("CodexRelay.mcp.metrics")


class ToolCallMetrics:
    """
    Tracks timing and outcome for a single MCP tool call.
    """
    def __init__(self, msg_id: Any, name: str):
        self.msg_id = msg_id
        self.name = name
        self.outcome = "no_response"
        self.error_code: Optional[int] = None
        self.session_id: Optional[str] = None
        self.used_fallback = False
        self.started_monotonic = time.monotonic()

    def record_success(self, session_id: Optional[str] = None, used_fallback: bool = False) -> None:
        self.outcome = "success"
        self.session_id = session_id
        self.used_fallback = used_fallback

    def record_error(self, code: int) -> None:
        self.outcome = "error"
        self.error_code = code

    def elapsed_ms(self) -> float:
        return max(0.0, (time.monotonic() - self.started_monotonic) * 1000.0)

    def log_telemetry(self, warn_threshold_ms: float) -> None:
        """Log normalized telemetry for the tool call."""
        elapsed_ms = self.elapsed_ms()
        log_method = logger.warning if elapsed_ms >= warn_threshold_ms else logger.info
        log_method(
            "Tool call telemetry: name=%s id=%r outcome=%s elapsed_ms=%.1f error_code=%s "
            "session_id=%s session_id_fallback=%s",
            self.name,
            self.msg_id,
            self.outcome,
            elapsed_ms,
            "n/a" if self.error_code is None else self.error_code,
            self.session_id or "n/a",
            self.used_fallback,
        )
