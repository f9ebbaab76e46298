"""
Codex Relay — Data Models
=========================
Pydantic v2 models for tool arguments, codex CLI events, invocation
outcomes and session records.

Wire format note:
  The `codex` tool accepts "approval-policy" (not a Python identifier) and
  `codex-reply` uses camelCase "conversationId". The models expose
  snake_case attributes and read the wire names through aliases.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SandboxMode(str, Enum):
    """Sandbox levels advertised in the `codex` tool schema."""
    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"


class ApprovalPolicy(str, Enum):
    """Approval policies advertised in the `codex` tool schema."""
    UNTRUSTED = "untrusted"
    ON_FAILURE = "on-failure"
    ON_REQUEST = "on-request"
    NEVER = "never"


class EventType(str, Enum):
    THREAD_STARTED = "thread.started"
    ITEM_COMPLETED = "item.completed"


AGENT_MESSAGE_ITEM = "agent_message"


# ---------------------------------------------------------------------------
# Tool arguments
# ---------------------------------------------------------------------------

def _require_text(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        raise ValueError("must be a non-empty string")
    return value


class CodexStartArguments(BaseModel):
    """
    Arguments of the `codex` tool.

    Optional flags are passed through verbatim; the codex CLI is the source
    of truth for which sandbox and policy values are legal.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prompt: str = Field(strict=True)
    sandbox: Optional[str] = Field(default=None, strict=True)
    model: Optional[str] = Field(default=None, strict=True)
    cwd: Optional[str] = Field(default=None, strict=True)
    approval_policy: Optional[str] = Field(default=None, alias="approval-policy", strict=True)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        return _require_text(v)


class CodexReplyArguments(BaseModel):
    """Arguments of the `codex-reply` tool."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    conversation_id: str = Field(alias="conversationId", strict=True)
    prompt: str = Field(strict=True)

    @field_validator("conversation_id", "prompt")
    @classmethod
    def not_blank(cls, v: str) -> str:
        return _require_text(v)


# ---------------------------------------------------------------------------
# Codex CLI events (one JSON object per stdout line with --json)
# ---------------------------------------------------------------------------

class CodexItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    text: Optional[str] = None


class ThreadStarted(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = EventType.THREAD_STARTED.value
    thread_id: Optional[str] = None


class ItemCompleted(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = EventType.ITEM_COMPLETED.value
    item: CodexItem = Field(default_factory=CodexItem)

    @property
    def agent_message_text(self) -> Optional[str]:
        """Text of the item when it is a non-empty agent message, else None."""
        if self.item.type == AGENT_MESSAGE_ITEM and isinstance(self.item.text, str) and self.item.text:
            return self.item.text
        return None


# ---------------------------------------------------------------------------
# Invocation requests & outcomes
# ---------------------------------------------------------------------------

class StartRequest(BaseModel):
    prompt: str
    sandbox: Optional[str] = None
    model: Optional[str] = None
    cwd: Optional[str] = None
    approval_policy: Optional[str] = None

    @classmethod
    def from_arguments(cls, args: CodexStartArguments) -> "StartRequest":
        return cls(
            prompt=args.prompt,
            sandbox=args.sandbox,
            model=args.model,
            cwd=args.cwd,
            approval_policy=args.approval_policy,
        )


class ResumeRequest(BaseModel):
    session_id: str
    prompt: str


class StartOutcome(BaseModel):
    session_id: str
    text: str
    # True when the id was recovered from raw stdout instead of a structured event.
    session_id_from_fallback: bool = False


class ResumeOutcome(BaseModel):
    text: str


class SessionRecord(BaseModel):
    session_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    initial_prompt: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "initial_prompt": self.initial_prompt,
        }
