"""
Codex CLI invocation package.

Exports:
  CodexEngine   — spawns `codex exec` runs (start / resume)
  EventFold     — reducer over the `--json` event stream
  SessionTable  — in-memory record of sessions started by this process
"""

from .engine import CodexEngine, build_resume_command, build_start_command
from .events import EventFold, extract_thread_id_fallback, parse_event, parse_line
from .sessions import SessionTable

__all__ = [
    "CodexEngine",
    "EventFold",
    "SessionTable",
    "build_start_command",
    "build_resume_command",
    "extract_thread_id_fallback",
    "parse_event",
    "parse_line",
]
