"""
Codex JSONL event stream folding.

`codex exec --json` writes one JSON object per stdout line. The fold keeps
the first `thread.started` id and the last agent-message text; every other
line, JSON or not, is ignored. Chunk boundaries from the pipe do not line up
with line boundaries, so partial lines are carried over between feeds.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from pydantic import ValidationError

from .models import EventType, ItemCompleted, ThreadStarted

logger = logging.getLogger("CodexRelay.codex.events")

CodexEvent = Union[ThreadStarted, ItemCompleted]

# Last-resort pattern for a UUID-shaped id following a thread_id marker in
# unstructured output, e.g. `"thread_id":"<uuid>"` or `thread_id: <uuid>`.
_FALLBACK_THREAD_ID_PATTERN = re.compile(
    r"thread_id[\s\"':=]+([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})",
    re.IGNORECASE,
)


def parse_event(obj: Any) -> Optional[CodexEvent]:
    """Map a decoded JSON value onto a recognized event model, or None."""
    if not isinstance(obj, dict):
        return None
    event_type = obj.get("type")
    try:
        if event_type == EventType.THREAD_STARTED.value:
            return ThreadStarted.model_validate(obj)
        if event_type == EventType.ITEM_COMPLETED.value:
            return ItemCompleted.model_validate(obj)
    except ValidationError as exc:
        logger.debug("Ignoring malformed %s event: %s", event_type, exc.errors()[:1])
    return None


def parse_line(line: str) -> Optional[CodexEvent]:
    text = line.strip()
    if not text:
        return None
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        # codex may print diagnostic noise on stdout
        return None
    return parse_event(obj)


def extract_thread_id_fallback(raw: str) -> Optional[str]:
    """Scan unstructured output for a thread id. Brittle; use only as a last resort."""
    match = _FALLBACK_THREAD_ID_PATTERN.search(raw)
    if match:
        return match.group(1)
    return None


@dataclass
class EventFold:
    """Incremental reducer over codex stdout chunks."""

    session_id: Optional[str] = None
    last_message: Optional[str] = None
    event_count: int = 0
    _chunks: List[str] = field(default_factory=list)
    _pending: str = ""
    _decoder: Any = field(default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace"))

    def feed(self, data: bytes) -> None:
        """Consume a raw stdout chunk, folding every complete line it closes."""
        text = self._decoder.decode(data)
        if not text:
            return
        self._chunks.append(text)
        buffered = self._pending + text
        *lines, self._pending = buffered.split("\n")
        for line in lines:
            self._fold_line(line)

    def close(self) -> None:
        """Flush the decoder and fold a trailing line that had no newline."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._chunks.append(tail)
        remainder = self._pending + tail
        self._pending = ""
        if remainder:
            self._fold_line(remainder)

    def _fold_line(self, line: str) -> None:
        event = parse_line(line)
        if event is None:
            return
        self.event_count += 1
        if isinstance(event, ThreadStarted):
            if self.session_id is None and isinstance(event.thread_id, str) and event.thread_id:
                self.session_id = event.thread_id
        elif isinstance(event, ItemCompleted):
            text = event.agent_message_text
            if text is not None:
                self.last_message = text

    @property
    def raw_output(self) -> str:
        return "".join(self._chunks)

    @property
    def text(self) -> str:
        """Final agent message, or the entire raw stdout when none was seen."""
        if self.last_message is not None:
            return self.last_message
        return self.raw_output
