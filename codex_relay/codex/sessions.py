"""
In-memory session table.

Records which codex threads this process started. Entries live for the
process lifetime only and are never persisted. The table is informational:
resume passes the caller's id straight to codex whether or not it is known.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from .models import SessionRecord

logger = logging.getLogger("CodexRelay.codex.sessions")


class SessionTable:
    """Thread-safe, optionally bounded (LRU) map of session id -> SessionRecord."""

    def __init__(self, max_entries: int = 0) -> None:
        # 0 means unbounded
        self.max_entries = max(0, int(max_entries))
        self._lock = threading.Lock()
        self._records: "OrderedDict[str, SessionRecord]" = OrderedDict()

    def insert(self, session_id: str, initial_prompt: str) -> SessionRecord:
        record = SessionRecord(session_id=session_id, initial_prompt=initial_prompt)
        with self._lock:
            self._records[session_id] = record
            self._records.move_to_end(session_id)
            while self.max_entries and len(self._records) > self.max_entries:
                evicted_id, _ = self._records.popitem(last=False)
                logger.debug("Evicted session %s (max_entries=%d)", evicted_id, self.max_entries)
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
            if record is not None:
                self._records.move_to_end(session_id)
            return record

    def snapshot(self) -> List[Dict[str, str]]:
        with self._lock:
            return [record.to_dict() for record in self._records.values()]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
