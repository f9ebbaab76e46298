"""
Codex Relay — External Invocation Engine
========================================
Runs the `codex` CLI for the two relay tools.

CLI invocation patterns:
  start:  codex exec "<prompt>" [--sandbox <mode>] [-m <model>] [-C <cwd>] --json
  resume: codex exec resume <session_id> "<prompt>"

Start output is JSONL; the session id comes from the `thread.started` event
and the result text from the last `item.completed` agent message (see
`events.EventFold`). Resume output is returned verbatim.

Invocations are serialized through a single slot: one codex process runs at
a time, in arrival order.

Platform note:
  On Windows, subprocesses use CREATE_NO_WINDOW to suppress console pop-ups.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Callable, List, Optional, Sequence

from codex_relay.errors import (
    ExternalProcessFailed,
    ExternalProcessSpawnError,
    InvocationTimeout,
    SessionIdMissing,
)

from .events import EventFold, extract_thread_id_fallback
from .models import ResumeOutcome, ResumeRequest, StartOutcome, StartRequest
from .sessions import SessionTable

logger = logging.getLogger("CodexRelay.codex.engine")

DEFAULT_CHUNK_SIZE = 64 * 1024

# ---------------------------------------------------------------------------
# Platform helpers
# ---------------------------------------------------------------------------

_IS_WINDOWS = sys.platform == "win32"


def _get_subprocess_kwargs() -> dict:
    """
    Return platform-specific kwargs for asyncio subprocess creation.
    On Windows, suppresses the console window that would otherwise flash.
    """
    if _IS_WINDOWS:
        import subprocess

        si = subprocess.STARTUPINFO()
        si.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        si.wShowWindow = subprocess.SW_HIDE
        return {
            "creationflags": subprocess.CREATE_NO_WINDOW,
            "startupinfo": si,
        }
    return {}


# ---------------------------------------------------------------------------
# Command builders
# ---------------------------------------------------------------------------


def build_start_command(base: Sequence[str], request: StartRequest) -> List[str]:
    """Build the `codex exec ... --json` argv for a new session. Pure transformation."""
    cmd: List[str] = [*base, "exec", request.prompt]
    if request.sandbox:
        cmd += ["--sandbox", request.sandbox]
    if request.model:
        cmd += ["-m", request.model]
    if request.cwd:
        cmd += ["-C", request.cwd]
    cmd.append("--json")
    return cmd


def build_resume_command(base: Sequence[str], request: ResumeRequest) -> List[str]:
    """Build the `codex exec resume` argv for an existing session."""
    return [*base, "exec", "resume", request.session_id, request.prompt]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CodexEngine:
    """
    Spawns codex runs and folds their output into invocation outcomes.

    The engine owns the process-scoped `SessionTable`; only successful starts
    insert into it.
    """

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        sessions: Optional[SessionTable] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.command: List[str] = list(command) if command else ["codex"]
        self.timeout = timeout
        self.sessions = sessions if sessions is not None else SessionTable()
        self.chunk_size = max(1, int(chunk_size))
        self._slot = asyncio.Lock()

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(self, request: StartRequest) -> StartOutcome:
        """Run a new codex session and return its session id and final text."""
        command = build_start_command(self.command, request)
        logger.debug(
            "codex command: %s exec <prompt[%d chars]> sandbox=%s model=%s cwd=%s",
            self.command[0],
            len(request.prompt),
            request.sandbox,
            request.model,
            request.cwd,
        )
        if request.approval_policy:
            logger.debug(
                "approval-policy=%s accepted but not forwarded to codex exec",
                request.approval_policy,
            )

        fold = EventFold()
        async with self._slot:
            try:
                returncode = await self._run(command, cwd=request.cwd, on_stdout=fold.feed)
            finally:
                fold.close()

        if returncode != 0:
            raise ExternalProcessFailed(returncode)

        session_id = fold.session_id
        from_fallback = False
        if session_id is None:
            session_id = extract_thread_id_fallback(fold.raw_output)
            if session_id is None:
                logger.error(
                    "codex exited 0 without a thread.started event (%d events, %d stdout chars)",
                    fold.event_count,
                    len(fold.raw_output),
                )
                raise SessionIdMissing()
            from_fallback = True
            logger.warning(
                "Session id fallback fired: no thread.started event, recovered %s from raw stdout",
                session_id,
            )

        self.sessions.insert(session_id, request.prompt)
        logger.info("codex session started: %s", session_id)
        return StartOutcome(
            session_id=session_id,
            text=fold.text,
            session_id_from_fallback=from_fallback,
        )

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    async def resume(self, request: ResumeRequest) -> ResumeOutcome:
        """Continue an existing codex session; the result is the raw stdout."""
        if self.sessions.get(request.session_id) is None:
            logger.debug("Resuming session %s not started by this process", request.session_id)

        command = build_resume_command(self.command, request)
        buffer = bytearray()
        async with self._slot:
            returncode = await self._run(command, cwd=None, on_stdout=buffer.extend)

        if returncode != 0:
            raise ExternalProcessFailed(returncode, resume=True)
        return ResumeOutcome(text=bytes(buffer).decode("utf-8", errors="replace"))

    # ------------------------------------------------------------------
    # Process plumbing
    # ------------------------------------------------------------------

    async def _run(
        self,
        command: List[str],
        *,
        cwd: Optional[str],
        on_stdout: Callable[[bytes], None],
    ) -> int:
        """Spawn `command`, stream its output, and return the exit status."""
        t_start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd or None,
                **_get_subprocess_kwargs(),
            )
        except OSError as exc:
            logger.warning("codex launch failed: %s", exc)
            raise ExternalProcessSpawnError(command[0], str(exc)) from exc

        async def _drain() -> int:
            await asyncio.gather(
                self._pump_stdout(proc.stdout, on_stdout),
                self._pump_stderr(proc.stderr),
            )
            return await proc.wait()

        if self.timeout is None:
            returncode = await _drain()
        else:
            try:
                returncode = await asyncio.wait_for(_drain(), timeout=self.timeout)
            except asyncio.TimeoutError:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
                logger.warning("codex pid=%s timed out after %gs", proc.pid, self.timeout)
                raise InvocationTimeout(self.timeout)

        latency_ms = int((time.monotonic() - t_start) * 1000)
        log_method = logger.warning if returncode != 0 else logger.debug
        log_method("codex pid=%s exit=%s latency_ms=%d", proc.pid, returncode, latency_ms)
        return returncode

    async def _pump_stdout(
        self,
        stream: asyncio.StreamReader,
        on_stdout: Callable[[bytes], None],
    ) -> None:
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            on_stdout(chunk)

    async def _pump_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            text = chunk.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.info("Codex stderr: %s", text)
