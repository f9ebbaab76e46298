"""
Tests for CodexEngine — codex_relay/codex/engine.py

Coverage targets:
  - Command construction for start and resume
  - Start: event fold, session table insert, raw-stdout text fallback
  - Start: nonzero exit, thread id fallback scan, missing session id
  - Resume: verbatim stdout, nonzero exit, unknown ids passed through
  - Spawn failures, stderr isolation, timeouts, single-slot serialization
"""
from __future__ import annotations

import asyncio
import json
import os

import pytest

from codex_relay.codex.engine import CodexEngine, build_resume_command, build_start_command
from codex_relay.codex.models import ResumeRequest, StartRequest
from codex_relay.codex.sessions import SessionTable
from codex_relay.errors import (
    ExternalProcessFailed,
    ExternalProcessSpawnError,
    InvocationTimeout,
    SessionIdMissing,
)

THREAD_ID = "11111111-1111-1111-1111-111111111111"

HELLO_SCRIPT = f"""
print(json.dumps({{"type": "thread.started", "thread_id": "{THREAD_ID}"}}))
print(json.dumps({{"type": "item.completed", "item": {{"type": "agent_message", "text": "hello"}}}}))
"""

ECHO_ARGV_SCRIPT = f"""
print(json.dumps({{"type": "thread.started", "thread_id": "{THREAD_ID}"}}))
payload = {{"argv": sys.argv[1:], "cwd": os.getcwd()}}
print(json.dumps({{"type": "item.completed", "item": {{"type": "agent_message", "text": json.dumps(payload)}}}}))
"""


# ---------------------------------------------------------------------------
# Command builders
# ---------------------------------------------------------------------------


class TestBuildCommands:
    def test_start_minimal(self):
        assert build_start_command(["codex"], StartRequest(prompt="hi")) == [
            "codex", "exec", "hi", "--json",
        ]

    def test_start_all_flags_in_order(self):
        request = StartRequest(
            prompt="fix it",
            sandbox="workspace-write",
            model="o3",
            cwd="/repo",
            approval_policy="never",
        )
        assert build_start_command(["codex"], request) == [
            "codex", "exec", "fix it",
            "--sandbox", "workspace-write",
            "-m", "o3",
            "-C", "/repo",
            "--json",
        ]

    def test_start_with_command_prefix(self):
        assert build_start_command(["npx", "codex"], StartRequest(prompt="p"))[:3] == ["npx", "codex", "exec"]

    def test_resume(self):
        request = ResumeRequest(session_id="abc", prompt="go on")
        assert build_resume_command(["codex"], request) == ["codex", "exec", "resume", "abc", "go on"]


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


class TestStart:
    @pytest.mark.asyncio
    async def test_success_scenario(self, fake_codex):
        engine = CodexEngine(command=fake_codex(HELLO_SCRIPT))
        outcome = await engine.start(StartRequest(prompt="hi"))
        assert outcome.session_id == THREAD_ID
        assert outcome.text == "hello"
        assert outcome.session_id_from_fallback is False

    @pytest.mark.asyncio
    async def test_success_records_exactly_one_session(self, fake_codex):
        sessions = SessionTable()
        engine = CodexEngine(command=fake_codex(HELLO_SCRIPT), sessions=sessions)
        outcome = await engine.start(StartRequest(prompt="hi"))
        assert len(sessions) == 1
        record = sessions.get(outcome.session_id)
        assert record is not None
        assert record.initial_prompt == "hi"

    @pytest.mark.asyncio
    async def test_passes_flags_and_cwd(self, fake_codex, tmp_path):
        workdir = tmp_path / "work"
        workdir.mkdir()
        engine = CodexEngine(command=fake_codex(ECHO_ARGV_SCRIPT))
        outcome = await engine.start(
            StartRequest(prompt="hi", sandbox="read-only", model="o3", cwd=str(workdir))
        )
        payload = json.loads(outcome.text)
        assert payload["argv"] == [
            "exec", "hi", "--sandbox", "read-only", "-m", "o3", "-C", str(workdir), "--json",
        ]
        assert os.path.realpath(payload["cwd"]) == os.path.realpath(str(workdir))

    @pytest.mark.asyncio
    async def test_text_falls_back_to_raw_stdout(self, fake_codex):
        script = f"""
sys.stdout.write("thinking...\\n")
print(json.dumps({{"type": "thread.started", "thread_id": "{THREAD_ID}"}}))
"""
        engine = CodexEngine(command=fake_codex(script))
        outcome = await engine.start(StartRequest(prompt="hi"))
        assert outcome.session_id == THREAD_ID
        assert outcome.text.startswith("thinking...\n")
        assert '"thread.started"' in outcome.text

    @pytest.mark.asyncio
    async def test_small_chunks_still_fold(self, fake_codex):
        engine = CodexEngine(command=fake_codex(HELLO_SCRIPT), chunk_size=7)
        outcome = await engine.start(StartRequest(prompt="hi"))
        assert outcome.session_id == THREAD_ID
        assert outcome.text == "hello"

    @pytest.mark.asyncio
    async def test_nonzero_exit_fails_without_session(self, fake_codex):
        script = HELLO_SCRIPT + "sys.exit(3)\n"
        sessions = SessionTable()
        engine = CodexEngine(command=fake_codex(script), sessions=sessions)
        with pytest.raises(ExternalProcessFailed) as excinfo:
            await engine.start(StartRequest(prompt="hi"))
        assert excinfo.value.exit_code == 3
        assert "3" in str(excinfo.value)
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_fallback_extracts_thread_id_from_raw_output(self, fake_codex, caplog):
        script = f"""
print("session ready, thread_id: {THREAD_ID}")
print(json.dumps({{"type": "item.completed", "item": {{"type": "agent_message", "text": "done"}}}}))
"""
        sessions = SessionTable()
        engine = CodexEngine(command=fake_codex(script), sessions=sessions)
        with caplog.at_level("WARNING", logger="CodexRelay.codex.engine"):
            outcome = await engine.start(StartRequest(prompt="hi"))
        assert outcome.session_id == THREAD_ID
        assert outcome.text == "done"
        assert outcome.session_id_from_fallback is True
        assert THREAD_ID in sessions
        assert any("fallback" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_missing_session_id(self, fake_codex):
        script = 'print(json.dumps({"type": "item.completed", "item": {"type": "agent_message", "text": "x"}}))\n'
        sessions = SessionTable()
        engine = CodexEngine(command=fake_codex(script), sessions=sessions)
        with pytest.raises(SessionIdMissing):
            await engine.start(StartRequest(prompt="hi"))
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_stderr_is_not_part_of_result(self, fake_codex, caplog):
        script = 'sys.stderr.write("secret diagnostics\\n")\n' + HELLO_SCRIPT
        engine = CodexEngine(command=fake_codex(script))
        with caplog.at_level("INFO", logger="CodexRelay.codex.engine"):
            outcome = await engine.start(StartRequest(prompt="hi"))
        assert "secret diagnostics" not in outcome.text
        assert any("secret diagnostics" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_missing_binary_raises_spawn_error(self, tmp_path):
        engine = CodexEngine(command=[str(tmp_path / "no-such-codex")])
        with pytest.raises(ExternalProcessSpawnError) as excinfo:
            await engine.start(StartRequest(prompt="hi"))
        assert "no-such-codex" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, fake_codex):
        engine = CodexEngine(command=fake_codex("import time\ntime.sleep(30)\n"), timeout=0.5)
        with pytest.raises(InvocationTimeout) as excinfo:
            await asyncio.wait_for(engine.start(StartRequest(prompt="hi")), timeout=15)
        assert excinfo.value.timeout == 0.5
        assert len(engine.sessions) == 0


# ---------------------------------------------------------------------------
# Resume
# ---------------------------------------------------------------------------


class TestResume:
    @pytest.mark.asyncio
    async def test_success_scenario(self, fake_codex):
        engine = CodexEngine(command=fake_codex('sys.stdout.write("ok")\n'))
        outcome = await engine.resume(ResumeRequest(session_id="abc", prompt="go on"))
        assert outcome.text == "ok"

    @pytest.mark.asyncio
    async def test_output_is_verbatim_without_folding(self, fake_codex):
        script = f"""
print(json.dumps({{"type": "thread.started", "thread_id": "{THREAD_ID}"}}))
print("plain")
"""
        sessions = SessionTable()
        engine = CodexEngine(command=fake_codex(script), sessions=sessions)
        outcome = await engine.resume(ResumeRequest(session_id="abc", prompt="go on"))
        assert outcome.text == json.dumps({"type": "thread.started", "thread_id": THREAD_ID}) + "\nplain\n"
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_argv(self, fake_codex):
        engine = CodexEngine(command=fake_codex("sys.stdout.write(json.dumps(sys.argv[1:]))\n"))
        outcome = await engine.resume(ResumeRequest(session_id="abc", prompt="go on"))
        assert json.loads(outcome.text) == ["exec", "resume", "abc", "go on"]

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, fake_codex):
        engine = CodexEngine(command=fake_codex('print("partial")\nsys.exit(2)\n'))
        with pytest.raises(ExternalProcessFailed) as excinfo:
            await engine.resume(ResumeRequest(session_id="abc", prompt="go on"))
        assert excinfo.value.exit_code == 2
        assert str(excinfo.value) == "Codex resume exited with code 2"


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSingleSlot:
    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_overlap(self, fake_codex, tmp_path):
        marker = tmp_path / "running"
        script = f"""
import time
marker = {str(marker)!r}
if os.path.exists(marker):
    sys.stdout.write("overlap")
    sys.exit(0)
open(marker, "w").close()
time.sleep(0.3)
os.remove(marker)
sys.stdout.write("alone")
"""
        engine = CodexEngine(command=fake_codex(script))
        first, second = await asyncio.gather(
            engine.resume(ResumeRequest(session_id="a", prompt="1")),
            engine.resume(ResumeRequest(session_id="b", prompt="2")),
        )
        assert first.text == "alone"
        assert second.text == "alone"
