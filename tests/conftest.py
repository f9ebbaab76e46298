"""
Shared fixtures: a scripted stand-in for the `codex` binary.

The fake is a Python script run through the current interpreter, so
`[sys.executable, script]` takes the place of `codex` and receives the
same `exec ...` argv the real CLI would.
"""
from __future__ import annotations

import sys
import textwrap

import pytest


@pytest.fixture
def fake_codex(tmp_path):
    """Factory: body (Python source, sees `sys`, `json`, `os`) -> command prefix list."""
    counter = {"n": 0}

    def _make(body: str) -> list[str]:
        counter["n"] += 1
        script = tmp_path / f"fake_codex_{counter['n']}.py"
        script.write_text(
            "import json, os, sys\n" + textwrap.dedent(body),
            encoding="utf-8",
        )
        return [sys.executable, str(script)]

    return _make
