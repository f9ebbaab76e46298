"""
Codex Relay exceptions.

Two families live here: ``RpcError`` subclasses carry a JSON-RPC error code
and are raised by the dispatcher/router, while ``InvocationError`` subclasses
describe failures of a single external ``codex`` run and always surface to
the peer as ``-32603``.
"""

from __future__ import annotations

from typing import Optional

from codex_relay.mcp.protocol import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


class CodexRelayError(RuntimeError):
    """Base class for relay errors."""


class RpcError(CodexRelayError):
    """Raised when a request must be answered with a JSON-RPC error."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, *, code: Optional[int] = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message)


class MethodNotFound(RpcError):
    code = METHOD_NOT_FOUND


class UnknownTool(RpcError):
    code = INVALID_PARAMS

    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArguments(RpcError):
    code = INVALID_PARAMS


class InvocationError(CodexRelayError):
    """Raised when an external codex run does not produce a usable result."""


class ExternalProcessFailed(InvocationError):
    """Raised when the codex process exits with a nonzero status."""

    def __init__(self, exit_code: Optional[int], *, resume: bool = False) -> None:
        self.exit_code = exit_code
        self.resume = resume
        label = "Codex resume" if resume else "Codex"
        super().__init__(f"{label} exited with code {exit_code}")


class SessionIdMissing(InvocationError):
    """Raised when a start run succeeded but no session id could be found."""

    def __init__(self) -> None:
        super().__init__("Could not extract session ID from Codex output")


class ExternalProcessSpawnError(InvocationError):
    """Raised when the codex process cannot be launched at all."""

    def __init__(self, command: str, detail: str) -> None:
        self.command = command
        super().__init__(f"Failed to launch {command}: {detail}")


class InvocationTimeout(InvocationError):
    """Raised when a codex run exceeds the configured deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Codex timed out after {timeout:g}s")
