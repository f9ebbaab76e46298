"""
Codex Relay: MCP stdio bridge for the Codex CLI
"""

from codex_relay.errors import (
    CodexRelayError,
    ExternalProcessFailed,
    ExternalProcessSpawnError,
    InvocationError,
    InvocationTimeout,
    SessionIdMissing,
)
from codex_relay.version import __version__

__all__ = [
    "__version__",
    "CodexRelayError",
    "InvocationError",
    "ExternalProcessFailed",
    "ExternalProcessSpawnError",
    "InvocationTimeout",
    "SessionIdMissing",
]
