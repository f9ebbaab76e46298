"""
Codex Relay CLI — run the MCP stdio bridge for the Codex CLI.

Usage:
    codex-relay [options]
    python -m codex_relay [options]

Every option falls back to its CODEX_RELAY_* environment variable
(see codex_relay.core.config).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shlex
import signal
from typing import Optional, Sequence

from codex_relay.codex.engine import CodexEngine
from codex_relay.codex.sessions import SessionTable
from codex_relay.core.config import LOG_LEVELS, RelayConfig
from codex_relay.core.logging import configure_logging
from codex_relay.mcp.handlers import McpHandlers
from codex_relay.mcp.server import McpServer
from codex_relay.version import __version__

logger = logging.getLogger("CodexRelay.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codex-relay",
        description="MCP stdio server that relays tool calls to the Codex CLI.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--codex-command",
        default=None,
        help="Command used to launch codex, e.g. 'codex' or 'npx codex' (default: codex).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds before a codex run is killed (default: no timeout).",
    )
    parser.add_argument(
        "--max-sessions",
        type=int,
        default=None,
        help="Maximum sessions kept in memory; 0 disables the bound (default: 1024).",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Diagnostic log level (default: INFO).",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write diagnostics to this file instead of stderr.",
    )
    return parser


def load_config(args: argparse.Namespace) -> RelayConfig:
    codex_command = shlex.split(args.codex_command) if args.codex_command else None
    return RelayConfig.from_env().with_overrides(
        codex_command=codex_command or None,
        invocation_timeout_sec=args.timeout,
        max_sessions=args.max_sessions,
        log_level=args.log_level,
        log_file=args.log_file,
    )


def build_handlers(config: RelayConfig, server: McpServer) -> McpHandlers:
    engine = CodexEngine(
        command=config.codex_command,
        timeout=config.invocation_timeout_sec,
        sessions=SessionTable(max_entries=config.max_sessions),
        chunk_size=config.stdout_chunk_bytes,
    )
    return McpHandlers(
        engine,
        send_result_fn=server.send_result,
        send_error_fn=server.send_error,
        tool_call_warn_ms=config.tool_call_warn_ms,
    )


async def run_server(server: McpServer, handlers: McpHandlers) -> None:
    """Serve until EOF; SIGINT/SIGTERM cancel the loop without sending anything."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass
    try:
        await server.serve(handlers.dispatch)
    except asyncio.CancelledError:
        server.stop()
        logger.info("Termination signal received; shutting down")
    finally:
        sessions = handlers.engine.sessions
        logger.info("Relay stopped with %d recorded session(s)", len(sessions))
        logger.debug("Session table at shutdown: %s", sessions.snapshot())


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args)
    configure_logging(config.log_level, config.log_file)
    logger.info(
        "Codex Relay %s starting (codex=%s timeout=%s max_sessions=%d)",
        __version__,
        " ".join(config.codex_command),
        config.invocation_timeout_sec,
        config.max_sessions,
    )

    server = McpServer()
    handlers = build_handlers(config, server)
    try:
        asyncio.run(run_server(server, handlers))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
