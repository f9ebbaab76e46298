#!/usr/bin/env python3
"""
Codex Relay MCP Wrapper
-----------------------
Stdio entry point for MCP clients (Claude Desktop, etc.). Relays the
`codex` and `codex-reply` tools to the local Codex CLI.

Register it with a client as:
    python /path/to/mcp_wrapper.py [--timeout 600] [--log-file relay.log]
"""

import sys

from codex_relay.cli import main

if __name__ == "__main__":
    sys.exit(main())
