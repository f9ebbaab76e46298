"""
Codex Relay MCP Protocol Constants & Envelopes
"""

import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("CodexRelay.mcp.protocol")

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

SERVER_NAME = "codex-cli-wrapper"

# Standard JSON-RPC Error Codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def success_response(msg_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result}


def error_response(msg_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": msg_id,
        "error": {
            "code": code,
            "message": message,
        },
    }


def serialize(message: Dict[str, Any]) -> str:
    """Compact single-line JSON text for the stdio transport."""
    return json.dumps(message, separators=(",", ":"))


def is_notification(msg: Dict[str, Any]) -> bool:
    return "id" not in msg


def parse_envelope(line: str) -> Optional[Dict[str, Any]]:
    """
    Parse one inbound line into a JSON-RPC message object.

    Malformed lines carry no id to answer, so they are reported on the
    diagnostic log and dropped.
    """
    try:
        msg = json.loads(line)
    except json.JSONDecodeError as exc:
        logger.error("Error processing message: invalid JSON (%s): %.200r", exc, line)
        return None
    if not isinstance(msg, dict):
        logger.error("Error processing message: expected a JSON object, got %s", type(msg).__name__)
        return None
    return msg
