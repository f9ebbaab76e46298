from typing import List, Dict, Any

from codex_relay.codex.models import ApprovalPolicy, SandboxMode

CODEX_TOOL = "codex"
CODEX_REPLY_TOOL = "codex-reply"

TOOLS_SCHEMAS: List[Dict[str, Any]] = [
    {
        "name": CODEX_TOOL,
        "description": "Start a new Codex session",
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {"type": "string", "description": "The prompt for Codex"},
                "sandbox": {
                    "type": "string",
                    "enum": [mode.value for mode in SandboxMode],
                    "description": "Sandbox mode"
                },
                "approval-policy": {
                    "type": "string",
                    "enum": [policy.value for policy in ApprovalPolicy],
                    "description": "Approval policy"
                },
                "cwd": {"type": "string", "description": "Working directory"},
                "model": {"type": "string", "description": "Model override"}
            },
            "required": ["prompt"]
        }
    },
    {
        "name": CODEX_REPLY_TOOL,
        "description": "Continue an existing Codex session",
        "inputSchema": {
            "type": "object",
            "properties": {
                "conversationId": {"type": "string", "description": "Session ID"},
                "prompt": {"type": "string", "description": "Follow-up prompt"}
            },
            "required": ["conversationId", "prompt"]
        }
    },
]
