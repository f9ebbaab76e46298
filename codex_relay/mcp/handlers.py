import copy
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from codex_relay.version import __version__ as _RELAY_VERSION
from codex_relay.codex.engine import CodexEngine
from codex_relay.codex.models import (
    CodexReplyArguments,
    CodexStartArguments,
    ResumeRequest,
    StartRequest,
)
from codex_relay.errors import InvalidArguments, MethodNotFound, RpcError, UnknownTool

from .definitions import CODEX_REPLY_TOOL, CODEX_TOOL, TOOLS_SCHEMAS
from .metrics import ToolCallMetrics
from .protocol import INTERNAL_ERROR, PROTOCOL_VERSION, SERVER_NAME, is_notification

logger = logging.getLogger("CodexRelay.mcp.handlers")

SESSION_ID_MARKER = "[SESSION_ID: {session_id}]"

SendResultFn = Callable[[Any, Any], None]
SendErrorFn = Callable[[Any, int, str], None]


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {error.get('msg', 'invalid value')}")
    return "Invalid params: " + "; ".join(parts)


def text_content(text: str) -> Dict[str, str]:
    return {"type": "text", "text": text}


class McpHandlers:
    """
    Routes parsed JSON-RPC messages to the lifecycle and tool handlers.

    Conformance notes:
    - initialize is idempotent and not required before tools/call.
    - initialized / notifications/initialized are acknowledged silently.
    - Unknown request methods (with id) return -32601.
    - Unknown notifications (no id) are ignored.
    """

    def __init__(
        self,
        engine: CodexEngine,
        send_result_fn: SendResultFn,
        send_error_fn: SendErrorFn,
        tool_call_warn_ms: float = 120_000.0,
    ):
        self.engine = engine
        self.send_result = send_result_fn
        self.send_error = send_error_fn
        self.tool_call_warn_ms = tool_call_warn_ms

    async def dispatch(self, msg: Dict[str, Any]) -> None:
        """Handle a single parsed JSON-RPC message."""
        msg_id = msg.get("id")
        method = msg.get("method")
        notification = is_notification(msg)

        try:
            if method == "initialize":
                if not notification:
                    self.send_result(msg_id, self.handle_initialize(msg.get("params")))
                return

            if method in ("initialized", "notifications/initialized"):
                logger.info("Client initialized connection")
                return

            if method == "tools/list":
                if not notification:
                    self.send_result(msg_id, self.handle_list_tools())
                return

            if method == "tools/call":
                if notification:
                    logger.warning("Ignoring tools/call notification without id")
                    return
                await self.handle_call_tool(msg_id, msg.get("params"))
                return

            if notification:
                logger.debug("Ignoring unknown notification method: %s", method)
                return
            raise MethodNotFound("Method not found")
        except RpcError as exc:
            self.send_error(msg_id, exc.code, str(exc))
        except Exception:
            logger.exception("Unexpected error during RPC dispatch of %r", method)
            if not notification:
                self.send_error(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")

    def handle_initialize(self, params: Any = None) -> Dict[str, Any]:
        """Fixed capability descriptor; request params do not influence it."""
        if isinstance(params, dict):
            client_info = params.get("clientInfo")
            if isinstance(client_info, dict):
                logger.info(
                    "initialize from client %s %s",
                    client_info.get("name", "unknown"),
                    client_info.get("version", ""),
                )
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "tools": {},
                "resources": {},
            },
            "serverInfo": {
                "name": SERVER_NAME,
                "version": _RELAY_VERSION,
            },
        }

    def handle_list_tools(self) -> Dict[str, Any]:
        return {"tools": copy.deepcopy(TOOLS_SCHEMAS)}

    async def handle_call_tool(self, msg_id: Any, params: Any) -> None:
        """Validate a tools/call request, run the tool, and send exactly one response."""
        if not isinstance(params, dict):
            raise InvalidArguments("Invalid params: tools/call params must be an object")
        name = params.get("name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArguments("Invalid params: tools/call arguments must be an object")

        metrics = ToolCallMetrics(msg_id, str(name))
        try:
            result = await self.call_tool(name, arguments, metrics)
        except RpcError as exc:
            metrics.record_error(exc.code)
            self.send_error(msg_id, exc.code, str(exc))
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            metrics.record_error(INTERNAL_ERROR)
            self.send_error(msg_id, INTERNAL_ERROR, str(exc))
        else:
            self.send_result(msg_id, result)
        finally:
            metrics.log_telemetry(self.tool_call_warn_ms)

    async def call_tool(
        self,
        name: Any,
        arguments: Dict[str, Any],
        metrics: Optional[ToolCallMetrics] = None,
    ) -> Dict[str, Any]:
        if name == CODEX_TOOL:
            try:
                args = CodexStartArguments.model_validate(arguments)
            except ValidationError as exc:
                raise InvalidArguments(_format_validation_error(exc)) from exc
            outcome = await self.engine.start(StartRequest.from_arguments(args))
            if metrics is not None:
                metrics.record_success(outcome.session_id, outcome.session_id_from_fallback)
            return {
                "content": [
                    text_content(outcome.text),
                    text_content("\n" + SESSION_ID_MARKER.format(session_id=outcome.session_id)),
                ]
            }

        if name == CODEX_REPLY_TOOL:
            try:
                args = CodexReplyArguments.model_validate(arguments)
            except ValidationError as exc:
                raise InvalidArguments(_format_validation_error(exc)) from exc
            outcome = await self.engine.resume(
                ResumeRequest(session_id=args.conversation_id, prompt=args.prompt)
            )
            if metrics is not None:
                metrics.record_success(args.conversation_id)
            return {"content": [text_content(outcome.text)]}

        raise UnknownTool(name)
