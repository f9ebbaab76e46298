import io
import os
import sys
import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, IO, Iterator, Optional

from .protocol import error_response, parse_envelope, serialize, success_response, INTERNAL_ERROR

logger = logging.getLogger("CodexRelay.mcp.server")

DispatchFn = Callable[[Dict[str, Any]], Awaitable[None]]

READ_CHUNK_BYTES = 65536


def _raw_fileno(stream: IO) -> Optional[int]:
    try:
        return stream.fileno()
    except (AttributeError, io.UnsupportedOperation, ValueError):
        return None


class McpServer:
    """
    Handles line-delimited JSON-RPC communication over stdio.

    Inbound lines are read on a daemon thread and handed to the event loop;
    each message is dispatched to completion before the next one is taken,
    so tool calls run one at a time in arrival order.
    """
    def __init__(self, input_stream: Optional[IO] = None, output_stream: Optional[IO] = None):
        self.input_stream = input_stream if input_stream is not None else sys.stdin.buffer
        self.output_stream = output_stream if output_stream is not None else sys.stdout
        self.transport_closed = threading.Event()
        self.write_lock = threading.Lock()

    def stop(self):
        """Close the transport; later sends are dropped."""
        self.transport_closed.set()

    def send_rpc(self, message: Dict[str, Any]) -> None:
        """Serialize and send a JSON-RPC message, one line, flushed immediately."""
        if self.transport_closed.is_set():
            return

        serialized = serialize(message)
        with self.write_lock:
            if self.transport_closed.is_set():
                return
            try:
                self.output_stream.write(serialized + "\n")
                self.output_stream.flush()
            except (BrokenPipeError, OSError) as exc:
                self.transport_closed.set()
                logger.warning("MCP stdio transport closed while sending: %s", exc)

    def send_result(self, msg_id: Any, result: Any) -> None:
        self.send_rpc(success_response(msg_id, result))

    def send_error(self, msg_id: Any, code: int, message: str) -> None:
        """Convenience method for sending JSON-RPC errors."""
        self.send_rpc(error_response(msg_id, code, message))

    @staticmethod
    def read_line(stream: IO) -> Optional[str]:
        """
        Read one line from a binary or text stream.
        Returns the stripped text ("" for blank lines) or None at EOF.
        """
        line = stream.readline()
        if not line:
            return None
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        return line.strip()

    @staticmethod
    def iter_fd_lines(fd: int, chunk_size: int = READ_CHUNK_BYTES) -> Iterator[str]:
        """
        Unbuffered line reader over a raw descriptor.
        No io object lock is held while blocked, so interpreter shutdown
        is not stalled by the reader thread.
        """
        pending = bytearray()
        while True:
            chunk = os.read(fd, chunk_size)
            if not chunk:
                break
            pending.extend(chunk)
            while True:
                newline = pending.find(b"\n")
                if newline < 0:
                    break
                raw = bytes(pending[:newline])
                del pending[:newline + 1]
                yield raw.decode("utf-8", errors="replace").strip()
        if pending:
            yield bytes(pending).decode("utf-8", errors="replace").strip()

    def iter_lines(self, stream: Optional[IO] = None) -> Iterator[str]:
        stream = stream if stream is not None else self.input_stream
        fd = _raw_fileno(stream)
        if fd is not None:
            yield from self.iter_fd_lines(fd)
            return
        while True:
            line = self.read_line(stream)
            if line is None:
                return
            yield line

    async def serve(self, dispatch_fn: DispatchFn) -> None:
        """Run the read loop until stdin reaches EOF or the transport closes."""
        loop = asyncio.get_running_loop()
        queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()

        def _enqueue(item: Optional[str]) -> None:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # loop already closed during shutdown
                pass

        def _reader() -> None:
            try:
                for line in self.iter_lines():
                    _enqueue(line)
            except Exception as exc:
                logger.error("stdin reader stopped: %s", exc)
            finally:
                _enqueue(None)

        threading.Thread(target=_reader, name="codex-relay-stdin", daemon=True).start()
        logger.info("Codex Relay MCP server started")

        while True:
            line = await queue.get()
            if line is None:
                logger.info("stdin closed; stopping")
                break
            if self.transport_closed.is_set():
                break
            if not line:
                continue
            msg = parse_envelope(line)
            if msg is None:
                continue
            await self._dispatch_guarded(dispatch_fn, msg)

    async def _dispatch_guarded(self, dispatch_fn: DispatchFn, msg: Dict[str, Any]) -> None:
        try:
            await dispatch_fn(msg)
        except Exception:
            logger.exception("Unexpected error during RPC dispatch")
            if "id" in msg and not self.transport_closed.is_set():
                self.send_error(msg.get("id"), INTERNAL_ERROR, "Internal error during request dispatch.")
