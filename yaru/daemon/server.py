"""Async Unix socket server for the yaru daemon.

This module implements the long-running daemon process that:
1. Owns the task store in its data directory
2. Accepts any number of concurrent client connections
3. Reads newline-delimited JSON requests and writes one response per request

Usage:
    YARU_DATA_DIR=~/.yaru YARU_SOCKET_PATH=~/.yaru/daemon.sock \\
        python -m yaru.daemon.server

    Or use the CLI:
    yaru start
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, Set

from yaru.core.configs import ENV_DATA_DIR, ENV_SOCKET_PATH, daemon_log_path
from yaru.core.storage import StorageService
from yaru.core.task_service import TaskService
from yaru.daemon.handler import RequestHandler, TaskRequestHandler
from yaru.daemon.protocol import (
    INTERNAL_ERROR,
    NO_HANDLER,
    PARSE_ERROR,
    UNKNOWN_REQUEST_ID,
    ProtocolError,
    create_error_response,
    parse_line,
    parse_request,
    serialize_message,
)

logger = logging.getLogger(__name__)

# StreamReader buffer limit. Protocol messages have no size limit of their
# own, but a line longer than this buffer cannot be read and gets PARSE_ERROR.
READ_BUFFER_LIMIT = 16 * 1024 * 1024


class DaemonServer:
    """
    Async Unix socket server for the daemon.

    Each connection gets its own asyncio task and may carry many
    sequential requests. A bad line produces one error response and the
    connection keeps reading.
    """

    def __init__(
        self,
        socket_path: Path,
        handler: Optional[RequestHandler] = None,
    ):
        """
        Initialize daemon server.

        Args:
            socket_path: Path to Unix socket
            handler: Coroutine function answering each request. Without one,
                every request gets a NO_HANDLER error.
        """
        self.socket_path = Path(socket_path)
        self.handler = handler

        self.server: Optional[asyncio.AbstractServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._connections: Set[asyncio.StreamWriter] = set()

    def on_request(self, handler: RequestHandler) -> None:
        self.handler = handler

    async def listen(self) -> None:
        """Bind the socket. Any stale socket file is removed first."""
        self._shutdown_event = asyncio.Event()

        if self.socket_path.exists() or self.socket_path.is_symlink():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self.server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path),
            limit=READ_BUFFER_LIMIT,
        )

        # Set socket permissions (owner only)
        os.chmod(self.socket_path, 0o600)

        logger.info(f"Daemon listening on {self.socket_path}")

    async def serve_forever(self) -> None:
        """Listen if not yet bound, then serve until shutdown is requested."""
        if self.server is None:
            await self.listen()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._signal_handler)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread (e.g. tests)
                pass

        await self._shutdown_event.wait()
        await self.close()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def close(self) -> None:
        """Stop accepting, drop open connections and remove the socket file."""
        logger.info("Cleaning up...")

        if self.server:
            self.server.close()

        for writer in list(self._connections):
            writer.close()

        if self.server:
            await self.server.wait_closed()
            self.server = None

        if self.socket_path.exists():
            self.socket_path.unlink()

        logger.info("Daemon stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one connection until the peer closes it."""
        self._connections.add(writer)
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    # Line exceeded READ_BUFFER_LIMIT; the reader discarded it
                    await self._write(writer, create_error_response(
                        UNKNOWN_REQUEST_ID, PARSE_ERROR, "Message too large",
                    ))
                    continue

                if not line.endswith(b"\n"):
                    # EOF, possibly after an unterminated fragment
                    break
                if not line.strip():
                    continue

                response = await self._process_line(line)
                await self._write(writer, response)

        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Client disconnected")
        finally:
            self._connections.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass

    async def _process_line(self, line: bytes):
        try:
            message = parse_line(line)
        except (ValueError, RecursionError):
            # RecursionError: nesting too deep for the decoder
            return create_error_response(
                UNKNOWN_REQUEST_ID, PARSE_ERROR, "Invalid message format",
            )

        try:
            request = parse_request(message)
        except ProtocolError as e:
            request_id = message.get("id") if isinstance(message, dict) else None
            return create_error_response(
                request_id if isinstance(request_id, str) else UNKNOWN_REQUEST_ID,
                PARSE_ERROR,
                str(e),
            )

        if self.handler is None:
            return create_error_response(
                request.id, NO_HANDLER, "Request handler is not configured",
            )

        try:
            return await self.handler(request)
        except Exception as e:
            logger.exception(f"Error handling {request.method}: {e}")
            return create_error_response(request.id, INTERNAL_ERROR, str(e))

    async def _write(self, writer: asyncio.StreamWriter, response) -> None:
        try:
            data = serialize_message(response)
        except (TypeError, ValueError) as e:
            logger.exception(f"Cannot encode response {response.id}: {e}")
            data = serialize_message(create_error_response(
                response.id, INTERNAL_ERROR, f"Cannot encode response: {e}",
            ))
        writer.write(data)
        await writer.drain()

    def _signal_handler(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        logger.info("Received shutdown signal")
        self.request_shutdown()


async def _run(data_dir: Path, socket_path: Path) -> None:
    storage = StorageService(data_dir)
    service = TaskService(storage)

    server = DaemonServer(socket_path)
    server.on_request(TaskRequestHandler(service, on_stop=server.request_shutdown))
    await server.serve_forever()


def run_daemon(data_dir: Optional[str] = None, socket_path: Optional[str] = None) -> int:
    """
    Run the daemon in the foreground until stopped.

    Both paths fall back to YARU_DATA_DIR and YARU_SOCKET_PATH. The daemon
    refuses to start without both.

    Returns:
        Process exit status
    """
    data_dir = data_dir or os.environ.get(ENV_DATA_DIR, "")
    socket_path = socket_path or os.environ.get(ENV_SOCKET_PATH, "")
    if not data_dir or not socket_path:
        print(f"{ENV_DATA_DIR} and {ENV_SOCKET_PATH} must be set", file=sys.stderr)
        return 1

    data_path = Path(data_dir)
    data_path.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        filename=str(daemon_log_path(data_path)),
    )

    logger.info(f"Starting yaru daemon (pid {os.getpid()})...")
    try:
        asyncio.run(_run(data_path, Path(socket_path)))
    except Exception as e:
        logger.exception(f"Failed to start daemon: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run_daemon())
