"""Lightweight client for daemon communication.

This module provides a thin client that connects to the daemon via Unix
socket, sends one request at a time and waits for the matching response.

Usage:
    with DaemonClient(socket_path) as client:
        tasks = client.call("task.list", {"status": "pending"})
"""

import socket
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from yaru.daemon.protocol import (
    Request,
    Response,
    create_request,
    parse_line,
    parse_response,
    serialize_message,
)

DEFAULT_TIMEOUT = 5.0


class IPCError(Exception):
    """Base class for transport failures between client and daemon."""

    code = "IPC_ERROR"


class ConnectionFailedError(IPCError):
    code = "CONNECTION_FAILED"


class RequestTimeoutError(IPCError):
    code = "TIMEOUT"


class SocketError(IPCError):
    code = "SOCKET_ERROR"


class RemoteError(Exception):
    """An error response returned by the daemon."""

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class DaemonClient:
    """
    Short-lived connection to a running daemon.

    One request is in flight at a time. Responses whose id does not match
    the outstanding request are skipped.
    """

    def __init__(
        self,
        socket_path: Union[str, Path],
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize client.

        Args:
            socket_path: Path to Unix socket
            timeout: Bound for connecting and for each response, in seconds
        """
        self.socket_path = Path(socket_path)
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._buffer = b""

    def __enter__(self) -> "DaemonClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def is_connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """
        Open the connection.

        Raises:
            RequestTimeoutError: If connecting takes longer than the timeout
            ConnectionFailedError: If nothing is listening on the socket
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(str(self.socket_path))
        except socket.timeout as e:
            sock.close()
            raise RequestTimeoutError(f"Timed out connecting to {self.socket_path}") from e
        except OSError as e:
            sock.close()
            raise ConnectionFailedError(
                f"Cannot connect to {self.socket_path}: {e}"
            ) from e

        self._sock = sock
        self._buffer = b""

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._buffer = b""

    def send(self, request: Request) -> Response:
        """
        Send a request and wait for the response with the same id.

        Raises:
            ConnectionFailedError: If not connected
            RequestTimeoutError: If no matching response arrives in time
            SocketError: If the connection breaks or is closed by the daemon
        """
        if self._sock is None:
            raise ConnectionFailedError("Not connected")

        deadline = time.monotonic() + self.timeout
        try:
            self._sock.sendall(serialize_message(request))
            while True:
                response = self._next_response(deadline)
                if response.id == request.id:
                    return response
        except socket.timeout as e:
            raise RequestTimeoutError(f"No response to {request.method}") from e
        except OSError as e:
            raise SocketError(str(e)) from e

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send one request and return its data.

        Connects first if needed; a connection opened here is closed again.

        Raises:
            RemoteError: If the daemon answers with an error response
            IPCError: On transport failure
        """
        opened = False
        if self._sock is None:
            self.connect()
            opened = True

        try:
            response = self.send(create_request(method, params))
        finally:
            if opened:
                self.close()

        if not response.success:
            raise RemoteError(response.error.code, response.error.message)
        return response.data

    def _next_response(self, deadline: float) -> Response:
        while True:
            line = self._read_line(deadline)
            try:
                message = parse_line(line)
            except (ValueError, RecursionError):
                continue
            response = parse_response(message)
            if response is not None:
                return response

    def _read_line(self, deadline: float) -> bytes:
        while b"\n" not in self._buffer:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("timed out")
            self._sock.settimeout(remaining)
            chunk = self._sock.recv(65536)
            if not chunk:
                raise SocketError("Connection closed by daemon")
            self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        if not line.strip():
            return self._read_line(deadline)
        return line
