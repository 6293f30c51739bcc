"""Daemon architecture for yaru.

A long-running background process owns the task store and answers
requests from short-lived CLI invocations.

Architecture:
- DaemonServer: Async Unix socket server, one task per connection
- TaskRequestHandler: Routes protocol methods to the task service
- DaemonClient: Blocking client that sends one request at a time
- DaemonManager: Spawns, stops and tracks the daemon via its pid record
"""

from yaru.daemon.client import DaemonClient
from yaru.daemon.manager import DaemonManager
from yaru.daemon.protocol import (
    create_request,
    create_response,
    create_error_response,
    serialize_message,
    parse_line,
)

__all__ = [
    "DaemonClient",
    "DaemonManager",
    "create_request",
    "create_response",
    "create_error_response",
    "serialize_message",
    "parse_line",
]
