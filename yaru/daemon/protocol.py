"""Newline-delimited JSON protocol for daemon IPC.

Every message is one JSON object on one line.

Request format:
    {"id": str, "method": str, "params": {...}}

Success response:
    {"id": str, "success": true, "data": any}

Error response:
    {"id": str, "success": false, "error": {"code": str, "message": str}}

Params are a flat string-keyed map on the wire. The server decodes them into
one params dataclass per method (METHOD_PARAMS) before dispatch, so handlers
never look up untyped keys.
"""

import json
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Type

from yaru.core.types import PRIORITIES, TASK_STATUSES, is_valid_priority, is_valid_status

# Wire-level error codes (domain codes come from yaru.core.types)
PARSE_ERROR = "PARSE_ERROR"
NO_HANDLER = "NO_HANDLER"
UNKNOWN_METHOD = "UNKNOWN_METHOD"
INTERNAL_ERROR = "INTERNAL_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"

UNKNOWN_REQUEST_ID = "unknown"


@dataclass
class Request:
    id: str
    method: str
    params: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "method": self.method, "params": self.params}


@dataclass
class ErrorInfo:
    code: str
    message: str


@dataclass
class Response:
    id: str
    success: bool
    data: Any = None
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"id": self.id, "success": True, "data": self.data}
        return {
            "id": self.id,
            "success": False,
            "error": {"code": self.error.code, "message": self.error.message},
        }


class ProtocolError(ValueError):
    """A message that is valid JSON but not a well-formed protocol message."""

    code = PARSE_ERROR


class ParamsError(ProtocolError):
    """Request params that do not fit the method's params type."""

    code = VALIDATION_ERROR


class UnknownMethodError(ProtocolError):
    code = UNKNOWN_METHOD


# ============================================================================
# Message construction
# ============================================================================

def create_request(method: str, params: Optional[Dict[str, Any]] = None) -> Request:
    """Create a request with a fresh correlation id."""
    return Request(id=str(uuid.uuid4()), method=method, params=dict(params or {}))


def create_response(request_id: str, data: Any) -> Response:
    return Response(id=request_id, success=True, data=data)


def create_error_response(request_id: str, code: str, message: str) -> Response:
    return Response(
        id=request_id,
        success=False,
        error=ErrorInfo(code=code, message=message),
    )


# ============================================================================
# Framing
# ============================================================================

def serialize_message(message: Any) -> bytes:
    """
    Serialize a Request or Response to one newline-terminated line.

    json.dumps escapes control characters and everything outside ASCII, so
    the payload never contains a raw newline and always encodes, lone
    surrogates included.
    """
    return (json.dumps(message.to_dict()) + "\n").encode("ascii")


def parse_line(line: bytes) -> Any:
    """
    Parse one framed line.

    Raises:
        ValueError: If the line is not valid UTF-8 JSON
    """
    return json.loads(line.decode("utf-8").strip())


def parse_request(message: Any) -> Request:
    """
    Validate a decoded JSON value as a request.

    Raises:
        ProtocolError: If the value is not a request object
    """
    if not isinstance(message, dict):
        raise ProtocolError("Invalid message format")
    request_id = message.get("id")
    method = message.get("method")
    params = message.get("params", {})
    if not isinstance(request_id, str) or not isinstance(method, str):
        raise ProtocolError("Invalid message format")
    if not isinstance(params, dict):
        raise ProtocolError("Request params must be an object")
    return Request(id=request_id, method=method, params=params)


def parse_response(message: Any) -> Optional[Response]:
    """Validate a decoded JSON value as a response. Returns None if it is not one."""
    if not isinstance(message, dict) or "success" not in message:
        return None
    if message.get("success"):
        return create_response(str(message.get("id")), message.get("data"))
    error = message.get("error") or {}
    return create_error_response(
        str(message.get("id")),
        str(error.get("code", INTERNAL_ERROR)),
        str(error.get("message", "")),
    )


# ============================================================================
# Typed params
# ============================================================================

@dataclass
class EmptyParams:
    pass


@dataclass
class CreateTaskParams:
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None


@dataclass
class ListTasksParams:
    status: Optional[str] = None
    priority: Optional[str] = None
    sortBy: Optional[str] = None
    sortOrder: Optional[str] = None


@dataclass
class TaskIdParams:
    id: str


@dataclass
class UpdateTaskParams:
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None


@dataclass
class UpdateStatusParams:
    id: str
    status: str


@dataclass
class SearchParams:
    query: str


@dataclass
class CreateSubtaskParams:
    parentId: str
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None


@dataclass
class ParentIdParams:
    parentId: str


METHOD_PARAMS: Dict[str, Type] = {
    "task.create": CreateTaskParams,
    "task.list": ListTasksParams,
    "task.get": TaskIdParams,
    "task.update": UpdateTaskParams,
    "task.updateStatus": UpdateStatusParams,
    "task.delete": TaskIdParams,
    "task.search": SearchParams,
    "subtask.create": CreateSubtaskParams,
    "subtask.list": ParentIdParams,
    "subtask.progress": ParentIdParams,
    "daemon.status": EmptyParams,
    "daemon.stop": EmptyParams,
}

SORT_ORDERS = ("asc", "desc")

# Enumerated params: validity check and the values named in the error
_ENUM_CHECKS = {
    "status": (is_valid_status, TASK_STATUSES),
    "priority": (is_valid_priority, PRIORITIES),
    "sortOrder": (lambda value: value in SORT_ORDERS, SORT_ORDERS),
}


def decode_params(method: str, params: Dict[str, Any]) -> Any:
    """
    Decode raw params into the method's params dataclass.

    Unknown keys are ignored. A null value counts as absent.

    Raises:
        UnknownMethodError: If the method is not in the catalogue
        ParamsError: If a required key is missing or a value is invalid
    """
    params_type = METHOD_PARAMS.get(method)
    if params_type is None:
        raise UnknownMethodError(f"Unknown method: {method}")

    values: Dict[str, Any] = {}
    for f in fields(params_type):
        value = params.get(f.name)
        if value is None:
            if f.default is not None:
                raise ParamsError(f"Missing required parameter: {f.name}")
            continue
        if not isinstance(value, str):
            raise ParamsError(f"Parameter '{f.name}' must be a string")
        check, allowed = _ENUM_CHECKS.get(f.name, (None, ()))
        if check is not None and not check(value):
            raise ParamsError(
                f"Invalid {f.name}: {value}. Expected one of: {', '.join(allowed)}"
            )
        values[f.name] = value
    return params_type(**values)
