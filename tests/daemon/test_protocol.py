"""
Tests for daemon/protocol.py - message shapes, framing and params decoding.
"""

import json
import unittest

from yaru.daemon.protocol import (
    CreateTaskParams,
    EmptyParams,
    ListTasksParams,
    METHOD_PARAMS,
    ParamsError,
    ProtocolError,
    UnknownMethodError,
    create_error_response,
    create_request,
    create_response,
    decode_params,
    parse_line,
    parse_request,
    parse_response,
    serialize_message,
)


class TestMessages(unittest.TestCase):
    """Test cases for request/response construction and framing."""

    def test_request_ids_are_fresh(self):
        first = create_request("task.list")
        second = create_request("task.list")
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(first.params, {})

    def test_serialized_message_is_one_line(self):
        request = create_request("task.create", {"title": "multi\nline\ntitle"})
        data = serialize_message(request)

        self.assertTrue(data.endswith(b"\n"))
        self.assertEqual(data.count(b"\n"), 1)
        self.assertEqual(parse_line(data)["params"]["title"], "multi\nline\ntitle")

    def test_serialized_message_is_ascii(self):
        response = create_error_response("r1", "NOT_FOUND", "Task not found: \ud800 café")
        data = serialize_message(response)

        data.decode("ascii")
        self.assertEqual(parse_line(data)["error"]["message"], "Task not found: \ud800 café")

    def test_success_response_shape(self):
        data = json.loads(serialize_message(create_response("r1", [1, 2])))
        self.assertEqual(data, {"id": "r1", "success": True, "data": [1, 2]})

    def test_error_response_shape(self):
        response = create_error_response("r1", "NOT_FOUND", "Task not found: x")
        data = json.loads(serialize_message(response))
        self.assertEqual(data, {
            "id": "r1",
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "Task not found: x"},
        })

    def test_parse_line_rejects_malformed_json(self):
        with self.assertRaises(ValueError):
            parse_line(b"{oops\n")

    def test_parse_request(self):
        request = parse_request({"id": "1", "method": "task.get", "params": {"id": "a"}})
        self.assertEqual(request.method, "task.get")
        self.assertEqual(request.params, {"id": "a"})

    def test_parse_request_rejects_other_shapes(self):
        for message in ([], "text", {"method": "task.get"}, {"id": "1", "params": {}},
                        {"id": "1", "method": "x", "params": []}):
            with self.assertRaises(ProtocolError):
                parse_request(message)

    def test_parse_response(self):
        ok = parse_response({"id": "1", "success": True, "data": {"a": 1}})
        self.assertTrue(ok.success)
        self.assertEqual(ok.data, {"a": 1})

        failed = parse_response({"id": "1", "success": False,
                                 "error": {"code": "X", "message": "m"}})
        self.assertFalse(failed.success)
        self.assertEqual(failed.error.code, "X")

        self.assertIsNone(parse_response({"id": "1", "method": "task.get"}))


class TestDecodeParams(unittest.TestCase):
    """Test cases for typed params decoding."""

    def test_every_catalogue_method_has_params(self):
        self.assertEqual(set(METHOD_PARAMS), {
            "task.create", "task.list", "task.get", "task.update",
            "task.updateStatus", "task.delete", "task.search",
            "subtask.create", "subtask.list", "subtask.progress",
            "daemon.status", "daemon.stop",
        })

    def test_decode_create(self):
        params = decode_params("task.create", {"title": "x", "priority": "high", "extra": 1})
        self.assertEqual(params, CreateTaskParams(title="x", priority="high"))

    def test_decode_optional_params_absent(self):
        self.assertEqual(decode_params("task.list", {}), ListTasksParams())
        self.assertEqual(decode_params("daemon.status", {}), EmptyParams())

    def test_null_counts_as_absent(self):
        params = decode_params("task.update", {"id": "a", "title": None})
        self.assertIsNone(params.title)

    def test_missing_required_param(self):
        with self.assertRaises(ParamsError) as context:
            decode_params("task.get", {})
        self.assertEqual(context.exception.code, "VALIDATION_ERROR")

    def test_wrong_type(self):
        with self.assertRaises(ParamsError):
            decode_params("task.search", {"query": 5})

    def test_enumerated_values(self):
        with self.assertRaises(ParamsError):
            decode_params("task.updateStatus", {"id": "a", "status": "done"})
        with self.assertRaises(ParamsError):
            decode_params("task.create", {"title": "a", "priority": "urgent"})
        with self.assertRaises(ParamsError):
            decode_params("task.list", {"sortOrder": "sideways"})

    def test_unknown_method(self):
        with self.assertRaises(UnknownMethodError) as context:
            decode_params("task.explode", {})
        self.assertEqual(context.exception.code, "UNKNOWN_METHOD")


if __name__ == "__main__":
    unittest.main()
