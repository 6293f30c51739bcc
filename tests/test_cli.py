"""
Tests for ui/cli.py - command handlers translate to daemon requests.
"""

import os
import tempfile
import unittest
from unittest.mock import patch

from typer.testing import CliRunner

from yaru.daemon.client import ConnectionFailedError, RemoteError
from yaru.daemon.manager import AlreadyRunningError, DaemonInfo, DaemonStatus, NotRunningError
from yaru.ui.cli import app

TASK = {
    "id": "0123456789abcdef",
    "title": "Write tests",
    "description": "",
    "status": "pending",
    "priority": "medium",
    "createdAt": "2024-01-01T00:00:00.000Z",
    "updatedAt": "2024-01-01T00:00:00.000Z",
}


class TestCli(unittest.TestCase):
    """Test cases for the command line."""

    def setUp(self):
        self.runner = CliRunner()
        self.home = tempfile.mkdtemp()
        self.env = patch.dict(os.environ, {"YARU_HOME": self.home, "YARU_TIMEOUT_S": ""})
        self.env.start()
        client_patch = patch("yaru.ui.cli.DaemonClient")
        self.client_cls = client_patch.start()
        self.client = self.client_cls.return_value
        self.addCleanup(client_patch.stop)

    def tearDown(self):
        self.env.stop()

    def test_add_sends_create_request(self):
        self.client.call.return_value = TASK

        result = self.runner.invoke(app, ["add", "Write tests", "-p", "high"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("01234567", result.output)
        self.client.call.assert_called_once_with(
            "task.create", {"title": "Write tests", "priority": "high"}
        )

    def test_list_passes_filters(self):
        self.client.call.return_value = [TASK, TASK]

        result = self.runner.invoke(app, ["list", "--status", "pending", "--sort", "priority"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Total: 2 task(s)", result.output)
        self.client.call.assert_called_once_with(
            "task.list", {"status": "pending", "sortBy": "priority"}
        )

    def test_set_status_reports_sibling_completion(self):
        self.client.call.return_value = dict(TASK, status="completed", allSubtasksCompleted=True)

        result = self.runner.invoke(app, ["set-status", "0123", "completed"])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("All subtasks", result.output)

    def test_sub_progress(self):
        self.client.call.return_value = {"total": 3, "completed": 1, "percentage": 33}

        result = self.runner.invoke(app, ["sub", "progress", "0123"])

        self.assertIn("1/3 (33%)", result.output)
        self.client.call.assert_called_once_with("subtask.progress", {"parentId": "0123"})

    def test_remote_error_exits_with_1(self):
        self.client.call.side_effect = RemoteError("NOT_FOUND", "Task not found: zzz")

        result = self.runner.invoke(app, ["show", "zzz"])

        self.assertEqual(result.exit_code, 1)

    def test_unreachable_daemon_exits_with_3(self):
        self.client.call.side_effect = ConnectionFailedError("refused")

        result = self.runner.invoke(app, ["search", "x"])

        self.assertEqual(result.exit_code, 3)

    @patch("yaru.ui.cli.DaemonManager")
    def test_start_when_already_running(self, manager_cls):
        manager_cls.return_value.start.side_effect = AlreadyRunningError(42)

        result = self.runner.invoke(app, ["start"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("42", result.output)

    @patch("yaru.ui.cli.DaemonManager")
    def test_stop_when_not_running(self, manager_cls):
        manager_cls.return_value.stop.side_effect = NotRunningError()

        result = self.runner.invoke(app, ["stop"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("not running", result.output)

    @patch("yaru.ui.cli.DaemonManager")
    def test_status_running(self, manager_cls):
        info = DaemonInfo(pid=7, socket_path="/tmp/y.sock", started_at="now")
        manager_cls.return_value.status.return_value = DaemonStatus(running=True, info=info)

        result = self.runner.invoke(app, ["status"])

        self.assertIn("pid 7", result.output)

    def test_status_with_invalid_config(self):
        with patch.dict(os.environ, {"YARU_TIMEOUT_S": "soon"}):
            result = self.runner.invoke(app, ["status"])

        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.exception, SystemExit)
        self.assertIn("Error loading configuration", result.output)


if __name__ == "__main__":
    unittest.main()
