"""Daemon lifecycle: start, stop and status.

A side record (daemon.pid) stores the running daemon's pid, socket path and
start time as JSON. A record whose pid is no longer alive is stale and is
removed whenever it is seen.
"""

import json
import logging
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from yaru.core.configs import ENV_DATA_DIR, ENV_SOCKET_PATH, Settings, get_settings
from yaru.core.types import now_iso
from yaru.daemon.client import DaemonClient, IPCError

logger = logging.getLogger(__name__)


class DaemonError(Exception):
    code = "DAEMON_ERROR"


class AlreadyRunningError(DaemonError):
    code = "ALREADY_RUNNING"

    def __init__(self, pid: int):
        super().__init__(f"Daemon is already running (pid {pid})")
        self.pid = pid


class NotRunningError(DaemonError):
    code = "NOT_RUNNING"

    def __init__(self):
        super().__init__("Daemon is not running")


class StartFailedError(DaemonError):
    code = "START_FAILED"


class StopFailedError(DaemonError):
    code = "STOP_FAILED"


@dataclass
class DaemonInfo:
    pid: int
    socket_path: str
    started_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pid": self.pid,
            "socketPath": self.socket_path,
            "startedAt": self.started_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaemonInfo":
        return cls(
            pid=int(data["pid"]),
            socket_path=str(data["socketPath"]),
            started_at=str(data.get("startedAt", "")),
        )


@dataclass
class DaemonStatus:
    running: bool
    info: Optional[DaemonInfo] = None


def is_process_running(pid: int) -> bool:
    """
    Probe a pid with signal 0.

    Exited children of this process are reaped first, otherwise they would
    linger as zombies and still answer the probe.
    """
    if pid <= 0:
        return False
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass
    except OSError:
        return False

    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


class DaemonManager:
    """
    Start, stop and inspect the background daemon.

    Args:
        settings: Paths and timings; loaded from config when omitted
        daemon_command: Command line that runs the daemon in the foreground
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        daemon_command: Optional[List[str]] = None,
    ):
        self.settings = settings or get_settings()
        self.daemon_command = daemon_command or [sys.executable, "-m", "yaru.daemon.server"]

    @property
    def pid_path(self) -> Path:
        return self.settings.pid_path

    def start(self) -> DaemonInfo:
        """
        Spawn a detached daemon unless one is already running.

        Raises:
            AlreadyRunningError: If the recorded pid is alive
            StartFailedError: If the process cannot be spawned
        """
        self.settings.data_dir.mkdir(parents=True, exist_ok=True)

        existing = self._read_record()
        if existing is not None and is_process_running(existing.pid):
            raise AlreadyRunningError(existing.pid)

        self._remove_record()

        env = dict(os.environ)
        env[ENV_DATA_DIR] = str(self.settings.data_dir)
        env[ENV_SOCKET_PATH] = str(self.settings.socket_path)

        try:
            process = subprocess.Popen(
                self.daemon_command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=env,
                start_new_session=True,
            )
            info = DaemonInfo(
                pid=process.pid,
                socket_path=str(self.settings.socket_path),
                started_at=now_iso(),
            )
            self._write_record(info)
        except OSError as e:
            raise StartFailedError(f"Failed to start daemon: {e}") from e

        logger.info(f"Spawned daemon pid {info.pid}")
        self._wait_until_ready(info)
        return info

    def stop(self) -> None:
        """
        Stop the running daemon, escalating to signals if it lingers.

        Raises:
            NotRunningError: If there is no live daemon
            StopFailedError: If stopping fails unexpectedly
        """
        info = self._read_record()
        if info is None:
            raise NotRunningError()
        if not is_process_running(info.pid):
            self._remove_record()
            raise NotRunningError()

        try:
            try:
                DaemonClient(info.socket_path, timeout=self.settings.timeout).call("daemon.stop")
            except IPCError as e:
                logger.warning(f"Graceful stop request failed: {e}")

            for sig in (signal.SIGTERM, signal.SIGKILL):
                if not self._wait_for_exit(info.pid):
                    logger.warning(f"Daemon pid {info.pid} still alive, sending {sig.name}")
                    os.kill(info.pid, sig)
            self._wait_for_exit(info.pid)

            self._remove_record()
        except ProcessLookupError:
            # Exited between the probe and the signal
            self._remove_record()
        except Exception as e:
            raise StopFailedError(f"Failed to stop daemon: {e}") from e

    def status(self) -> DaemonStatus:
        info = self._read_record()
        if info is None:
            return DaemonStatus(running=False)
        if not is_process_running(info.pid):
            self._remove_record()
            return DaemonStatus(running=False)
        return DaemonStatus(running=True, info=info)

    def is_running(self) -> bool:
        return self.status().running

    def _wait_until_ready(self, info: DaemonInfo) -> bool:
        """Poll the socket until the daemon answers or the grace period ends."""
        deadline = time.monotonic() + self.settings.grace_period
        while time.monotonic() < deadline:
            if Path(info.socket_path).exists():
                try:
                    DaemonClient(info.socket_path, timeout=0.5).call("daemon.status")
                    return True
                except IPCError:
                    pass
            time.sleep(0.05)
        return False

    def _wait_for_exit(self, pid: int) -> bool:
        deadline = time.monotonic() + self.settings.grace_period
        while time.monotonic() < deadline:
            if not is_process_running(pid):
                return True
            time.sleep(0.05)
        return not is_process_running(pid)

    def _read_record(self) -> Optional[DaemonInfo]:
        try:
            return DaemonInfo.from_dict(json.loads(self.pid_path.read_text()))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable daemon record {self.pid_path}: {e}")
            return None

    def _write_record(self, info: DaemonInfo) -> None:
        self.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(json.dumps(info.to_dict(), indent=2))

    def _remove_record(self) -> None:
        self.pid_path.unlink(missing_ok=True)
