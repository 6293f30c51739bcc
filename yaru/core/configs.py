"""Configuration management for yaru.

Settings are layered, later layers winning:
    1. ~/.yaru/.env              (python-dotenv)
    2. ~/.yaru/config.cfg        ([DEFAULT] section)
    3. environment variables     (YARU_HOME, YARU_SOCKET_PATH, YARU_TIMEOUT_S)

Keys are lowercased so both files may use either case.
"""

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values

DEFAULT_HOME = Path.home() / ".yaru"

# Environment variables consumed by the daemon process itself
ENV_DATA_DIR = "YARU_DATA_DIR"
ENV_SOCKET_PATH = "YARU_SOCKET_PATH"

LOG_FILE_NAME = "daemon.log"

_ENV_OVERRIDES = {
    "YARU_HOME": "data_dir",
    "YARU_SOCKET_PATH": "socket_path",
    "YARU_TIMEOUT_S": "timeout",
    "YARU_GRACE_PERIOD_S": "grace_period",
}


@dataclass
class Settings:
    data_dir: Path
    socket_path: Path
    pid_path: Path
    log_path: Path
    timeout: float = 5.0
    grace_period: float = 0.5


def daemon_log_path(data_dir: Path) -> Path:
    """Log file of the daemon serving data_dir."""
    return Path(data_dir) / LOG_FILE_NAME


def get_home() -> Path:
    return Path(os.environ.get("YARU_HOME") or DEFAULT_HOME).expanduser()


def load_raw_config(home: Optional[Path] = None) -> Dict[str, str]:
    """
    Load raw configuration values with lowercase keys.

    Missing files are skipped, so an unconfigured install returns only
    what the environment provides.
    """
    home = home or get_home()
    data: Dict[str, str] = {}

    env_file = home / ".env"
    if env_file.exists():
        data.update({
            k.lower(): v for k, v in dotenv_values(env_file).items()
            if v is not None
        })

    cfg_file = home / "config.cfg"
    if cfg_file.exists():
        cfg = configparser.ConfigParser()
        cfg.read(cfg_file)
        data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})

    for env_name, key in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None and value.strip() != "":
            data[key] = value

    return data


def _get_float(raw: Dict[str, str], key: str, default: float) -> float:
    value = raw.get(key)
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid number for '{key}': {value!r}")


def get_settings(raw: Optional[Dict[str, str]] = None) -> Settings:
    """
    Build Settings from raw configuration values.

    Raises:
        ValueError: If a numeric setting cannot be parsed
    """
    raw = load_raw_config() if raw is None else raw

    data_dir = Path(raw.get("data_dir") or get_home()).expanduser()
    socket_path = Path(raw.get("socket_path") or data_dir / "daemon.sock").expanduser()

    return Settings(
        data_dir=data_dir,
        socket_path=socket_path,
        pid_path=data_dir / "daemon.pid",
        log_path=daemon_log_path(data_dir),
        timeout=_get_float(raw, "timeout", 5.0),
        grace_period=_get_float(raw, "grace_period", 0.5),
    )
