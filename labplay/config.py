"""
Runtime configuration for labplay.

Values come from the environment (optionally a .env file in the working
directory), e.g. LAB_BACKEND_URL=http://localhost:8010.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_LAB_URL = "http://localhost:8010"
DEFAULT_AGENT_URL = "http://localhost:8020"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LabConfig:
    """Service URLs, retry/health timings and local storage location."""

    lab_url: str = DEFAULT_LAB_URL
    agent_url: str = DEFAULT_AGENT_URL
    max_retries: int = 2
    retry_delay: float = 1.5
    health_interval: float = 5.0
    health_timeout: float = 3.0
    request_timeout: float = 120.0
    stream_timeout: float = 300.0
    strict_done: bool = False  # done after an error event does not advance the stage
    storage_dir: Optional[Path] = None
    log_level: str = "INFO"

    def __post_init__(self):
        self.lab_url = self.lab_url.rstrip("/")
        self.agent_url = self.agent_url.rstrip("/")
        if self.storage_dir is None:
            self.storage_dir = Path.home() / ".labplay"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "LabConfig":
        if dotenv:
            load_dotenv()
        storage = os.environ.get("LAB_STORAGE_DIR")
        return cls(
            lab_url=os.environ.get("LAB_BACKEND_URL", DEFAULT_LAB_URL),
            agent_url=os.environ.get("LAB_AGENT_URL", DEFAULT_AGENT_URL),
            max_retries=_env_int("LAB_EXECUTE_RETRIES", 2),
            retry_delay=_env_float("LAB_RETRY_DELAY", 1.5),
            health_interval=_env_float("LAB_HEALTH_INTERVAL", 5.0),
            health_timeout=_env_float("LAB_HEALTH_TIMEOUT", 3.0),
            request_timeout=_env_float("LAB_REQUEST_TIMEOUT", 120.0),
            stream_timeout=_env_float("LAB_STREAM_TIMEOUT", 300.0),
            strict_done=_env_bool("LAB_STRICT_DONE"),
            storage_dir=Path(storage).expanduser() if storage else None,
            log_level=os.environ.get("LAB_LOG_LEVEL", "INFO"),
        )
