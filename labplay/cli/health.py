"""
Liveness polling for the execution and agent services.

Each service is probed on its own daemon thread so a slow service never
delays the other. A probe that fails or times out marks the service offline.
"""

import threading
from typing import Any, Dict, List, Optional

from labplay.logger import get_logger

logger = get_logger(__name__)


class HealthMonitor:
    """Tracks up/offline state for named clients exposing health(timeout=...)."""

    def __init__(self, services: Dict[str, Any], interval: float = 5.0, timeout: float = 3.0):
        self.services = services
        self.interval = interval
        self.timeout = timeout
        self._status: Dict[str, Optional[bool]] = {name: None for name in services}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def status(self, name: str) -> Optional[bool]:
        """True/False once probed, None before the first probe."""
        with self._lock:
            return self._status.get(name)

    def snapshot(self) -> Dict[str, Optional[bool]]:
        with self._lock:
            return dict(self._status)

    def is_offline(self, name: str) -> bool:
        return self.status(name) is False

    def check(self, name: str) -> bool:
        up = self.services[name].health(timeout=self.timeout)
        with self._lock:
            changed = self._status.get(name) != up
            self._status[name] = up
        if changed:
            logger.info("%s is %s", name, "up" if up else "offline")
        return up

    def check_once(self) -> Dict[str, Optional[bool]]:
        for name in self.services:
            self.check(name)
        return self.snapshot()

    def _poll(self, name: str) -> None:
        while not self._stop.is_set():
            self.check(name)
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for name in self.services:
            thread = threading.Thread(target=self._poll, args=(name,), name=f"health-{name}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=self.timeout + 1)
        self._threads = []
