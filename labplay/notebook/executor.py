"""
Runs notebook cells against the remote kernel.

One cell at a time: the coordinator lock serializes runs, and CellStore
refuses to mark a second cell RUNNING. Network failures are retried a fixed
number of times with a fixed delay before the cell is marked as failed; an
HTTP error response fails the cell at once.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from labplay.cli.client import BackendError, ExecutionClient, ServiceUnavailable
from labplay.cli.session import SessionManager
from labplay.logger import get_logger
from labplay.notebook.cells import CellStore, as_text
from labplay.notebook.safety import PolicyViolation, enforce
from labplay.schemas.notebook_schema import Cell, CellOutput

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    delay: float = 1.5

    def attempt_delays(self) -> List[float]:
        """Seconds to wait before each attempt; the first attempt goes out immediately."""
        return [0.0] + [self.delay] * max(0, self.max_retries)


def _elapsed_ms(t0: float) -> int:
    return int(round((time.monotonic() - t0) * 1000))


class ExecutionCoordinator:
    def __init__(
        self,
        cells: CellStore,
        session: SessionManager,
        execution: ExecutionClient,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cells = cells
        self.session = session
        self.execution = execution
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._lock = threading.Lock()

    def run(self, cell_id: str) -> Optional[Cell]:
        """
        Execute one cell and reconcile the result into the store.

        Returns the updated cell, or None when nothing was done (unknown cell,
        cell already running, no session, or the session was reset meanwhile).
        """
        cell = self.cells.get(cell_id)
        if cell is None or cell.is_running:
            return None

        with self._lock:
            cell = self.cells.get(cell_id)
            if cell is None or cell.is_running:
                return None

            try:
                enforce(cell.code)
            except PolicyViolation as e:
                logger.info("Cell %s blocked: %s", cell_id, e.message)
                return self.cells.fail(cell_id, f"🚫 {e.message}", duration_ms=0)

            generation = self.session.generation
            session_id = self.session.ensure()
            if not session_id or not self.session.is_current(generation):
                return None

            started = self.cells.mark_running(cell_id)
            if started is None:
                return None
            return self._execute(started, session_id, generation)

    def _execute(self, cell: Cell, session_id: str, generation: int) -> Optional[Cell]:
        t0 = time.monotonic()
        last_error: Optional[BackendError] = None
        delays = self.retry.attempt_delays()
        for attempt, delay in enumerate(delays, start=1):
            if delay:
                self._sleep(delay)
            if not self.session.is_current(generation):
                return None
            try:
                data = self.execution.execute(session_id, cell.id, cell.code)
            except ServiceUnavailable as e:
                last_error = e
                logger.warning("Execute attempt %d/%d for cell %s failed: %s", attempt, len(delays), cell.id, e.message)
                continue
            except BackendError as e:
                # the service answered; the code may already have run
                last_error = e
                logger.warning("Execute for cell %s rejected: %s", cell.id, e.message)
                break
            if not self.session.is_current(generation):
                logger.debug("Dropping stale execute result for cell %s", cell.id)
                return None
            charts = data.get("charts")
            output = CellOutput(
                stdout=as_text(data.get("stdout")),
                error=as_text(data.get("error")) or None,
                charts=[c for c in charts if isinstance(c, str)] if isinstance(charts, list) else [],
            )
            return self.cells.complete(cell.id, output, duration_ms=_elapsed_ms(t0))

        if not self.session.is_current(generation):
            return None
        message = last_error.message if last_error else "Execution failed"
        return self.cells.fail(cell.id, message, duration_ms=_elapsed_ms(t0))
