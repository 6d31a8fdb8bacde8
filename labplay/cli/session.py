"""
Session state for a Lab Playground notebook.

Holds the single execution-service session id, the persistent connection
error shown while the execution service is unreachable, and a generation
counter that lets in-flight work detect that a reset happened after dispatch.
"""

import threading
from typing import Optional

from labplay.cli.client import AgentClient, BackendError, ExecutionClient
from labplay.logger import get_logger

logger = get_logger(__name__)


class SessionManager:
    """Lazily creates the remote session; reset() tears it down."""

    def __init__(self, execution: ExecutionClient, agent: Optional[AgentClient] = None):
        self.execution = execution
        self.agent = agent
        self._lock = threading.RLock()
        self._session_id: Optional[str] = None
        self._generation = 0
        self.connection_error: Optional[str] = None

    @property
    def session_id(self) -> Optional[str]:
        with self._lock:
            return self._session_id

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def has_session(self) -> bool:
        return self.session_id is not None

    def is_current(self, generation: int) -> bool:
        """False once reset() ran after `generation` was captured."""
        with self._lock:
            return generation == self._generation

    def ensure(self) -> Optional[str]:
        """
        Return the session id, creating it on first use.
        Returns None (and records connection_error) if the service is unreachable.
        """
        with self._lock:
            if self._session_id:
                return self._session_id
            generation = self._generation
        try:
            session_id = self.execution.create_session()
        except BackendError as e:
            logger.warning("Session creation failed: %s", e.message)
            with self._lock:
                self.connection_error = f"Cannot reach lab-backend at {self.execution.base_url}."
            return None
        with self._lock:
            if generation != self._generation:
                # reset() ran while the request was in flight
                return None
            if self._session_id is None:
                self._session_id = session_id
                logger.info("Session %s created", session_id)
            self.connection_error = None
            return self._session_id

    def adopt(self, session_id: str) -> None:
        """
        Continue an existing remote session instead of creating one. Work in
        flight for the previous session is dropped like after reset().
        """
        with self._lock:
            self._session_id = session_id
            self.connection_error = None
            self._generation += 1
        logger.info("Resumed session %s", session_id)

    def reset(self) -> None:
        """Best-effort teardown on both services, then forget everything locally."""
        with self._lock:
            session_id = self._session_id
            self._session_id = None
            self.connection_error = None
            self._generation += 1
        if not session_id:
            return
        teardown = [self.execution.delete_session]
        if self.agent is not None:
            teardown.append(self.agent.delete_session)
        for delete in teardown:
            try:
                delete(session_id)
            except BackendError as e:
                logger.debug("Ignoring teardown failure for %s: %s", session_id, e.message)
        logger.info("Session %s reset", session_id)
