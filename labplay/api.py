"""
Programmatic API for the Lab Playground — use it from your own scripts.

Example:
    from labplay import Lab

    lab = Lab()
    lab.upload("sales.csv")
    lab.analyze()
    lab.select_model(lab.suggestions[0].name)
    lab.predict({"region": "north", "units": "12"})
    for msg in lab.messages:
        print(msg.kind, msg.text)
"""

import base64
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from labplay.cli.client import AgentClient, ExecutionClient
from labplay.cli.health import HealthMonitor
from labplay.cli.session import SessionManager
from labplay.config import LabConfig
from labplay.history import ProjectHistory, TranscriptCache
from labplay.logger import get_logger
from labplay.notebook.cells import CellStore
from labplay.notebook.executor import ExecutionCoordinator, RetryPolicy
from labplay.pipeline.orchestrator import PipelineOrchestrator, PipelineState
from labplay.pipeline.transcript import ChatTranscript
from labplay.schemas.chat_schema import ChatMessage, ModelSuggestion
from labplay.schemas.notebook_schema import Cell

logger = get_logger(__name__)


class Lab:
    """
    One notebook instance: a remote session, its cells, the chat transcript
    and the agent pipeline driving both.
    """

    def __init__(self, config: Optional[LabConfig] = None, http: Any = None, sleep=None):
        """
        Args:
            config: Service URLs and timings. Defaults to LabConfig.from_env().
            http: requests.Session-compatible transport shared by both clients.
            sleep: Replacement for time.sleep between execution retries.
        """
        self.config = config or LabConfig.from_env()
        self.execution = ExecutionClient(self.config.lab_url, http=http, timeout=self.config.request_timeout)
        self.agent = AgentClient(
            self.config.agent_url,
            http=self.execution.http,
            timeout=self.config.request_timeout,
            stream_timeout=self.config.stream_timeout,
        )
        self.session = SessionManager(self.execution, self.agent)
        self.cells = CellStore()
        self.transcript = ChatTranscript()
        self.health = HealthMonitor(
            {"backend": self.execution, "agent": self.agent},
            interval=self.config.health_interval,
            timeout=self.config.health_timeout,
        )
        self.history = ProjectHistory(self.config.storage_dir)
        self.transcript_cache = TranscriptCache(self.config.storage_dir)

        retry = RetryPolicy(max_retries=self.config.max_retries, delay=self.config.retry_delay)
        self.executor = ExecutionCoordinator(
            self.cells, self.session, self.execution, retry=retry, sleep=sleep or time.sleep
        )
        self.pipeline = PipelineOrchestrator(
            self.session,
            self.cells,
            self.transcript,
            self.execution,
            self.agent,
            health=self.health,
            history=self.history,
            strict_done=self.config.strict_done,
        )

    # Read-only views

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id

    @property
    def connection_error(self) -> Optional[str]:
        return self.session.connection_error

    @property
    def state(self) -> PipelineState:
        return self.pipeline.state

    @property
    def cell_list(self) -> List[Cell]:
        return self.cells.snapshot()

    @property
    def messages(self) -> List[ChatMessage]:
        return self.transcript.messages()

    @property
    def suggestions(self) -> List[ModelSuggestion]:
        return list(self.pipeline.suggestions)

    @property
    def feature_columns(self) -> List[str]:
        return list(self.pipeline.feature_columns)

    # Notebook

    def add_cell(self, after: Optional[str] = None, code: str = "") -> Cell:
        cell = self.cells.insert_after(after)
        if code:
            cell = self.cells.set_code(cell.id, code)
        return cell

    def run(self, cell_id: str) -> Optional[Cell]:
        return self.executor.run(cell_id)

    def save_charts(self, cell_id: str, directory: str) -> List[Path]:
        """
        Write a cell's charts as chart_<n>.png files, n being the chart's position.
        Charts that are not valid base64 are logged and skipped. Returns the paths written.
        """
        cell = self.cells.get(cell_id)
        if cell is None or cell.output is None:
            return []
        out_dir = Path(directory).expanduser()
        out_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for i, chart in enumerate(cell.output.charts, start=1):
            payload = chart.split(",", 1)[-1] if chart.startswith("data:") else chart
            try:
                data = base64.b64decode("".join(payload.split()), validate=True)
            except ValueError as e:
                logger.warning("Skipping chart %d of cell %s: %s", i, cell_id, e)
                continue
            path = out_dir / f"chart_{i}.png"
            path.write_bytes(data)
            paths.append(path)
        return paths

    # Pipeline

    def upload(self, path: str):
        return self.pipeline.upload(path)

    def set_target_column(self, column: str) -> None:
        self.pipeline.set_target_column(column)

    def analyze(self) -> bool:
        return self.pipeline.analyze()

    def select_model(self, name: str) -> bool:
        return self.pipeline.select_model(name)

    def predict(self, input_values: Optional[Mapping[str, Any]] = None) -> Optional[Cell]:
        return self.pipeline.predict(input_values)

    def ask(self, text: str) -> Optional[ChatMessage]:
        return self.pipeline.ask(text)

    # Session

    def check_health(self) -> Dict[str, Optional[bool]]:
        return self.health.check_once()

    def start_health_polling(self) -> None:
        self.health.start()

    def save_transcript(self) -> None:
        """Cache the transcript locally under the current session id."""
        session_id = self.session.session_id
        if session_id:
            self.transcript_cache.save(session_id, self.transcript.messages())

    def resume(self, session_id: str) -> bool:
        """
        Reattach to a session whose transcript was cached by save_transcript().
        The notebook starts from one empty cell and the pipeline from idle; the
        remote session keeps its kernel state. Returns False if nothing is cached.
        """
        messages = self.transcript_cache.load(session_id)
        if messages is None:
            logger.warning("No cached transcript for session %s", session_id)
            return False
        self.session.adopt(session_id)
        self.cells.reset()
        self.pipeline.reset()
        self.transcript.restore(messages)
        return True

    def reset(self) -> None:
        """
        Tear down the remote session and return to a fresh notebook: one empty
        cell, the welcome message, stage idle. Responses still in flight for
        the old session are dropped when they arrive.
        """
        old_session = self.session.session_id
        self.session.reset()
        self.cells.reset()
        self.transcript.reset()
        self.pipeline.reset()
        if old_session:
            self.transcript_cache.discard(old_session)
        logger.info("Lab reset")

    def close(self) -> None:
        self.health.stop()
