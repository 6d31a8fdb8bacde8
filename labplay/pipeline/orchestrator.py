"""
PipelineOrchestrator: drives the agent conversation for one notebook.

upload -> analyze (stream) -> select model -> build pipeline (stream) -> predict,
plus free-text chat. Stream events are applied in arrival order; each one
appends cells and/or transcript messages. Guard events only ever touch the
transcript.

State machine::

    idle --analyze--> analyzing --done--> analyzed
    analyzed --select_model--> building_pipeline --done--> pipeline_built

A failed stream leaves the stage where it was. pipeline_built is terminal
until reset().
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from labplay.cli.client import AgentClient, BackendError, ExecutionClient, ServiceUnavailable
from labplay.cli.session import SessionManager
from labplay.dataset import DatasetError, preview_dataset
from labplay.logger import get_logger
from labplay.notebook.cells import CellStore, as_text
from labplay.pipeline.guard import is_guard_event
from labplay.pipeline.transcript import ChatTranscript
from labplay.schemas.chat_schema import (
    ChatMessage,
    FeatureEngineeringResult,
    MessageKind,
    ModelSuggestion,
)
from labplay.schemas.event_schema import (
    AnalysisEvent,
    CodeCellEvent,
    DoneEvent,
    EdaCellEvent,
    EdaSummaryEvent,
    ErrorEvent,
    FeatureEngineeringEvent,
    InsightEvent,
    ModelsEvent,
    ReasoningEvent,
    StatusEvent,
    StreamEvent,
    UnknownEvent,
    parse_event,
)
from labplay.schemas.notebook_schema import Cell

logger = get_logger(__name__)

AGENT_OFFLINE_TEXT = "lab-agent is offline. Start it: uvicorn main:app --port 8020"
PIPELINE_COMPLETE_TEXT = "✅ Pipeline complete! All cells have been added to the notebook."


class PipelineStage(str, Enum):
    IDLE = "idle"
    ANALYZED = "analyzed"
    PIPELINE_BUILT = "pipeline_built"


class PipelineState(str, Enum):
    """Stage combined with the stream currently in flight."""
    IDLE = "idle"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    BUILDING_PIPELINE = "building_pipeline"
    PIPELINE_BUILT = "pipeline_built"


@dataclass
class DatasetRef:
    """An uploaded dataset as the execution service knows it."""
    filename: str
    file_path: str
    size_kb: Any = None
    columns: List[str] = field(default_factory=list)


def _close(events: Any) -> None:
    close = getattr(events, "close", None)
    if close is not None:
        close()


class PipelineOrchestrator:
    def __init__(
        self,
        session: SessionManager,
        cells: CellStore,
        transcript: ChatTranscript,
        execution: ExecutionClient,
        agent: AgentClient,
        health: Any = None,
        history: Any = None,
        strict_done: bool = False,
    ):
        self.session = session
        self.cells = cells
        self.transcript = transcript
        self.execution = execution
        self.agent = agent
        self.health = health
        self.history = history
        self.strict_done = strict_done
        self._lock = threading.RLock()
        self._clear()

    def _clear(self) -> None:
        with self._lock:
            self.stage = PipelineStage.IDLE
            self._activity: Optional[PipelineState] = None
            self.dataset: Optional[DatasetRef] = None
            self.upload_error: Optional[str] = None
            self.target_column = ""
            self.suggestions: List[ModelSuggestion] = []
            self.selected_model: Optional[str] = None
            self.feature_columns: List[str] = []
            self.predict_inputs: Dict[str, str] = {}

    def reset(self) -> None:
        """Forget all pipeline progress. The session itself is reset by the caller."""
        self._clear()

    @property
    def state(self) -> PipelineState:
        with self._lock:
            if self._activity is not None:
                return self._activity
            return PipelineState(self.stage.value)

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._activity is not None

    def can_select_model(self) -> bool:
        with self._lock:
            return self.stage == PipelineStage.ANALYZED and self._activity is None and bool(self.suggestions)

    def _target_payload(self) -> Optional[str]:
        return self.target_column.strip() or None

    def set_target_column(self, text: str) -> None:
        with self._lock:
            self.target_column = text or ""
            target = self._target_payload()
            if target and self.dataset and self.dataset.columns and target not in self.dataset.columns:
                logger.warning("Target column %r is not in %s", target, self.dataset.filename)

    def set_prediction_input(self, column: str, value: str) -> None:
        with self._lock:
            self.predict_inputs[column] = value

    # Upload

    def upload(self, path: str) -> Optional[DatasetRef]:
        """Upload a dataset to the session. Does not change the pipeline stage."""
        try:
            preview = preview_dataset(path)
        except DatasetError as e:
            # The service is the authority on what it can read; the preview is a convenience.
            logger.warning("No local preview for %s: %s", path, e)
            preview = None

        generation = self.session.generation
        session_id = self.session.ensure()
        if not session_id or not self.session.is_current(generation):
            return None
        with self._lock:
            self.upload_error = None
        try:
            data = self.execution.upload(session_id, path)
        except BackendError as e:
            if self.session.is_current(generation):
                with self._lock:
                    self.upload_error = e.message
                self.transcript.error(e.message)
            return None
        if not self.session.is_current(generation):
            return None

        ref = DatasetRef(
            filename=data.get("filename") or (preview.filename if preview else str(path)),
            file_path=data.get("file_path") or "",
            size_kb=data.get("size_kb"),
            columns=preview.columns if preview else [],
        )
        with self._lock:
            self.dataset = ref
        self.transcript.info(
            f"📄 **{ref.filename}** uploaded ({ref.size_kb} KB). "
            "Set the target column (optional) then click **Analyse**."
        )
        if self.history is not None:
            self.history.record_upload(ref.filename)
        return ref

    # Streams

    def analyze(self) -> bool:
        """Run the analysis stream. Returns True if the stage advanced to analyzed."""
        with self._lock:
            if self.dataset is None:
                logger.warning("analyze() called before a dataset was uploaded")
                return False
            if self._activity is not None or self.stage == PipelineStage.PIPELINE_BUILT:
                logger.warning("analyze() not allowed while %s", self.state.value)
                return False
            dataset = self.dataset
            target = self._target_payload()

        generation = self.session.generation
        session_id = self.session.ensure()
        if not session_id or not self.session.is_current(generation):
            return False

        with self._lock:
            self._activity = PipelineState.ANALYZING
        try:
            self.transcript.info(f"🔍 Analysing **{dataset.filename}**… this may take 20–40 s.")
            done = self._consume(
                lambda: self.agent.analyze_stream(session_id, dataset.file_path, dataset.filename, target),
                generation,
                "analysis",
            )
            if done is None:
                return False
            with self._lock:
                if not self.session.is_current(generation):
                    return False
                self.stage = PipelineStage.ANALYZED
            logger.info("Analysis of %s complete", dataset.filename)
            if self.history is not None:
                self.history.mark_validated(dataset.filename)
            return True
        finally:
            self._finish(generation)

    def select_model(self, name: str) -> bool:
        """
        Pick one of the suggested models and build its pipeline.
        Rejected without any state change once a pipeline is built, outside
        the analyzed stage, or for a name not in the latest suggestions.
        """
        with self._lock:
            if self.stage == PipelineStage.PIPELINE_BUILT:
                logger.warning("Model selection rejected: pipeline already built with %s", self.selected_model)
                return False
            if not self.can_select_model():
                logger.warning("Model selection rejected in state %s", self.state.value)
                return False
            if name not in {s.name for s in self.suggestions}:
                logger.warning("Model selection rejected: %r is not a suggested model", name)
                return False
        return self.build_pipeline(name)

    def build_pipeline(self, model_name: str) -> bool:
        """Run the pipeline-building stream. Returns True if the stage advanced to pipeline_built."""
        with self._lock:
            if self.stage != PipelineStage.ANALYZED or self._activity is not None:
                logger.warning("build_pipeline() not allowed while %s", self.state.value)
                return False
            target = self._target_payload()

        generation = self.session.generation
        session_id = self.session.ensure()
        if not session_id or not self.session.is_current(generation):
            return False

        with self._lock:
            self.selected_model = model_name
            self._activity = PipelineState.BUILDING_PIPELINE
        try:
            self.transcript.info(f"🏗️ Building ML pipeline with **{model_name}**…")
            done = self._consume(
                lambda: self.agent.build_pipeline_stream(session_id, model_name, target),
                generation,
                "pipeline build",
            )
            with self._lock:
                if not self.session.is_current(generation):
                    return False
                if done is None:
                    self.selected_model = None
                    return False
                columns = list(done.feature_columns or [])
                self.feature_columns = columns
                self.predict_inputs = {c: "" for c in columns}
                self.stage = PipelineStage.PIPELINE_BUILT
            self.transcript.add(MessageKind.AI, text=PIPELINE_COMPLETE_TEXT)
            if columns:
                self.transcript.add(MessageKind.PREDICT_FORM, text="predict")
            logger.info("Pipeline built with %s (%d feature columns)", model_name, len(columns))
            return True
        finally:
            self._finish(generation)

    def _finish(self, generation: int) -> None:
        with self._lock:
            if self.session.is_current(generation):
                self._activity = None

    def _consume(
        self,
        open_stream: Callable[[], Iterator[Dict[str, Any]]],
        generation: int,
        what: str,
    ) -> Optional[DoneEvent]:
        """
        Apply stream events until `done`. Returns the done event, or None if
        the stream failed, ended early, or the session was reset meanwhile.
        """
        saw_error = False
        events = None
        try:
            events = open_stream()
            for raw in events:
                if not self.session.is_current(generation):
                    logger.info("Session reset during %s; dropping the rest of the stream", what)
                    return None
                event = parse_event(raw)
                if isinstance(event, DoneEvent):
                    if self.strict_done and saw_error:
                        logger.warning("%s reported errors; not advancing (strict mode)", what)
                        return None
                    return event
                if isinstance(event, ErrorEvent):
                    saw_error = True
                self.apply_event(event)
        except BackendError as e:
            logger.warning("%s stream failed: %s", what, e.message)
            if self.session.is_current(generation):
                self.transcript.error(e.message)
            return None
        except Exception as e:
            logger.exception("Unexpected failure during %s", what)
            if self.session.is_current(generation):
                self.transcript.error(str(e) or e.__class__.__name__)
            return None
        finally:
            if events is not None:
                _close(events)
        logger.warning("%s stream ended without a done event", what)
        return None

    def apply_event(self, event: StreamEvent) -> None:
        """Apply one non-terminal event to the cells and/or transcript."""
        if isinstance(event, StatusEvent):
            self.transcript.info(event.text)
        elif isinstance(event, (CodeCellEvent, EdaCellEvent)):
            self.cells.append_resolved(event.code, event.output, event.error, event.charts)
        elif isinstance(event, FeatureEngineeringEvent):
            self.cells.append_resolved(event.code, event.output, event.error, event.charts)
            self.transcript.add(
                MessageKind.FE,
                fe=FeatureEngineeringResult(code=event.code, output=event.output or "", error=event.error),
            )
        elif isinstance(event, AnalysisEvent):
            self.transcript.add(MessageKind.ANALYSIS, analysis=event.data)
        elif isinstance(event, EdaSummaryEvent):
            self.transcript.add(MessageKind.EDA_SUMMARY, eda_summary=event.data)
        elif isinstance(event, ModelsEvent):
            with self._lock:
                self.suggestions = list(event.models)
            self.transcript.add(MessageKind.MODELS, models=list(event.models))
        elif isinstance(event, ReasoningEvent):
            self.transcript.add(MessageKind.PIPELINE, reasoning=event.text)
        elif isinstance(event, InsightEvent):
            self.transcript.add(MessageKind.INSIGHT, text=event.text)
        elif isinstance(event, ErrorEvent):
            self.transcript.error(event.text)
        elif is_guard_event(event):
            self.transcript.record_guard(event)
        elif isinstance(event, DoneEvent):
            logger.debug("done events are handled by the stream consumer")
        elif isinstance(event, UnknownEvent):
            logger.debug("Ignoring unknown stream event %r", event.type)
        else:
            logger.debug("Ignoring unhandled event %r", event)

    # Prediction and chat

    def predict(self, input_values: Optional[Mapping[str, Any]] = None) -> Optional[Cell]:
        """
        Run a prediction with one value per feature column; missing columns are
        sent as empty strings and validated remotely.
        """
        with self._lock:
            if self.stage != PipelineStage.PIPELINE_BUILT:
                logger.warning("predict() requires a built pipeline (state: %s)", self.state.value)
                return None
            values = dict(self.predict_inputs)
            for k, v in (input_values or {}).items():
                values[k] = "" if v is None else str(v)
            columns = list(self.feature_columns)
        payload = {c: values.get(c, "") for c in columns} if columns else values

        generation = self.session.generation
        session_id = self.session.ensure()
        if not session_id or not self.session.is_current(generation):
            return None
        try:
            data = self.agent.predict(session_id, payload)
        except BackendError as e:
            if self.session.is_current(generation):
                self.transcript.error(e.message)
            return None
        if not self.session.is_current(generation):
            return None
        try:
            return self._record_prediction(data)
        except Exception as e:
            logger.exception("Could not apply prediction result")
            self.transcript.error(str(e) or e.__class__.__name__)
            return None

    def _record_prediction(self, data: Dict[str, Any]) -> Cell:
        output = as_text(data.get("output"))
        error = as_text(data.get("error")) or None
        cell = self.cells.append_resolved(data.get("code"), output, error, [])
        if error:
            self.transcript.add(MessageKind.AI, text=f"⚠️ Prediction error: {error}")
        else:
            self.transcript.add(MessageKind.AI, text=f"🎯 Prediction result:\n```\n{output}\n```")
        return cell

    def ask(self, text: str) -> Optional[ChatMessage]:
        """Free-text exchange with the agent. Returns the reply message appended."""
        message = (text or "").strip()
        if not message:
            return None
        generation = self.session.generation
        session_id = self.session.ensure()
        if not session_id or not self.session.is_current(generation):
            return None

        self.transcript.add(MessageKind.USER, text=message)
        try:
            data = self.agent.chat(session_id, message)
        except BackendError as e:
            if not self.session.is_current(generation):
                return None
            offline = isinstance(e, ServiceUnavailable) or (
                self.health is not None and self.health.is_offline("agent")
            )
            return self.transcript.error(AGENT_OFFLINE_TEXT if offline else e.message)
        if not self.session.is_current(generation):
            return None
        try:
            return self._record_reply(data)
        except Exception as e:
            logger.exception("Could not apply chat reply")
            return self.transcript.error(str(e) or e.__class__.__name__)

    def _record_reply(self, data: Dict[str, Any]) -> ChatMessage:
        if data.get("action") == "execute" and data.get("code"):
            guard_events = data.get("guard_events")
            for raw in guard_events if isinstance(guard_events, list) else []:
                if isinstance(raw, dict):
                    self.transcript.record_guard(parse_event(raw))
            self.cells.append_resolved(data["code"], data.get("output"), data.get("error"), data.get("charts"))
            insight = as_text(data.get("chart_insight"))
            if insight:
                self.transcript.add(MessageKind.INSIGHT, text=insight)
        return self.transcript.add(MessageKind.AI, text=as_text(data.get("reply")))
