"""
HTTP clients for the two services the Lab Playground talks to:

- the execution service (sessions, cell execution, uploads)
- the agent service (analysis / pipeline streams, prediction, chat)
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import requests

from labplay.config import DEFAULT_AGENT_URL, DEFAULT_LAB_URL
from labplay.pipeline.stream import decode_stream


class BackendError(Exception):
    """Raised when a service returns an error or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ServiceUnavailable(BackendError):
    """Connection refused, DNS failure or timeout."""


class StreamError(BackendError):
    """An event stream broke off after it had started."""


class EventStream:
    """
    Iterator over the decoded events of one streaming response. Owns the
    response: it is closed when the events run out, on a transport error,
    or by close(), whether or not iteration ever started.
    """

    def __init__(self, response, what: str):
        self._response = response
        self._what = what
        self._events = decode_stream(response.iter_content(chunk_size=None))

    def __iter__(self) -> "EventStream":
        return self

    def __next__(self) -> Dict[str, Any]:
        try:
            return next(self._events)
        except StopIteration:
            self.close()
            raise
        except requests.RequestException as e:
            self.close()
            raise StreamError(f"{self._what} interrupted: {e}") from e

    def close(self) -> None:
        self._response.close()


class _ServiceClient:
    def __init__(self, base_url: str, http: Any = None, timeout: Optional[float] = 120):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _send(self, method: str, path: str, what: str, **kwargs):
        try:
            return getattr(self.http, method)(self._url(path), **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ServiceUnavailable(f"{what} failed: cannot reach {self.base_url} ({e})") from e
        except requests.RequestException as e:
            raise BackendError(f"{what} failed: {e}") from e

    def _check(self, r, what: str) -> None:
        if r.status_code < 400:
            return
        try:
            body = r.json()
            detail = body.get("detail") if isinstance(body, dict) else None
        except ValueError:
            detail = None
        detail = detail or f"HTTP {r.status_code}"
        body = r.text
        r.close()
        raise BackendError(f"{what} failed: {detail}", status_code=r.status_code, body=body)

    def _json(self, r, what: str) -> Dict[str, Any]:
        try:
            data = r.json()
        except ValueError as e:
            raise BackendError(f"{what} failed: invalid JSON response", status_code=r.status_code) from e
        if not isinstance(data, dict):
            raise BackendError(f"{what} failed: unexpected response", status_code=r.status_code, body=data)
        return data

    def health(self, timeout: float = 3.0) -> bool:
        """GET /health — True on any 2xx, False otherwise (never raises)."""
        try:
            r = self.http.get(self._url("/health"), timeout=timeout)
        except requests.RequestException:
            return False
        r.close()
        return 200 <= r.status_code < 300


class ExecutionClient(_ServiceClient):
    """Client for the code-execution service (one kernel per session)."""

    def __init__(self, base_url: str = DEFAULT_LAB_URL, http: Any = None, timeout: Optional[float] = 120):
        super().__init__(base_url, http=http, timeout=timeout)

    def create_session(self) -> str:
        """POST /session — returns the new session_id."""
        r = self._send("post", "/session", "Create session", timeout=self.timeout)
        self._check(r, "Create session")
        session_id = self._json(r, "Create session").get("session_id")
        if not session_id:
            raise BackendError("Create session failed: no session_id in response")
        return session_id

    def execute(self, session_id: str, cell_id: str, code: str) -> Dict[str, Any]:
        """
        POST /execute — run code in the session's kernel.
        Returns stdout, error (None on success) and charts (base64 PNGs).
        No timeout: long-running cells are allowed.
        """
        payload = {"session_id": session_id, "cell_id": cell_id, "code": code}
        r = self._send("post", "/execute", "Execute", json=payload, timeout=None)
        self._check(r, "Execute")
        return self._json(r, "Execute")

    def upload(self, session_id: str, file_path: str) -> Dict[str, Any]:
        """
        POST /upload (multipart) — make a dataset available to the session.
        Returns filename, file_path (server side) and size_kb.
        """
        path = Path(file_path).expanduser().resolve()
        if not path.exists():
            raise BackendError(f"File not found: {path}")
        with open(path, "rb") as f:
            files = {"file": (path.name, f)}
            r = self._send("post", "/upload", "Upload", data={"session_id": session_id}, files=files, timeout=self.timeout)
        self._check(r, "Upload")
        return self._json(r, "Upload")

    def delete_session(self, session_id: str) -> None:
        r = self._send("delete", f"/session/{session_id}", "Delete session", timeout=self.timeout)
        self._check(r, "Delete session")


class AgentClient(_ServiceClient):
    """Client for the analysis/pipeline agent service."""

    def __init__(
        self,
        base_url: str = DEFAULT_AGENT_URL,
        http: Any = None,
        timeout: Optional[float] = 120,
        stream_timeout: float = 300,
    ):
        super().__init__(base_url, http=http, timeout=timeout)
        self.stream_timeout = stream_timeout

    def _stream(self, path: str, payload: Dict[str, Any], what: str) -> EventStream:
        # The request is sent here so HTTP errors surface before iteration starts.
        r = self._send("post", path, what, json=payload, stream=True, timeout=(10, self.stream_timeout))
        self._check(r, what)
        return EventStream(r, what)

    def analyze_stream(
        self,
        session_id: str,
        file_path: str,
        filename: str,
        target_column: Optional[str] = None,
    ) -> EventStream:
        """POST /v2/analyze-stream — events: status, code_cell, analysis, models, guard_*, done."""
        payload = {
            "session_id": session_id,
            "uploaded_file_path": file_path,
            "uploaded_filename": filename,
            "target_column": target_column,
        }
        return self._stream("/v2/analyze-stream", payload, "Analysis")

    def build_pipeline_stream(
        self,
        session_id: str,
        selected_model: str,
        target_column: Optional[str] = None,
    ) -> EventStream:
        """POST /v2/build-pipeline-stream — terminal done event carries feature_columns."""
        payload = {"session_id": session_id, "selected_model": selected_model, "target_column": target_column}
        return self._stream("/v2/build-pipeline-stream", payload, "Pipeline build")

    def predict(self, session_id: str, input_values: Mapping[str, str]) -> Dict[str, Any]:
        """POST /v2/predict — returns code, output, error."""
        payload = {"session_id": session_id, "input_values": dict(input_values)}
        r = self._send("post", "/v2/predict", "Prediction", json=payload, timeout=self.timeout)
        self._check(r, "Prediction")
        return self._json(r, "Prediction")

    def chat(self, session_id: str, message: str) -> Dict[str, Any]:
        """
        POST /v2/chat — returns reply, plus action/code/output/error/charts,
        chart_insight and guard_events when the agent ran code.
        """
        payload = {"session_id": session_id, "message": message}
        r = self._send("post", "/v2/chat", "Chat", json=payload, timeout=self.timeout)
        self._check(r, "Chat")
        return self._json(r, "Chat")

    def delete_session(self, session_id: str) -> None:
        r = self._send("delete", f"/agent-session/{session_id}", "Delete agent session", timeout=self.timeout)
        self._check(r, "Delete agent session")
