"""
Local, non-authoritative history for the Lab Playground.

Keeps a small project list and activity feed (one project per uploaded
dataset, marked validated once analysis completes) and a per-session cache of
the chat transcript. Everything is plain JSON under the storage directory.
"""

import json
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from labplay.logger import get_logger
from labplay.schemas.chat_schema import ChatMessage

logger = get_logger(__name__)

VALIDATED_CONFIDENCE = 85


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable history file %s: %s", path, e)
        return default


def _write_json(path: Path, data: Any) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
    except OSError as e:
        logger.warning("Could not write history file %s: %s", path, e)


class ProjectHistory:
    """Projects and activities recorded by the playground."""

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.projects_file = self.storage_dir / "projects.json"
        self.activities_file = self.storage_dir / "activities.json"

    def projects(self) -> List[Dict[str, Any]]:
        return _read_json(self.projects_file, [])

    def activities(self) -> List[Dict[str, Any]]:
        return _read_json(self.activities_file, [])

    def _log_activity(self, action: str, kind: str) -> None:
        entry = {
            "id": str(int(time.time() * 1000)),
            "action": action,
            "timestamp": datetime.now().isoformat(),
            "type": kind,
        }
        _write_json(self.activities_file, [entry] + self.activities())

    def record_upload(self, filename: str) -> str:
        """
        Add an in-progress project for an uploaded dataset.
        An earlier in-progress entry for the same dataset is replaced.

        Returns:
            The new project id
        """
        project_id = f"lab_{uuid.uuid4().hex[:12]}"
        project = {
            "id": project_id,
            "name": Path(filename).stem,
            "dataset": filename,
            "task_type": "lab-playground",
            "status": "in-progress",
            "confidence": 0,
            "created": datetime.now().isoformat(),
        }
        kept = [
            p for p in self.projects()
            if not (p.get("dataset") == filename and p.get("status") == "in-progress")
        ]
        _write_json(self.projects_file, [project] + kept)
        self._log_activity(f"Opened {filename} in Lab Playground", "upload")
        return project_id

    def mark_validated(self, filename: str) -> int:
        """Mark every project for this dataset as validated. Returns how many matched."""
        matched = 0
        projects = self.projects()
        for p in projects:
            if p.get("dataset") == filename:
                p["status"] = "validated"
                p["confidence"] = VALIDATED_CONFIDENCE
                matched += 1
        _write_json(self.projects_file, projects)
        self._log_activity(f"Completed analysis for {filename} in Lab Playground", "completion")
        return matched

    def stats(self) -> Dict[str, Any]:
        projects = self.projects()
        return {
            "validations": sum(1 for p in projects if p.get("status") == "validated"),
            "datasets": len(projects),
            "avg_confidence": VALIDATED_CONFIDENCE if projects else 0,
        }


class TranscriptCache:
    """Chat transcript snapshots keyed by session id."""

    def __init__(self, storage_dir: Path):
        self.dir = Path(storage_dir) / "transcripts"

    def _path(self, session_id: str) -> Path:
        return self.dir / f"{session_id}.json"

    def save(self, session_id: str, messages: List[ChatMessage]) -> None:
        _write_json(self._path(session_id), [m.model_dump(mode="json") for m in messages])

    def load(self, session_id: str) -> Optional[List[ChatMessage]]:
        raw = _read_json(self._path(session_id), None)
        if raw is None:
            return None
        try:
            return [ChatMessage.model_validate(m) for m in raw]
        except ValueError as e:
            logger.warning("Discarding corrupt transcript cache for %s: %s", session_id, e)
            return None

    def discard(self, session_id: str) -> None:
        try:
            self._path(session_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug("Could not remove transcript cache %s: %s", session_id, e)
