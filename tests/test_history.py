"""Tests for local project history and transcript cache."""
from labplay.history import ProjectHistory, TranscriptCache
from labplay.pipeline.transcript import ChatTranscript
from labplay.schemas.chat_schema import MessageKind


def test_reupload_replaces_in_progress_project(tmp_path):
    history = ProjectHistory(tmp_path)
    first = history.record_upload("sales.csv")
    second = history.record_upload("sales.csv")
    history.record_upload("churn.csv")

    projects = history.projects()
    assert first != second
    assert second.startswith("lab_")
    assert [p["dataset"] for p in projects] == ["churn.csv", "sales.csv"]
    assert projects[1]["name"] == "sales"
    assert [a["type"] for a in history.activities()] == ["upload", "upload", "upload"]


def test_mark_validated(tmp_path):
    history = ProjectHistory(tmp_path)
    history.record_upload("sales.csv")
    assert history.mark_validated("sales.csv") == 1
    assert history.mark_validated("other.csv") == 0
    (project,) = history.projects()
    assert project["status"] == "validated"
    assert project["confidence"] == 85
    assert history.activities()[0]["type"] == "completion"
    assert history.stats() == {"validations": 1, "datasets": 1, "avg_confidence": 85}


def test_corrupt_files_are_ignored(tmp_path):
    (tmp_path / "projects.json").write_text("{oops", encoding="utf-8")
    assert ProjectHistory(tmp_path).projects() == []


def test_transcript_cache(tmp_path):
    cache = TranscriptCache(tmp_path)
    transcript = ChatTranscript()
    transcript.info("📄 sales.csv uploaded")
    cache.save("s1", transcript.messages())

    loaded = cache.load("s1")
    assert [m.kind for m in loaded] == [MessageKind.WELCOME, MessageKind.INFO]
    assert loaded[1].text == "📄 sales.csv uploaded"

    cache.discard("s1")
    assert cache.load("s1") is None
    cache.discard("s1")

    (tmp_path / "transcripts" / "bad.json").write_text('[{"kind": "nope"}]', encoding="utf-8")
    assert cache.load("bad") is None
