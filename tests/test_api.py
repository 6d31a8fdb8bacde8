"""Tests for the Lab facade."""
import base64

from labplay.api import Lab
from labplay.schemas.notebook_schema import CellStatus

from tests.conftest import FakeResponse

PNG = base64.b64encode(b"\x89PNG\r\n\x1a\nfake").decode("ascii")


def test_fresh_lab(lab):
    assert lab.session_id is None
    assert len(lab.cell_list) == 1
    assert lab.messages[0].id == "welcome"


def test_add_and_run_cell(lab, http):
    http.on("post", "/execute", FakeResponse(json_data={"stdout": "hello\n", "charts": [PNG]}))
    first = lab.cell_list[0]
    cell = lab.add_cell(after=first.id, code="print('hello')")

    result = lab.run(cell.id)

    assert [c.id for c in lab.cell_list] == [first.id, cell.id]
    assert result.status == CellStatus.DONE
    assert lab.session_id == "s1"


def test_save_charts(lab, http, tmp_path):
    http.on("post", "/execute", FakeResponse(json_data={"stdout": "", "charts": [PNG, "data:image/png;base64," + PNG]}))
    cell = lab.cell_list[0]
    lab.run(cell.id)

    paths = lab.save_charts(cell.id, str(tmp_path / "charts"))

    assert [p.name for p in paths] == ["chart_1.png", "chart_2.png"]
    assert all(p.read_bytes().startswith(b"\x89PNG") for p in paths)
    assert lab.save_charts("missing", str(tmp_path)) == []


def test_reset_discards_cached_transcript(lab, http):
    http.on("post", "/v2/chat", FakeResponse(json_data={"reply": "hi"}))
    lab.ask("hello")
    lab.save_transcript()
    assert lab.transcript_cache.load("s1") is not None

    lab.reset()

    assert lab.transcript_cache.load("s1") is None
    assert len(lab.messages) == 1
    assert lab.cells.execution_count == 0


def test_check_health(lab, http):
    http.on("get", "http://lab.test/health", FakeResponse(json_data={"status": "ok"}))
    assert lab.check_health() == {"backend": True, "agent": False}
    assert lab.health.is_offline("agent")


def test_malformed_chart_is_skipped(lab, http, tmp_path):
    http.on("post", "/execute", FakeResponse(json_data={"stdout": "", "charts": ["not base64!", PNG]}))
    cell = lab.cell_list[0]
    lab.run(cell.id)

    paths = lab.save_charts(cell.id, str(tmp_path / "charts"))

    assert [p.name for p in paths] == ["chart_2.png"]


def test_resume_restores_cached_transcript(lab, http):
    http.on("post", "/v2/chat", FakeResponse(json_data={"reply": "hi"}))
    lab.ask("hello")
    lab.save_transcript()
    saved = [m.text for m in lab.messages]

    other = Lab(config=lab.config, http=http)
    assert other.resume("s1")

    assert other.session_id == "s1"
    assert [m.text for m in other.messages] == saved
    assert len(other.cell_list) == 1
    assert not other.resume("unknown")
    assert len(http.calls_to("post", "/session")) == 1
