"""Tests for the service clients."""
import pytest
import requests

from labplay.cli.client import AgentClient, BackendError, ExecutionClient, ServiceUnavailable, StreamError

from tests.conftest import AGENT_URL, LAB_URL, FakeHttp, FakeResponse, sse


@pytest.fixture
def http():
    return FakeHttp()


def test_create_session_requires_an_id(http):
    client = ExecutionClient(LAB_URL, http=http)
    http.on("post", "/session", FakeResponse(json_data={}))
    with pytest.raises(BackendError, match="no session_id"):
        client.create_session()


def test_error_detail_is_surfaced(http):
    client = ExecutionClient(LAB_URL, http=http)
    http.on("post", "/execute", FakeResponse(status_code=422, json_data={"detail": "code is empty"}))
    with pytest.raises(BackendError) as exc:
        client.execute("s1", "c1", "")
    assert exc.value.message == "Execute failed: code is empty"
    assert exc.value.status_code == 422


def test_error_without_json_body(http):
    client = ExecutionClient(LAB_URL, http=http)
    http.on("post", "/execute", FakeResponse(status_code=502, text="<html>Bad Gateway</html>"))
    with pytest.raises(BackendError, match="HTTP 502"):
        client.execute("s1", "c1", "1")


def test_connection_failure_is_service_unavailable(http):
    client = ExecutionClient(LAB_URL, http=http)
    with pytest.raises(ServiceUnavailable):
        client.create_session()


def test_upload_sends_multipart(http, sales_csv):
    client = ExecutionClient(LAB_URL, http=http)
    http.on("post", "/upload", FakeResponse(json_data={"filename": "sales.csv", "file_path": "/srv/sales.csv", "size_kb": 1}))
    data = client.upload("s1", str(sales_csv))
    assert data["file_path"] == "/srv/sales.csv"
    (call,) = http.calls_to("post", "/upload")
    assert call["data"] == {"session_id": "s1"}
    assert call["files"]["file"][0] == "sales.csv"


def test_upload_missing_file(http, tmp_path):
    client = ExecutionClient(LAB_URL, http=http)
    with pytest.raises(BackendError, match="File not found"):
        client.upload("s1", str(tmp_path / "nope.csv"))
    assert http.calls == []


def test_analyze_stream_decodes_events(http):
    client = AgentClient(AGENT_URL, http=http, stream_timeout=60)
    response = FakeResponse(chunks=sse({"type": "status", "text": "Loading"}, {"type": "done"}, split=7))
    http.on("post", "/v2/analyze-stream", response)

    events = list(client.analyze_stream("s1", "/srv/sales.csv", "sales.csv", "revenue"))

    assert events == [{"type": "status", "text": "Loading"}, {"type": "done"}]
    assert response.closed
    (call,) = http.calls_to("post", "/v2/analyze-stream")
    assert call["json"] == {
        "session_id": "s1",
        "uploaded_file_path": "/srv/sales.csv",
        "uploaded_filename": "sales.csv",
        "target_column": "revenue",
    }
    assert call["stream"] is True
    assert call["timeout"] == (10, 60)


def test_stream_http_error_raises_before_iteration(http):
    client = AgentClient(AGENT_URL, http=http)
    http.on("post", "/v2/build-pipeline-stream", FakeResponse(status_code=404, json_data={"detail": "Unknown session"}))
    with pytest.raises(BackendError, match="Unknown session"):
        client.build_pipeline_stream("s1", "random_forest")


def test_broken_stream_raises_stream_error(http):
    client = AgentClient(AGENT_URL, http=http)
    response = FakeResponse(chunks=sse({"type": "status"}) + [requests.exceptions.ChunkedEncodingError("eof")])
    http.on("post", "/v2/analyze-stream", response)
    events = client.analyze_stream("s1", "/srv/a.csv", "a.csv")
    assert next(events) == {"type": "status"}
    with pytest.raises(StreamError):
        next(events)
    assert response.closed


def test_health(http):
    client = AgentClient(AGENT_URL, http=http)
    assert client.health() is False
    http.on("get", "/health", FakeResponse(json_data={"status": "ok"}))
    assert client.health(timeout=1) is True
    http.on("get", "/health", FakeResponse(status_code=503))
    assert client.health() is False


def test_unread_stream_is_closed(http):
    client = AgentClient(AGENT_URL, http=http)
    response = FakeResponse(chunks=sse({"type": "done"}))
    http.on("post", "/v2/analyze-stream", response)
    events = client.analyze_stream("s1", "/srv/a.csv", "a.csv")
    events.close()
    assert response.closed


def test_health_closes_its_response(http):
    client = ExecutionClient(LAB_URL, http=http)
    response = FakeResponse(json_data={"status": "ok"})
    http.on("get", "/health", response)
    assert client.health()
    assert response.closed
