"""Pytest configuration and fixtures."""
import json
from urllib.parse import urlparse

import pytest
import requests

from labplay.api import Lab
from labplay.config import LabConfig

LAB_URL = "http://lab.test"
AGENT_URL = "http://agent.test"


class FakeResponse:
    """Just enough of requests.Response for the clients."""

    def __init__(self, status_code=200, json_data=None, text=None, chunks=None):
        self.status_code = status_code
        self._json = json_data
        self._text = text
        self.chunks = list(chunks or [])
        self.closed = False

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    @property
    def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._json) if self._json is not None else ""

    def iter_content(self, chunk_size=None):
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def close(self):
        self.closed = True


def sse(*events, split=None):
    """Encode events as one event-stream body, optionally cut into `split`-byte chunks."""
    body = b"".join(f"data: {json.dumps(e)}\n\n".encode("utf-8") for e in events)
    if not split:
        return [body]
    return [body[i:i + split] for i in range(0, len(body), split)]


class FakeHttp:
    """
    Records every request and answers from registered routes.

    A route holds a queue of responses: each call pops the head until one is
    left, which then answers every later call. Items may be a FakeResponse,
    an exception to raise, or a callable taking the request kwargs.
    Unrouted requests raise requests.ConnectionError.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, target, *responses):
        self.routes[(method, target)] = list(responses)
        return self

    def _dispatch(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url)) or self.routes.get((method, urlparse(url).path))
        if not queue:
            raise requests.ConnectionError(f"Connection refused: {url}")
        item = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(**kwargs)
        return item

    def post(self, url, **kwargs):
        return self._dispatch("post", url, **kwargs)

    def get(self, url, **kwargs):
        return self._dispatch("get", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._dispatch("delete", url, **kwargs)

    def calls_to(self, method, path):
        return [kw for m, url, kw in self.calls if m == method and urlparse(url).path == path]


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def config(tmp_path):
    return LabConfig(
        lab_url=LAB_URL,
        agent_url=AGENT_URL,
        max_retries=2,
        retry_delay=1.5,
        storage_dir=tmp_path / "store",
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def lab(config, http, sleeps):
    http.on("post", "/session", FakeResponse(json_data={"session_id": "s1"}))
    http.on("delete", "/session/s1", FakeResponse())
    http.on("delete", "/agent-session/s1", FakeResponse())
    return Lab(config=config, http=http, sleep=sleeps.append)


@pytest.fixture
def sales_csv(tmp_path):
    path = tmp_path / "sales.csv"
    path.write_text("region,units,revenue\nnorth,12,340.5\nsouth,7,198.0\n", encoding="utf-8")
    return path


@pytest.fixture
def uploaded(http):
    http.on(
        "post",
        "/upload",
        FakeResponse(json_data={"filename": "sales.csv", "file_path": "/srv/uploads/s1/sales.csv", "size_kb": 1.2}),
    )
    return http
