"""Shared fixtures: an in-memory upstream double and a configured Flask app."""
import json

import pytest

from assistgate.core.app import create_app
from assistgate.core.settings import Settings


class FakeAssistantsClient:
    """Records upstream calls and replays canned payloads."""

    def __init__(self, api_key="sk-test", run_statuses=None, messages=None):
        self.api_key = api_key
        self.calls = []
        self.responses = {}
        self.errors = {}
        self.run_statuses = list(run_statuses or ["completed"])
        self.messages = messages if messages is not None else message_list("Hello from the assistant.")
        self.uploads = []
        self.content = (b"", "application/octet-stream")

    def _record(self, method, path, body=None, params=None):
        self.calls.append((method, path, body, params))
        error = self.errors.get((method, path))
        if error is not None:
            raise error

    def request(self, method, path, body=None, params=None):
        self._record(method, path, body, params)
        return self.responses.get(
            (method, path),
            {"object": "echo", "method": method, "path": path, "body": body, "params": params},
        )

    def get_run(self, thread_id, run_id):
        path = f"/threads/{thread_id}/runs/{run_id}"
        self._record("GET", path)
        # The last status repeats forever.
        status = self.run_statuses.pop(0) if len(self.run_statuses) > 1 else self.run_statuses[0]
        return {"id": run_id, "object": "thread.run", "thread_id": thread_id, "status": status}

    def list_messages(self, thread_id, params=None):
        self._record("GET", f"/threads/{thread_id}/messages", params=params)
        return self.messages

    def get_content(self, path):
        self._record("GET", path)
        return self.content

    def upload_file(self, filename, data, content_type, purpose):
        self._record("POST", "/files")
        self.uploads.append(
            {"filename": filename, "data": data, "content_type": content_type, "purpose": purpose}
        )
        return {"id": "file-abc123", "object": "file", "filename": filename, "purpose": purpose, "bytes": len(data)}

    def run_polls(self):
        return [call for call in self.calls if "/runs/" in call[1]]


def message_list(*texts):
    """Build a newest-first thread message listing."""
    return {
        "object": "list",
        "data": [
            {
                "id": f"msg_{index}",
                "object": "thread.message",
                "role": "assistant",
                "content": [{"type": "text", "text": {"value": text, "annotations": []}}],
            }
            for index, text in enumerate(texts)
        ],
        "has_more": False,
    }


def parse_frames(frames):
    """Decode SSE frames into payload dicts; the sentinel becomes the string "[DONE]"."""
    events = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n"), frame
        body = frame[len("data: "):-2]
        events.append(body if body == "[DONE]" else json.loads(body))
    return events


def parse_sse_body(text):
    return parse_frames([chunk + "\n\n" for chunk in text.split("\n\n") if chunk])


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setenv("CONFIG_PATH", str(path))
    monkeypatch.setenv("LOG_TO_FILE", "false")
    return path


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test",
        run_poll_interval=0.0,
        rate_limit_window_ms=60_000,
        rate_limit_max=1000,
        max_file_size_mb=1.0,
        log_dir=None,
        default_ids={"assistantId": "asst_default", "threadId": "thread_default"},
    )


@pytest.fixture
def clients():
    """Every upstream client the app builds, keyed by API key."""
    return {}


@pytest.fixture
def app(settings, clients):
    def factory(api_key):
        fake = FakeAssistantsClient(api_key=api_key)
        clients[api_key] = fake
        return fake

    app = create_app(settings, client_factory=factory)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def upstream(app, clients):
    return clients["sk-test"]


@pytest.fixture
def client(app):
    return app.test_client()
