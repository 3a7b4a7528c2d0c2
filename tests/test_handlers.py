"""Tests for the forwarding routes, uploads, tool execution and the SSE endpoint."""
import io

import httpx
import openai
import pytest

from conftest import message_list, parse_sse_body

FORWARDED_ROUTES = [
    ("post", "/create-assistant", {"name": "Math Tutor"}, "POST", "/assistants"),
    ("get", "/retrieve-assistant/asst_1", None, "GET", "/assistants/asst_1"),
    ("patch", "/update-assistant/asst_1", {"name": "Renamed"}, "POST", "/assistants/asst_1"),
    ("delete", "/delete-assistant/asst_1", None, "DELETE", "/assistants/asst_1"),
    ("post", "/create-thread", {"messages": []}, "POST", "/threads"),
    ("get", "/retrieve-thread/thread_1", None, "GET", "/threads/thread_1"),
    ("patch", "/update-thread/thread_1", {"metadata": {"a": "b"}}, "POST", "/threads/thread_1"),
    ("delete", "/delete-thread/thread_1", None, "DELETE", "/threads/thread_1"),
    ("post", "/create-message/thread_1", {"role": "user", "content": "hi"}, "POST", "/threads/thread_1/messages"),
    ("get", "/retrieve-message/thread_1/msg_1", None, "GET", "/threads/thread_1/messages/msg_1"),
    ("patch", "/update-message/thread_1/msg_1", {"metadata": {}}, "POST", "/threads/thread_1/messages/msg_1"),
    ("post", "/create-run/thread_1", {"assistant_id": "asst_1"}, "POST", "/threads/thread_1/runs"),
    ("get", "/retrieve-run/thread_1/run_1", None, "GET", "/threads/thread_1/runs/run_1"),
    ("post", "/cancel-run/thread_1/run_1", None, "POST", "/threads/thread_1/runs/run_1/cancel"),
    (
        "post",
        "/submit-tool-outputs/thread_1/run_1",
        {"tool_outputs": [{"tool_call_id": "call_1", "output": "42"}]},
        "POST",
        "/threads/thread_1/runs/run_1/submit_tool_outputs",
    ),
    ("get", "/retrieve-run-step/thread_1/run_1/step_1", None, "GET", "/threads/thread_1/runs/run_1/steps/step_1"),
    ("post", "/create-vector-store", {"name": "docs"}, "POST", "/vector_stores"),
    ("get", "/retrieve-vector-store/vs_1", None, "GET", "/vector_stores/vs_1"),
    ("patch", "/update-vector-store/vs_1", {"name": "docs2"}, "POST", "/vector_stores/vs_1"),
    ("delete", "/delete-vector-store/vs_1", None, "DELETE", "/vector_stores/vs_1"),
    ("get", "/retrieve-file/file-1", None, "GET", "/files/file-1"),
    ("delete", "/delete-file/file-1", None, "DELETE", "/files/file-1"),
]


class TestForwarding:
    @pytest.mark.parametrize("verb, local_path, body, upstream_method, upstream_path", FORWARDED_ROUTES)
    def test_route_maps_to_upstream(self, client, upstream, verb, local_path, body, upstream_method, upstream_path):
        kwargs = {"json": body} if body is not None else {}
        resp = getattr(client, verb)(local_path, **kwargs)
        assert resp.status_code == 200
        method, path, sent_body, _ = upstream.calls[-1]
        assert (method, path) == (upstream_method, upstream_path)
        if body is not None:
            assert sent_body == body

    @pytest.mark.parametrize(
        "local_path, upstream_path",
        [
            ("/list-assistants", "/assistants"),
            ("/list-messages/thread_1", "/threads/thread_1/messages"),
            ("/list-run-steps/thread_1/run_1", "/threads/thread_1/runs/run_1/steps"),
            ("/list-vector-stores", "/vector_stores"),
            ("/list-files", "/files"),
        ],
    )
    def test_list_routes_relay_query(self, client, upstream, local_path, upstream_path):
        resp = client.get(f"{local_path}?limit=5&order=asc")
        assert resp.status_code == 200
        assert upstream.calls[-1] == ("GET", upstream_path, None, {"limit": "5", "order": "asc"})

    def test_upstream_json_is_relayed_verbatim(self, client, upstream):
        upstream.responses[("GET", "/assistants/asst_1")] = {
            "id": "asst_1",
            "object": "assistant",
            "model": "gpt-4o",
            "tools": [{"type": "code_interpreter"}],
        }
        resp = client.get("/retrieve-assistant/asst_1")
        assert resp.get_json() == upstream.responses[("GET", "/assistants/asst_1")]

    def test_cancel_run_sends_no_body(self, client, upstream):
        client.post("/cancel-run/thread_1/run_1")
        assert upstream.calls[-1][2] is None

    def test_missing_json_body_forwards_empty_object(self, client, upstream):
        client.post("/create-thread")
        assert upstream.calls[-1][2] == {}

    def test_file_content_is_relayed_raw(self, client, upstream):
        upstream.content = (b"col_a,col_b\n1,2\n", "text/csv")
        resp = client.get("/retrieve-file-content/file-1")
        assert resp.status_code == 200
        assert resp.data == b"col_a,col_b\n1,2\n"
        assert resp.mimetype == "text/csv"
        assert upstream.calls[-1][1] == "/files/file-1/content"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/no-such-route")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["message"] == "Not found"


class TestUpstreamErrors:
    def _status_error(self, cls, status, message):
        request = httpx.Request("GET", "https://api.openai.com/v1/threads/missing")
        return cls(
            message,
            response=httpx.Response(status, request=request),
            body={"message": message, "type": "invalid_request_error"},
        )

    def test_status_error_relays_upstream_status_and_message(self, client, upstream):
        upstream.errors[("GET", "/threads/missing")] = self._status_error(
            openai.NotFoundError, 404, "No thread found with id 'missing'."
        )
        resp = client.get("/retrieve-thread/missing")
        assert resp.status_code == 404
        error = resp.get_json()["error"]
        assert error["message"] == "No thread found with id 'missing'."
        assert error["type"] == "not_found_error"

    def test_auth_error_maps_to_401(self, client, upstream):
        upstream.errors[("GET", "/assistants")] = self._status_error(
            openai.AuthenticationError, 401, "Incorrect API key provided"
        )
        resp = client.get("/list-assistants")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["type"] == "authentication_error"

    def test_connection_error_maps_to_502(self, client, upstream):
        upstream.errors[("GET", "/files")] = openai.APIConnectionError(
            request=httpx.Request("GET", "https://api.openai.com/v1/files")
        )
        resp = client.get("/list-files")
        assert resp.status_code == 502
        assert resp.get_json()["error"]["type"] == "api_connection_error"


class TestUpload:
    def test_upload_forwards_file_and_purpose(self, client, upstream):
        resp = client.post(
            "/upload-file",
            data={"file": (io.BytesIO(b"hello world"), "notes.txt", "text/plain"), "purpose": "assistants"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["id"] == "file-abc123"
        assert upstream.uploads == [
            {"filename": "notes.txt", "data": b"hello world", "content_type": "text/plain", "purpose": "assistants"}
        ]

    def test_purpose_defaults_to_assistants(self, client, upstream):
        client.post(
            "/upload-file",
            data={"file": (io.BytesIO(b"{}"), "data.json", "application/json")},
            content_type="multipart/form-data",
        )
        assert upstream.uploads[0]["purpose"] == "assistants"

    def test_missing_file_is_rejected(self, client, upstream):
        resp = client.post("/upload-file", data={"purpose": "assistants"}, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["message"] == "No file uploaded"
        assert upstream.uploads == []

    def test_disallowed_type_is_rejected(self, client, upstream):
        resp = client.post(
            "/upload-file",
            data={"file": (io.BytesIO(b"MZ"), "tool.exe", "application/x-msdownload")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert "Received: application/x-msdownload" in resp.get_json()["error"]["message"]
        assert upstream.uploads == []

    def test_oversized_file_is_rejected(self, client, upstream):
        payload = b"x" * (1024 * 1024 + 1)
        resp = client.post(
            "/upload-file",
            data={"file": (io.BytesIO(payload), "big.txt", "text/plain")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 413
        assert upstream.uploads == []

    def test_allowed_types_come_from_config(self, client, upstream, isolated_config):
        isolated_config.write_text('{"uploads": {"allowed_types": ["text/csv"]}}', encoding="utf-8")
        resp = client.post(
            "/upload-file",
            data={"file": (io.BytesIO(b"a,b"), "t.csv", "text/csv")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert upstream.uploads[0]["content_type"] == "text/csv"


class TestExecuteTools:
    def test_dispatches_and_submits_outputs(self, client, upstream):
        resp = client.post(
            "/execute-tools/thread_1/run_1",
            json={
                "tool_calls": [
                    {"id": "call_1", "type": "function", "function": {"name": "get_current_time", "arguments": "{}"}},
                    {"id": "call_2", "type": "function", "function": {"name": "launch_rocket", "arguments": "{}"}},
                ]
            },
        )
        assert resp.status_code == 200
        method, path, body, _ = upstream.calls[-1]
        assert (method, path) == ("POST", "/threads/thread_1/runs/run_1/submit_tool_outputs")
        outputs = {item["tool_call_id"]: item["output"] for item in body["tool_outputs"]}
        assert '"utc"' in outputs["call_1"]
        assert outputs["call_2"] == '{"error": "Unknown function: launch_rocket"}'

    def test_missing_tool_calls_is_a_bad_request(self, client, upstream):
        resp = client.post("/execute-tools/thread_1/run_1", json={})
        assert resp.status_code == 400
        assert upstream.calls == []


class TestStreamRoute:
    def test_streams_status_until_completed(self, client, upstream):
        upstream.run_statuses = ["queued", "in_progress", "completed"]
        upstream.messages = message_list("The area formula is πr².")
        resp = client.post("/stream-run/thread_1/run_1")
        assert resp.status_code == 200
        assert resp.mimetype == "text/event-stream"
        assert resp.headers["Cache-Control"] == "no-cache"
        assert resp.headers["X-Accel-Buffering"] == "no"
        events = parse_sse_body(resp.get_data(as_text=True))
        assert events == [
            {"type": "status", "content": "queued"},
            {"type": "status", "content": "in_progress"},
            {"type": "status", "content": "completed"},
            {"type": "message", "content": "The area formula is πr²."},
            "[DONE]",
        ]

    def test_failed_run_ends_with_error_and_done(self, client, upstream):
        upstream.run_statuses = ["in_progress", "failed"]
        resp = client.get("/stream-run/thread_1/run_1")
        events = parse_sse_body(resp.get_data(as_text=True))
        assert events[-2:] == [{"type": "error", "content": "Run failed"}, "[DONE]"]
        assert resp.headers["X-Request-ID"]

    def test_stream_uses_rotated_key_for_new_streams(self, client, clients):
        assert client.post("/set-api-key", json={"apiKey": "sk-rotated"}).status_code == 200
        clients["sk-rotated"].run_statuses = ["expired"]
        events = parse_sse_body(client.post("/stream-run/t/r").get_data(as_text=True))
        assert events == [{"type": "status", "content": "expired"}, {"type": "error", "content": "Run expired"}, "[DONE]"]
        assert clients["sk-test"].run_polls() == []
