"""Route handlers that forward assistants API calls upstream."""
import openai
from flask import Response, g, jsonify, request, stream_with_context
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from ..core.config import get_upload_config
from ..utils.http import error_response, query_params, upstream_error_message
from ..utils.logging import log_event
from .schemas import ExecuteToolsRequest
from .streaming import SSE_HEADERS, RunStatusStreamer, UpstreamPayloadError

_UPSTREAM_ERROR_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    429: "rate_limit_error",
}


def _log_upstream_error(err: Exception, request_id: str, upstream_path: str | None):
    response = getattr(err, "response", None)
    status = getattr(err, "status_code", None) or getattr(response, "status_code", None)
    body = None
    if response is not None:
        try:
            body = response.text
        except Exception:
            body = None
    if isinstance(body, str) and len(body) > 2000:
        body = body[:2000] + "...(truncated)"
    log_event(
        40,
        "upstream_error",
        request_id=request_id,
        upstream_path=upstream_path,
        status=status,
        body=body,
        error=str(err),
    )


def _json_body():
    body = request.get_json(silent=True)
    return body if body is not None else {}


def register_routes(app, settings, state):
    """Register forwarding routes and error handlers on the app."""

    def _client():
        return state.clients.current()

    def _forward(method: str, path: str, *, body=None, params=None):
        g.upstream_path = path
        return jsonify(_client().request(method, path, body=body, params=params))

    # Assistants
    @app.route('/create-assistant', methods=['POST'])
    def create_assistant():
        return _forward("POST", "/assistants", body=_json_body())

    @app.route('/list-assistants', methods=['GET'])
    def list_assistants():
        return _forward("GET", "/assistants", params=query_params())

    @app.route('/retrieve-assistant/<assistant_id>', methods=['GET'])
    def retrieve_assistant(assistant_id):
        return _forward("GET", f"/assistants/{assistant_id}")

    @app.route('/update-assistant/<assistant_id>', methods=['PATCH'])
    def update_assistant(assistant_id):
        return _forward("POST", f"/assistants/{assistant_id}", body=_json_body())

    @app.route('/delete-assistant/<assistant_id>', methods=['DELETE'])
    def delete_assistant(assistant_id):
        return _forward("DELETE", f"/assistants/{assistant_id}")

    # Threads
    @app.route('/create-thread', methods=['POST'])
    def create_thread():
        return _forward("POST", "/threads", body=_json_body())

    @app.route('/retrieve-thread/<thread_id>', methods=['GET'])
    def retrieve_thread(thread_id):
        return _forward("GET", f"/threads/{thread_id}")

    @app.route('/update-thread/<thread_id>', methods=['PATCH'])
    def update_thread(thread_id):
        return _forward("POST", f"/threads/{thread_id}", body=_json_body())

    @app.route('/delete-thread/<thread_id>', methods=['DELETE'])
    def delete_thread(thread_id):
        return _forward("DELETE", f"/threads/{thread_id}")

    # Messages
    @app.route('/create-message/<thread_id>', methods=['POST'])
    def create_message(thread_id):
        return _forward("POST", f"/threads/{thread_id}/messages", body=_json_body())

    @app.route('/list-messages/<thread_id>', methods=['GET'])
    def list_messages(thread_id):
        return _forward("GET", f"/threads/{thread_id}/messages", params=query_params())

    @app.route('/retrieve-message/<thread_id>/<message_id>', methods=['GET'])
    def retrieve_message(thread_id, message_id):
        return _forward("GET", f"/threads/{thread_id}/messages/{message_id}")

    @app.route('/update-message/<thread_id>/<message_id>', methods=['PATCH'])
    def update_message(thread_id, message_id):
        return _forward("POST", f"/threads/{thread_id}/messages/{message_id}", body=_json_body())

    # Runs
    @app.route('/create-run/<thread_id>', methods=['POST'])
    def create_run(thread_id):
        return _forward("POST", f"/threads/{thread_id}/runs", body=_json_body())

    @app.route('/retrieve-run/<thread_id>/<run_id>', methods=['GET'])
    def retrieve_run(thread_id, run_id):
        return _forward("GET", f"/threads/{thread_id}/runs/{run_id}")

    @app.route('/cancel-run/<thread_id>/<run_id>', methods=['POST'])
    def cancel_run(thread_id, run_id):
        return _forward("POST", f"/threads/{thread_id}/runs/{run_id}/cancel")

    @app.route('/submit-tool-outputs/<thread_id>/<run_id>', methods=['POST'])
    def submit_tool_outputs(thread_id, run_id):
        return _forward("POST", f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs", body=_json_body())

    @app.route('/list-run-steps/<thread_id>/<run_id>', methods=['GET'])
    def list_run_steps(thread_id, run_id):
        return _forward("GET", f"/threads/{thread_id}/runs/{run_id}/steps", params=query_params())

    @app.route('/retrieve-run-step/<thread_id>/<run_id>/<step_id>', methods=['GET'])
    def retrieve_run_step(thread_id, run_id, step_id):
        return _forward("GET", f"/threads/{thread_id}/runs/{run_id}/steps/{step_id}")

    @app.route('/stream-run/<thread_id>/<run_id>', methods=['GET', 'POST'])
    def stream_run(thread_id, run_id):
        g.upstream_path = f"/threads/{thread_id}/runs/{run_id}"
        streamer = RunStatusStreamer(
            _client(),
            interval=settings.run_poll_interval,
            request_id=g.request_id,
        )
        return Response(
            stream_with_context(streamer.iter_events(thread_id, run_id)),
            mimetype="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.route('/execute-tools/<thread_id>/<run_id>', methods=['POST'])
    def execute_tools(thread_id, run_id):
        payload = ExecuteToolsRequest.model_validate(_json_body())
        tool_outputs = state.tools.dispatch(payload.as_dicts())
        log_event(
            20,
            "tools_executed",
            request_id=g.request_id,
            thread_id=thread_id,
            run_id=run_id,
            tools=[call.function.name if call.function else None for call in payload.tool_calls],
        )
        return _forward(
            "POST",
            f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            body={"tool_outputs": tool_outputs},
        )

    # Vector stores
    @app.route('/create-vector-store', methods=['POST'])
    def create_vector_store():
        return _forward("POST", "/vector_stores", body=_json_body())

    @app.route('/list-vector-stores', methods=['GET'])
    def list_vector_stores():
        return _forward("GET", "/vector_stores", params=query_params())

    @app.route('/retrieve-vector-store/<vector_store_id>', methods=['GET'])
    def retrieve_vector_store(vector_store_id):
        return _forward("GET", f"/vector_stores/{vector_store_id}")

    @app.route('/update-vector-store/<vector_store_id>', methods=['PATCH'])
    def update_vector_store(vector_store_id):
        return _forward("POST", f"/vector_stores/{vector_store_id}", body=_json_body())

    @app.route('/delete-vector-store/<vector_store_id>', methods=['DELETE'])
    def delete_vector_store(vector_store_id):
        return _forward("DELETE", f"/vector_stores/{vector_store_id}")

    # Files
    @app.route('/upload-file', methods=['POST'])
    def upload_file():
        storage = request.files.get("file")
        if storage is None or not storage.filename:
            return error_response("No file uploaded", 400, param="file")
        allowed_types = get_upload_config()["allowed_types"]
        if storage.mimetype not in allowed_types:
            return error_response(
                f"Invalid file type. Allowed: {', '.join(allowed_types)}. Received: {storage.mimetype}",
                400,
                param="file",
            )
        max_bytes = state.limits.snapshot().max_file_bytes
        data = storage.stream.read(max_bytes + 1)
        if len(data) > max_bytes:
            return error_response(
                f"File too large. Limit is {max_bytes} bytes", 413, param="file"
            )
        purpose = request.form.get("purpose") or "assistants"
        g.upstream_path = "/files"
        result = _client().upload_file(storage.filename, data, storage.mimetype, purpose)
        log_event(
            20,
            "file_uploaded",
            request_id=g.request_id,
            filename=storage.filename,
            content_type=storage.mimetype,
            bytes=len(data),
            file_id=result.get("id"),
        )
        return jsonify(result)

    @app.route('/list-files', methods=['GET'])
    def list_files():
        return _forward("GET", "/files", params=query_params())

    @app.route('/retrieve-file/<file_id>', methods=['GET'])
    def retrieve_file(file_id):
        return _forward("GET", f"/files/{file_id}")

    @app.route('/delete-file/<file_id>', methods=['DELETE'])
    def delete_file(file_id):
        return _forward("DELETE", f"/files/{file_id}")

    @app.route('/retrieve-file-content/<file_id>', methods=['GET'])
    def retrieve_file_content(file_id):
        g.upstream_path = f"/files/{file_id}/content"
        content, content_type = _client().get_content(g.upstream_path)
        return Response(content, content_type=content_type)

    # Errors
    @app.errorhandler(openai.APIStatusError)
    def handle_upstream_status(err):
        _log_upstream_error(err, getattr(g, "request_id", ""), getattr(g, "upstream_path", None))
        status = err.status_code or 502
        return error_response(
            upstream_error_message(err),
            status,
            _UPSTREAM_ERROR_TYPES.get(status, "api_error"),
            code=getattr(err, "code", None),
        )

    @app.errorhandler(openai.APIConnectionError)
    def handle_upstream_connection(err):
        _log_upstream_error(err, getattr(g, "request_id", ""), getattr(g, "upstream_path", None))
        return error_response(f"Failed to connect to API: {err}", 502, "api_connection_error")

    @app.errorhandler(UpstreamPayloadError)
    def handle_upstream_payload(err):
        log_event(40, "upstream_payload_error", request_id=getattr(g, "request_id", ""), error=str(err))
        return error_response(str(err), 502, "api_error")

    @app.errorhandler(ValidationError)
    def handle_validation_error(err):
        return error_response(str(err), 400, "invalid_request_error")

    @app.errorhandler(404)
    def handle_not_found(error):
        return error_response("Not found", 404, "invalid_request_error")

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return error_response("Method not allowed", 405, "invalid_request_error")

    @app.errorhandler(413)
    def handle_payload_too_large(error):
        return error_response("Request body too large", 413, "invalid_request_error")

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        if isinstance(err, HTTPException):
            return error_response(err.description or err.name, err.code or 500, "invalid_request_error")
        log_event(40, "internal_error", request_id=getattr(g, "request_id", ""), path=request.path, error=str(err))
        return error_response(str(err) or "Internal Server Error", 500, "internal_error")
