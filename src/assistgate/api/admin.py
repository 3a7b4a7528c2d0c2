"""Administrative endpoints: credential rotation, runtime limits and defaults."""
import json
import time

from flask import g, jsonify, request

from ..core.config import get_config_errors
from ..utils.http import error_response
from ..utils.logging import log_event
from .schemas import FileSizeUpdate, RateLimitUpdate, SetApiKeyRequest


def _pretty(payload) -> str:
    return json.dumps(payload, indent=2)


def _sample_bodies(default_ids):
    return {
        "createAssistant": _pretty(
            {
                "name": "My Assistant",
                "instructions": "You are a helpful assistant.",
                "model": "gpt-4o",
            }
        ),
        "createThread": _pretty({"messages": [{"role": "user", "content": "Hello, assistant!"}]}),
        "createMessage": _pretty({"role": "user", "content": "Hello, how are you?"}),
        "createRun": _pretty({"assistant_id": default_ids.get("assistantId") or "your_assistant_id_here"}),
        "createVectorStore": _pretty({"name": "My Vector Store", "description": "A sample vector store"}),
    }


def _rate_limit_view(limits):
    return {"windowMs": limits.window_ms, "max": limits.max_requests}


def register_admin_routes(app, settings, state, rate_limiter):
    """Register credential, limit and probe endpoints on the app."""

    @app.route('/set-api-key', methods=['POST'])
    def set_api_key():
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict) or not data.get("apiKey"):
            return error_response("API key is required", 400, param="apiKey")
        payload = SetApiKeyRequest.model_validate(data)
        state.clients.rotate(payload.apiKey)
        log_event(20, "api_key_rotated", request_id=g.request_id)
        return jsonify({"message": "API key set successfully"})

    @app.route('/update-rate-limit', methods=['POST'])
    def update_rate_limit():
        payload = RateLimitUpdate.model_validate(request.get_json(silent=True) or {})
        limits = state.limits.update_rate_limit(payload.windowMs, payload.max)
        rate_limiter.reset()
        log_event(20, "rate_limit_updated", request_id=g.request_id, **_rate_limit_view(limits))
        return jsonify({"message": "Rate limit updated successfully", "currentRateLimit": _rate_limit_view(limits)})

    @app.route('/update-file-size', methods=['POST'])
    def update_file_size():
        payload = FileSizeUpdate.model_validate(request.get_json(silent=True) or {})
        limits = state.limits.update_file_size(int(payload.fileSize * 1024 * 1024))
        # Werkzeug rejects bodies above MAX_CONTENT_LENGTH before the upload handler runs.
        app.config["MAX_CONTENT_LENGTH"] = max(settings.max_content_length, limits.max_file_bytes + 1024 * 1024)
        log_event(20, "file_size_updated", request_id=g.request_id, max_file_bytes=limits.max_file_bytes)
        return jsonify(
            {
                "message": "File size limit updated successfully",
                "currentFileSize": limits.max_file_bytes,
            }
        )

    @app.route('/api-defaults', methods=['GET'])
    def api_defaults():
        limits = state.limits.snapshot()
        defaults = dict(settings.default_ids)
        defaults["defaultBody"] = _sample_bodies(settings.default_ids)
        defaults["rateLimit"] = _rate_limit_view(limits)
        defaults["fileSize"] = limits.max_file_mb
        return jsonify(defaults)

    @app.route('/healthz', methods=['GET'])
    def health():
        errors = get_config_errors()
        status = "ok" if not errors else "warn"
        if request.args.get("verbose") != "1":
            return jsonify({"status": status})
        return jsonify(
            {
                "status": status,
                "uptime_seconds": int(time.time() - app.config.get("APP_STARTED_AT", time.time())),
                "version": settings.app_version,
                "config_errors": errors,
                "tools": state.tools.names() if state.tools else [],
            }
        )

    @app.route('/version', methods=['GET'])
    def version():
        return jsonify({"version": settings.app_version})
