"""HTTP helpers and error responses."""
from flask import jsonify, request


def get_client_ip() -> str:
    """Resolve client IP with basic X-Forwarded-For support."""
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr or "unknown"


def error_response(message: str, status: int = 400, error_type: str = "invalid_request_error", param=None, code=None):
    """Return OpenAI-style error payload."""
    payload = {
        "error": {
            "message": message,
            "type": error_type,
            "param": param,
            "code": code,
        }
    }
    return jsonify(payload), status


def upstream_error_message(err) -> str:
    """Pull the upstream error message out of an SDK status error."""
    body = getattr(err, "body", None)
    if isinstance(body, dict):
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        message = inner.get("message")
        if isinstance(message, str) and message:
            return message
    return getattr(err, "message", None) or str(err)


def query_params() -> dict:
    """Flatten request args into a dict suitable for upstream query params."""
    return {key: value for key, value in request.args.items()}
