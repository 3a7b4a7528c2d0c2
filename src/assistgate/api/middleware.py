"""Flask middleware registration for rate limiting, headers and request logging."""
import time
import uuid
from flask import Response, g, request

from ..core.config import get_cors_config, get_logging_config
from ..utils.http import error_response, get_client_ip
from ..utils.logging import log_event, redact_headers, redact_payload, should_log_request

# Admin and probe endpoints stay reachable even when a client is throttled.
RATE_LIMIT_EXEMPT_PATHS = (
    "/healthz",
    "/version",
    "/api-defaults",
    "/update-rate-limit",
    "/update-file-size",
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def _request_detail(log_cfg, response):
    detail = {}
    if log_cfg.get("include_headers"):
        detail["headers"] = redact_headers(dict(request.headers), log_cfg.get("redact_headers", []))
    if log_cfg.get("include_body"):
        if request.is_json:
            body = request.get_json(silent=True)
            detail["body"] = redact_payload(body, log_cfg.get("redact_keys", []))
        elif request.files:
            detail["body"] = {
                "content_type": request.mimetype,
                "content_length": request.content_length,
                "form": redact_payload(
                    {key: values for key, values in request.form.lists()},
                    log_cfg.get("redact_keys", []),
                ),
                "files": [
                    {"field": key, "filename": storage.filename, "content_type": storage.mimetype}
                    for key, storage in request.files.items(multi=True)
                ],
            }
        if response.mimetype == "text/event-stream" or response.is_streamed:
            detail["response"] = "[stream omitted]"
        elif response.mimetype == "application/json":
            text = response.get_data(as_text=True)
            if len(text) > 4096:
                text = text[:4096] + "...(truncated)"
            detail["response"] = text
        else:
            detail["response"] = "[binary omitted]"
    return detail


def register_middlewares(app, state, rate_limiter):
    """Register Flask middlewares on the app."""

    @app.before_request
    def attach_request_context():
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
        g.request_start = time.time()

    # Runs before dispatch, so preflights to any path get 204 while other
    # methods on unknown paths still fall through to the 404 handler.
    @app.before_request
    def answer_preflight():
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    @app.before_request
    def enforce_rate_limit():
        if request.path in RATE_LIMIT_EXEMPT_PATHS:
            return None
        limits = state.limits.snapshot()
        allowed, remaining, reset_seconds = rate_limiter.allow(
            get_client_ip(), limits.max_requests, limits.window_seconds
        )
        g.rate_limit_limit = limits.max_requests
        g.rate_limit_remaining = remaining
        g.rate_limit_reset = reset_seconds
        if not allowed:
            log_event(30, "rate_limited", request_id=g.request_id, client_ip=get_client_ip(), path=request.path)
            response, status = error_response(
                "Too many requests, please try again later.", 429, "rate_limit_error"
            )
            response.headers["Retry-After"] = str(reset_seconds or 0)
            return response, status
        return None

    @app.after_request
    def add_headers(response):
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        for key, value in SECURITY_HEADERS.items():
            response.headers.setdefault(key, value)
        if getattr(g, "rate_limit_limit", None):
            response.headers["X-RateLimit-Limit"] = str(g.rate_limit_limit)
            response.headers["X-RateLimit-Remaining"] = str(g.rate_limit_remaining)
            response.headers["X-RateLimit-Reset"] = str(g.rate_limit_reset)

        cors = get_cors_config()
        origins = cors.get("origins", [])
        request_origin = request.headers.get("Origin")
        allow_origin = None
        if "*" in origins:
            allow_origin = "*"
        elif request_origin and request_origin in origins:
            allow_origin = request_origin
            response.headers["Vary"] = "Origin"
        if allow_origin:
            response.headers["Access-Control-Allow-Origin"] = allow_origin
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Request-ID"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            if cors.get("allow_credentials"):
                response.headers["Access-Control-Allow-Credentials"] = "true"

        if request.path == "/healthz" or not should_log_request(response.status_code):
            return response
        latency_ms = None
        if hasattr(g, "request_start"):
            latency_ms = int((time.time() - g.request_start) * 1000)
        log_event(
            20,
            "request",
            request_id=getattr(g, "request_id", ""),
            method=request.method,
            path=request.path,
            status=response.status_code,
            latency_ms=latency_ms,
            upstream_path=getattr(g, "upstream_path", None),
            client_ip=get_client_ip(),
        )
        log_cfg = get_logging_config()
        if log_cfg.get("include_headers") or log_cfg.get("include_body"):
            detail = _request_detail(log_cfg, response)
            if detail:
                log_event(20, "request_detail", request_id=getattr(g, "request_id", ""), **detail)
        return response
