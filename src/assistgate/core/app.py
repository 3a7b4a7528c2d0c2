"""Application factory and entrypoint."""
import os
import time

from flask import Flask

from .config import get_config_errors, get_server_port
from .ratelimit import RateLimiter
from .settings import Settings, get_settings
from .state import ClientHandle, GatewayState, RuntimeLimits
from ..api.admin import register_admin_routes
from ..api.handlers import register_routes
from ..api.middleware import register_middlewares
from ..services.assistants_client import AssistantsClient
from ..tools.registry import build_default_registry
from ..utils.logging import log_event, setup_logging


def build_state(settings: Settings, client_factory=None, tools=None) -> GatewayState:
    """Create the runtime state shared by all request handlers."""
    if client_factory is None:
        def client_factory(api_key):
            return AssistantsClient.from_settings(settings, api_key=api_key)

    clients = ClientHandle(client_factory(settings.openai_api_key), client_factory)
    limits = RuntimeLimits(
        window_ms=settings.rate_limit_window_ms,
        max_requests=settings.rate_limit_max,
        max_file_bytes=settings.max_file_bytes,
    )
    return GatewayState(clients=clients, limits=limits, tools=tools or build_default_registry())


def create_app(settings: Settings | None = None, client_factory=None, tools=None) -> Flask:
    """Create and configure the Flask application."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    app = Flask(__name__)
    state = build_state(settings, client_factory=client_factory, tools=tools)
    app.config["MAX_CONTENT_LENGTH"] = max(settings.max_content_length, settings.max_file_bytes + 1024 * 1024)
    app.config["APP_STARTED_AT"] = time.time()
    app.config["SETTINGS"] = settings
    app.extensions["assistgate"] = state

    rate_limiter = RateLimiter()
    register_middlewares(app, state, rate_limiter)
    register_admin_routes(app, settings, state, rate_limiter)
    register_routes(app, settings, state)
    return app


def run() -> None:
    """Run the threaded Flask server; each stream holds its own worker thread."""
    app = create_app()
    settings = app.config["SETTINGS"]

    config_errors = get_config_errors()
    if settings.strict_config and config_errors:
        for err in config_errors:
            log_event(40, "config_error", error=err)
        raise SystemExit("Strict config enabled; fix config.json errors.")
    if not settings.openai_api_key:
        log_event(30, "api_key_missing", hint="set OPENAI_API_KEY or POST /set-api-key")

    port = get_server_port() or settings.port
    debug = os.getenv("FLASK_DEBUG", "").lower() in ("1", "true", "yes", "on")
    log_event(20, "server_start", port=port, version=settings.app_version)
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    run()
