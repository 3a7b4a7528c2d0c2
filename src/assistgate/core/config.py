"""Optional config.json loader for server, CORS, logging and upload rules."""
import json
import logging
import os

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
DEFAULT_CONFIG_PATH = os.path.join(BASE_DIR, "config.json")

DEFAULT_ALLOWED_TYPES = [
    "image/jpeg",
    "image/png",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/json",
]

_CONFIG_CACHE = {
    "path": None,
    "config": None,
    "mtime": None,
}

logger = logging.getLogger("assistgate.config")


def _config_path() -> str:
    return os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)


def _empty_config():
    return {"server": {}, "cors": {}, "logging": {}, "uploads": {}, "errors": []}


def load_config():
    """Load and cache config.json with a simple mtime check."""
    path = _config_path()
    try:
        mtime = os.path.getmtime(path)
    except FileNotFoundError:
        return _empty_config()

    cached = _CONFIG_CACHE["config"]
    if cached is not None and _CONFIG_CACHE["path"] == path and _CONFIG_CACHE["mtime"] == mtime:
        return cached

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        config = _empty_config()
        config["errors"] = [f"config.json unreadable: {exc}"]
        return config

    if not isinstance(raw, dict):
        raw = {}

    config = {
        "server": raw.get("server", {}) if isinstance(raw.get("server"), dict) else {},
        "cors": raw.get("cors", {}) if isinstance(raw.get("cors"), dict) else {},
        "logging": raw.get("logging", {}) if isinstance(raw.get("logging"), dict) else {},
        "uploads": raw.get("uploads", {}) if isinstance(raw.get("uploads"), dict) else {},
    }

    config_errors = validate_config(config)
    config["errors"] = config_errors
    if config_errors:
        logger.warning("Config validation warnings: %s", "; ".join(config_errors))

    _CONFIG_CACHE["path"] = path
    _CONFIG_CACHE["config"] = config
    _CONFIG_CACHE["mtime"] = mtime
    return config


def _normalize_cors(cors):
    """Normalize CORS configuration to a consistent dict."""
    if not isinstance(cors, dict):
        return {"origins": [], "allow_credentials": False}
    origins = cors.get("origins", [])
    if isinstance(origins, str):
        origins = [item.strip() for item in origins.split(",") if item.strip()]
    elif isinstance(origins, list):
        origins = [item for item in origins if isinstance(item, str) and item.strip()]
    else:
        origins = []
    allow_credentials = bool(cors.get("allow_credentials", False))
    return {"origins": origins, "allow_credentials": allow_credentials}


def _normalize_logging(logging_cfg):
    """Normalize logging configuration."""
    if not isinstance(logging_cfg, dict):
        logging_cfg = {}
    sample_rate = logging_cfg.get("sample_rate", 1.0)
    try:
        sample_rate = float(sample_rate)
    except (TypeError, ValueError):
        sample_rate = 1.0
    sample_rate = max(0.0, min(1.0, sample_rate))
    redact_headers = logging_cfg.get("redact_headers", ["authorization", "x-api-key", "api-key"])
    redact_keys = logging_cfg.get("redact_keys", ["apiKey", "api_key"])
    if isinstance(redact_headers, str):
        redact_headers = [item.strip() for item in redact_headers.split(",") if item.strip()]
    if isinstance(redact_keys, str):
        redact_keys = [item.strip() for item in redact_keys.split(",") if item.strip()]
    if not isinstance(redact_headers, list):
        redact_headers = []
    if not isinstance(redact_keys, list):
        redact_keys = []
    return {
        "sample_rate": sample_rate,
        "include_headers": bool(logging_cfg.get("include_headers", False)),
        "include_body": bool(logging_cfg.get("include_body", False)),
        "redact_headers": redact_headers,
        "redact_keys": redact_keys,
    }


def _normalize_uploads(uploads):
    """Normalize upload rules; fall back to the default MIME allow-list."""
    if not isinstance(uploads, dict):
        return {"allowed_types": list(DEFAULT_ALLOWED_TYPES)}
    allowed = uploads.get("allowed_types")
    if isinstance(allowed, str):
        allowed = [item.strip() for item in allowed.split(",") if item.strip()]
    if not isinstance(allowed, list) or not allowed:
        allowed = list(DEFAULT_ALLOWED_TYPES)
    return {"allowed_types": [item for item in allowed if isinstance(item, str) and item.strip()]}


def validate_config(config):
    """Validate config shape; return list of warnings."""
    errors = []

    server = config.get("server", {})
    if isinstance(server, dict) and "port" in server:
        try:
            port = int(server.get("port"))
            if port <= 0 or port > 65535:
                errors.append("server.port must be between 1 and 65535")
        except (TypeError, ValueError):
            errors.append("server.port must be an integer")

    cors = config.get("cors", {})
    if isinstance(cors, dict) and "origins" in cors and not isinstance(cors["origins"], (list, str)):
        errors.append("cors.origins must be a list or comma-separated string")

    logging_cfg = config.get("logging", {})
    if isinstance(logging_cfg, dict) and "sample_rate" in logging_cfg:
        try:
            rate = float(logging_cfg["sample_rate"])
            if not (0.0 <= rate <= 1.0):
                errors.append("logging.sample_rate must be between 0 and 1")
        except (TypeError, ValueError):
            errors.append("logging.sample_rate must be a number")

    uploads = config.get("uploads", {})
    if isinstance(uploads, dict) and "allowed_types" in uploads:
        if not isinstance(uploads["allowed_types"], (list, str)):
            errors.append("uploads.allowed_types must be a list or comma-separated string")

    return errors


def get_config_errors():
    """Return validation warnings for current config."""
    config = load_config()
    return config.get("errors", [])


def get_server_port():
    """Return server port from config.json, if set."""
    config = load_config()
    port = config.get("server", {}).get("port")
    try:
        return int(port)
    except (TypeError, ValueError):
        return None


def get_cors_config():
    """Return normalized CORS config."""
    return _normalize_cors(load_config().get("cors", {}))


def get_logging_config():
    """Return normalized logging config."""
    return _normalize_logging(load_config().get("logging", {}))


def get_upload_config():
    """Return normalized upload rules."""
    return _normalize_uploads(load_config().get("uploads", {}))
