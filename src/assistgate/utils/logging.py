"""Structured logging helpers."""
import json
import logging
import os
import random
import sys
import time
from logging.handlers import RotatingFileHandler

from ..core.config import get_logging_config

logger = logging.getLogger("assistgate")


def _file_logging_enabled() -> bool:
    return os.getenv("LOG_TO_FILE", "True").lower() in ("1", "true", "yes", "on")


def _build_rotating_handler(log_dir: str, filename: str) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    max_mb = float(os.getenv("LOG_FILE_MAX_MB", "10"))
    backup_count = max(1, int(os.getenv("LOG_FILE_BACKUPS", "5")))
    max_bytes = max(1, int(max_mb * 1024 * 1024))
    handler = RotatingFileHandler(
        os.path.join(log_dir, filename),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(level: str, log_dir: str | None = None) -> None:
    """Configure root logging level and handlers."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stdout)]
    resolved_dir = log_dir or os.getenv("LOG_DIR")
    if resolved_dir and _file_logging_enabled():
        try:
            handlers.append(_build_rotating_handler(resolved_dir, "assistgate.log"))
        except OSError as exc:
            print(f"[assistgate] file logging disabled: {exc}", file=sys.stderr)
    logging.basicConfig(level=numeric, handlers=handlers, force=True)


def log_event(level: int, message: str, **fields) -> None:
    """Emit a structured log line."""
    payload = {"message": message, "ts": int(time.time())}
    payload.update(fields)
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def redact_headers(headers, redact_list):
    """Return headers dict with sensitive keys masked."""
    redact_set = {item.lower() for item in redact_list}
    return {key: ("***" if key.lower() in redact_set else value) for key, value in headers.items()}


def redact_payload(payload, redact_keys):
    """Recursively mask sensitive keys in JSON-like payloads."""
    if isinstance(payload, dict):
        return {
            key: ("***" if key in redact_keys else redact_payload(value, redact_keys))
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact_payload(item, redact_keys) for item in payload]
    return payload


def should_log_request(status_code: int) -> bool:
    """Apply sampling rules; always log errors."""
    if status_code >= 400:
        return True
    sample_rate = get_logging_config().get("sample_rate", 1.0)
    return random.random() <= sample_rate
