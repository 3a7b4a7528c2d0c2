"""Environment-driven settings for the assistants gateway."""
from dataclasses import dataclass, field
from functools import lru_cache
import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "https://api.openai.com/v1"


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    app_version: str = "0.1.0"
    openai_api_key: str = ""
    openai_base_url: str = DEFAULT_BASE_URL
    upstream_timeout: float = 60.0
    upstream_max_retries: int = 2
    run_poll_interval: float = 1.0
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_max: int = 100
    max_file_size_mb: float = 10.0
    max_body_mb: float = 10.0
    port: int = 3000
    strict_config: bool = False
    log_dir: str | None = None
    default_ids: dict = field(default_factory=dict)

    @property
    def max_content_length(self) -> int:
        return int(self.max_body_mb * 1024 * 1024)

    @property
    def max_file_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)


@lru_cache
def get_settings() -> Settings:
    """Load settings from environment variables."""
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL),
        upstream_timeout=float(os.getenv("UPSTREAM_TIMEOUT", "60")),
        upstream_max_retries=int(os.getenv("UPSTREAM_MAX_RETRIES", "2")),
        run_poll_interval=float(os.getenv("RUN_POLL_INTERVAL", "1.0")),
        rate_limit_window_ms=int(os.getenv("RATE_LIMIT_WINDOW_MS", str(15 * 60 * 1000))),
        rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", "100")),
        max_file_size_mb=float(os.getenv("MAX_FILE_SIZE_MB", "10")),
        max_body_mb=float(os.getenv("MAX_BODY_MB", "10")),
        port=int(os.getenv("PORT", "3000")),
        strict_config=_env_flag("STRICT_CONFIG"),
        log_dir=os.getenv(
            "LOG_DIR",
            os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "..", "logs")),
        ),
        default_ids={
            "assistantId": os.getenv("DEFAULT_ASSISTANT_ID", ""),
            "threadId": os.getenv("DEFAULT_THREAD_ID", ""),
            "messageId": os.getenv("DEFAULT_MESSAGE_ID", ""),
            "runId": os.getenv("DEFAULT_RUN_ID", ""),
            "fileId": os.getenv("DEFAULT_FILE_ID", ""),
            "vectorStoreId": os.getenv("DEFAULT_VECTOR_STORE_ID", ""),
        },
    )
