"""Runtime-mutable gateway state: upstream client handle and limits."""
from dataclasses import dataclass, replace
import threading
from typing import Any, Callable, Optional


class ClientHandle:
    """Holds the current upstream client; replaced wholesale on credential change.

    Readers take a reference once and keep using it, so a swap never affects
    work already in flight.
    """

    def __init__(self, client: Any, factory: Callable[[str], Any]):
        self._lock = threading.Lock()
        self._client = client
        self._factory = factory

    def current(self) -> Any:
        with self._lock:
            return self._client

    def replace(self, client: Any) -> Any:
        with self._lock:
            previous, self._client = self._client, client
        return previous

    def rotate(self, api_key: str) -> Any:
        """Build a client for ``api_key`` and swap it in."""
        client = self._factory(api_key)
        self.replace(client)
        return client


@dataclass(frozen=True)
class LimitsSnapshot:
    window_ms: int
    max_requests: int
    max_file_bytes: int

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    @property
    def max_file_mb(self) -> float:
        return self.max_file_bytes / (1024 * 1024)


class RuntimeLimits:
    """Rate-limit and upload-size limits adjustable through admin endpoints."""

    def __init__(self, window_ms: int, max_requests: int, max_file_bytes: int):
        self._lock = threading.Lock()
        self._snapshot = LimitsSnapshot(window_ms, max_requests, max_file_bytes)

    def snapshot(self) -> LimitsSnapshot:
        with self._lock:
            return self._snapshot

    def update_rate_limit(self, window_ms: int, max_requests: int) -> LimitsSnapshot:
        with self._lock:
            self._snapshot = replace(self._snapshot, window_ms=window_ms, max_requests=max_requests)
            return self._snapshot

    def update_file_size(self, max_file_bytes: int) -> LimitsSnapshot:
        with self._lock:
            self._snapshot = replace(self._snapshot, max_file_bytes=max_file_bytes)
            return self._snapshot


@dataclass
class GatewayState:
    clients: ClientHandle
    limits: RuntimeLimits
    tools: Optional[Any] = None
