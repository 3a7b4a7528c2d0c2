"""SSE watcher that turns run-status polling into a pushed event stream."""
import json
import time
from typing import Callable, Iterator, Optional, Protocol

import openai

from ..utils.logging import log_event

FAILED_STATUSES = ("failed", "cancelled", "expired")
DONE_FRAME = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class UpstreamPayloadError(RuntimeError):
    """Upstream answered, but not with something we can relay."""


class SinkClosed(Exception):
    """Raised by a sink that can no longer accept writes."""


class StreamSink(Protocol):
    def write(self, chunk: str) -> None: ...

    def close(self) -> None: ...


def sse_frame(event_type: str, content) -> str:
    payload = {"type": event_type, "content": content}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def extract_message_text(messages_payload) -> str:
    """Return the text of the newest message in a thread listing."""
    data = messages_payload.get("data") if isinstance(messages_payload, dict) else None
    if not data:
        raise UpstreamPayloadError("Thread has no messages to relay")
    latest = data[0] if isinstance(data[0], dict) else {}
    for block in latest.get("content") or []:
        if not isinstance(block, dict):
            continue
        if block.get("type", "text") != "text":
            continue
        text = block.get("text")
        if isinstance(text, dict) and isinstance(text.get("value"), str):
            return text["value"]
    raise UpstreamPayloadError(f"Message {latest.get('id', '')} has no text content")


def _log_stream_error(err, request_id: Optional[str], thread_id: str, run_id: str, polls: int):
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
        "run_stream_upstream_error",
        request_id=request_id or "",
        thread_id=thread_id,
        run_id=run_id,
        polls=polls,
        status=status,
        body=body,
        error=str(err),
    )


class RunStatusStreamer:
    """Polls one run at a fixed interval until it reaches a terminal status.

    The client reference is captured at construction, so rotating the gateway
    credential mid-stream does not affect this watcher. There is no overall
    timeout: a run that never finishes is polled until the consumer goes away.
    """

    def __init__(
        self,
        client,
        interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        request_id: Optional[str] = None,
    ):
        self._client = client
        self._interval = interval
        self._sleep = sleep
        self._request_id = request_id

    def iter_events(self, thread_id: str, run_id: str) -> Iterator[str]:
        """Yield SSE frames; closing the generator stops polling at once."""
        polls = 0
        terminal = None
        outcome = None
        log_event(20, "run_stream_start", request_id=self._request_id or "", thread_id=thread_id, run_id=run_id)
        try:
            while True:
                run = self._client.get_run(thread_id, run_id)
                polls += 1
                status = run.get("status")
                yield sse_frame("status", status)

                if status == "completed":
                    text = extract_message_text(self._client.list_messages(thread_id))
                    terminal = "message"
                    yield sse_frame("message", text)
                    break
                if status in FAILED_STATUSES:
                    terminal = "error"
                    yield sse_frame("error", f"Run {status}")
                    break

                self._sleep(self._interval)

            yield DONE_FRAME
            # Only a stream that delivered the sentinel counts as ended.
            outcome = terminal
        except openai.APIError as err:
            _log_stream_error(err, self._request_id, thread_id, run_id, polls)
            raise
        finally:
            log_event(
                20 if outcome else 30,
                "run_stream_end" if outcome else "run_stream_aborted",
                request_id=self._request_id or "",
                thread_id=thread_id,
                run_id=run_id,
                polls=polls,
                outcome=outcome,
            )

    def stream(self, thread_id: str, run_id: str, sink: StreamSink) -> None:
        """Write every frame to ``sink``; stop as soon as the sink rejects a write."""
        events = self.iter_events(thread_id, run_id)
        try:
            for frame in events:
                try:
                    sink.write(frame)
                except (SinkClosed, OSError) as exc:
                    log_event(
                        30,
                        "run_stream_disconnected",
                        request_id=self._request_id or "",
                        thread_id=thread_id,
                        run_id=run_id,
                        error=str(exc),
                    )
                    break
        finally:
            events.close()
            sink.close()
