"""Upstream assistants API client built on the OpenAI SDK."""
from typing import Any, BinaryIO, Optional, Tuple, Union

import httpx
import openai

ASSISTANTS_BETA_HEADER = {"OpenAI-Beta": "assistants=v2"}


def create_client(api_key: str, base_url: Optional[str], timeout: float, max_retries: int) -> openai.OpenAI:
    """Create a configured OpenAI client with the assistants beta header."""
    kwargs = {
        "api_key": api_key,
        "timeout": timeout,
        "max_retries": max_retries,
        "default_headers": dict(ASSISTANTS_BETA_HEADER),
    }
    if base_url:
        kwargs["base_url"] = base_url
    return openai.OpenAI(**kwargs)


class AssistantsClient:
    """Thin JSON pass-through over the assistants, threads, runs and files APIs.

    Non-2xx responses raise ``openai.APIStatusError`` and transport failures
    raise ``openai.APIConnectionError``; callers decide how to surface them.
    """

    def __init__(self, client: openai.OpenAI):
        self._client = client

    @classmethod
    def from_settings(cls, settings, api_key: Optional[str] = None) -> "AssistantsClient":
        key = settings.openai_api_key if api_key is None else api_key
        # The SDK refuses to build without a key; an empty one still fails upstream with 401.
        client = create_client(
            api_key=key or "missing-api-key",
            base_url=settings.openai_base_url,
            timeout=settings.upstream_timeout,
            max_retries=settings.upstream_max_retries,
        )
        return cls(client)

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def _send(self, method: str, path: str, body: Any = None, params: Optional[dict] = None) -> httpx.Response:
        options = {"params": params} if params else {}
        method = method.upper()
        if method == "GET":
            return self._client.get(path, cast_to=httpx.Response, options=options)
        if method == "POST":
            return self._client.post(path, cast_to=httpx.Response, body=body, options=options)
        if method == "DELETE":
            return self._client.delete(path, cast_to=httpx.Response, body=body, options=options)
        raise ValueError(f"Unsupported upstream method: {method}")

    def request(self, method: str, path: str, body: Any = None, params: Optional[dict] = None) -> Union[dict, list]:
        """Call ``path`` upstream and return the decoded JSON body."""
        return self._send(method, path, body=body, params=params).json()

    def get_content(self, path: str) -> Tuple[bytes, str]:
        """Fetch a raw body, e.g. file content, with its content type."""
        response = self._send("GET", path)
        return response.content, response.headers.get("Content-Type", "application/octet-stream")

    def get_run(self, thread_id: str, run_id: str) -> dict:
        return self.request("GET", f"/threads/{thread_id}/runs/{run_id}")

    def list_messages(self, thread_id: str, params: Optional[dict] = None) -> dict:
        """List thread messages; upstream orders them newest first."""
        return self.request("GET", f"/threads/{thread_id}/messages", params=params)

    def upload_file(self, filename: str, data: Union[bytes, BinaryIO], content_type: str, purpose: str) -> dict:
        file_object = self._client.files.create(file=(filename, data, content_type), purpose=purpose)
        return file_object.model_dump()
