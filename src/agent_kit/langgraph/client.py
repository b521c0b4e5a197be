"""LangGraph Platform REST client.

Mirrors the server's LangGraph surface through three namespaces, in the
shape of the LangGraph SDK:

    >>> async with LangGraphClient("http://localhost:3000") as client:
    ...     thread = await client.threads.create()
    ...     state = await client.runs.wait(thread["thread_id"], input={"text": "hi"})
    ...     async for part in client.runs.stream(None, input={"text": "hi"}):
    ...         print(part.event, part.data)

Resources are returned as plain JSON dictionaries.
"""

import json
import logging
from typing import Any, AsyncIterator, NamedTuple

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class LangGraphAPIError(Exception):
    """Non-2xx answer (or transport failure) from a LangGraph server."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class StreamPart(NamedTuple):
    """One named SSE event of a run stream."""

    event: str
    data: Any


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


def _run_body(
    assistant_id: str | None,
    input: Any,
    metadata: dict[str, Any] | None,
    **extra: Any,
) -> dict[str, Any]:
    body: dict[str, Any] = {"input": input}
    if assistant_id is not None:
        body["assistant_id"] = assistant_id
    if metadata is not None:
        body["metadata"] = metadata
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


class _HttpTransport:
    """Shared request plumbing of the namespaces."""

    def __init__(self, http: httpx.AsyncClient, url: str, headers: dict[str, str]):
        self._http = http
        self._url = url
        self._headers = headers

    async def request(self, method: str, path: str, json_body: Any = None) -> Any:
        url = f"{self._url}{path}"
        try:
            response = await self._http.request(
                method, url, json=json_body, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.error("LangGraph request failed: url=%s error=%s", url, exc)
            raise LangGraphAPIError(0, f"Request to {url} failed: {exc}") from exc
        if response.is_error:
            raise LangGraphAPIError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def stream(self, path: str, json_body: Any) -> AsyncIterator[StreamPart]:
        url = f"{self._url}{path}"
        headers = {**self._headers, "Accept": "text/event-stream"}
        request = self._http.build_request("POST", url, json=json_body, headers=headers)
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error("LangGraph stream failed: url=%s error=%s", url, exc)
            raise LangGraphAPIError(0, f"Request to {url} failed: {exc}") from exc

        try:
            if response.is_error:
                await response.aread()
                raise LangGraphAPIError(response.status_code, _error_message(response))

            event: str | None = None
            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if line.startswith("event:"):
                    event = line[len("event:") :].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[len("data:") :].strip())
                elif not line and event is not None:
                    yield StreamPart(event, _decode_data(data_lines))
                    event, data_lines = None, []
            if event is not None:
                yield StreamPart(event, _decode_data(data_lines))
        finally:
            await response.aclose()


def _decode_data(lines: list[str]) -> Any:
    raw = "\n".join(lines)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class AssistantsClient:
    """``/assistants`` endpoints."""

    def __init__(self, transport: _HttpTransport):
        self._transport = transport

    async def search(
        self,
        metadata: dict[str, Any] | None = None,
        graph_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"limit": limit, "offset": offset}
        if metadata is not None:
            body["metadata"] = metadata
        if graph_id is not None:
            body["graph_id"] = graph_id
        return await self._transport.request("POST", "/assistants/search", body)

    async def get(self, assistant_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", f"/assistants/{assistant_id}")


class ThreadsClient:
    """``/threads`` endpoints."""

    def __init__(self, transport: _HttpTransport):
        self._transport = transport

    async def create(
        self,
        thread_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        if_exists: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if thread_id is not None:
            body["thread_id"] = thread_id
        if metadata is not None:
            body["metadata"] = metadata
        if if_exists is not None:
            body["if_exists"] = if_exists
        return await self._transport.request("POST", "/threads", body)

    async def search(
        self,
        metadata: dict[str, Any] | None = None,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"limit": limit, "offset": offset}
        if metadata is not None:
            body["metadata"] = metadata
        if status is not None:
            body["status"] = status
        return await self._transport.request("POST", "/threads/search", body)

    async def get(self, thread_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", f"/threads/{thread_id}")

    async def delete(self, thread_id: str) -> None:
        await self._transport.request("DELETE", f"/threads/{thread_id}")

    async def get_state(self, thread_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", f"/threads/{thread_id}/state")


class RunsClient:
    """Run endpoints, on a thread or stateless (``thread_id=None``)."""

    def __init__(self, transport: _HttpTransport):
        self._transport = transport

    async def create(
        self,
        thread_id: str,
        assistant_id: str | None = None,
        input: Any = None,
        metadata: dict[str, Any] | None = None,
        multitask_strategy: str | None = None,
    ) -> dict[str, Any]:
        body = _run_body(
            assistant_id, input, metadata, multitask_strategy=multitask_strategy
        )
        return await self._transport.request("POST", f"/threads/{thread_id}/runs", body)

    async def list(self, thread_id: str) -> list[dict[str, Any]]:
        return await self._transport.request("GET", f"/threads/{thread_id}/runs")

    async def get(self, thread_id: str, run_id: str) -> dict[str, Any]:
        return await self._transport.request(
            "GET", f"/threads/{thread_id}/runs/{run_id}"
        )

    async def wait(
        self,
        thread_id: str | None,
        assistant_id: str | None = None,
        input: Any = None,
        metadata: dict[str, Any] | None = None,
        on_completion: str | None = None,
    ) -> dict[str, Any]:
        """Run to completion and return the resulting thread state."""
        body = _run_body(assistant_id, input, metadata, on_completion=on_completion)
        path = f"/threads/{thread_id}/runs/wait" if thread_id else "/runs/wait"
        return await self._transport.request("POST", path, body)

    async def stream(
        self,
        thread_id: str | None,
        assistant_id: str | None = None,
        input: Any = None,
        metadata: dict[str, Any] | None = None,
        on_completion: str | None = None,
    ) -> AsyncIterator[StreamPart]:
        """Run and yield its ``metadata``/``messages``/``values``/``updates`` parts."""
        body = _run_body(assistant_id, input, metadata, on_completion=on_completion)
        path = f"/threads/{thread_id}/runs/stream" if thread_id else "/runs/stream"
        async for part in self._transport.stream(path, body):
            yield part


class LangGraphClient:
    """Client for a LangGraph-compatible server.

    Args:
        url: Base URL of the server; a trailing slash is ignored.
        api_key: Optional key sent as ``X-Api-Key``.
        headers: Extra headers sent with every request.
        timeout: Request timeout in seconds.
        transport: Optional ``httpx`` transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        if api_key:
            request_headers["X-Api-Key"] = api_key
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        http_transport = _HttpTransport(self._http, self.url, request_headers)
        self.assistants = AssistantsClient(http_transport)
        self.threads = ThreadsClient(http_transport)
        self.runs = RunsClient(http_transport)
        self._transport = http_transport

    async def __aenter__(self) -> "LangGraphClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def info(self) -> dict[str, Any]:
        return await self._transport.request("GET", "/info")

    async def ok(self) -> bool:
        body = await self._transport.request("GET", "/ok")
        return bool(body and body.get("ok"))
