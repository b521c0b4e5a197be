"""A2A protocol client.

Async client for remote A2A agents built on ``httpx``. Requests and
responses go through :mod:`agent_kit.a2a.wire`, so callers only deal with
the internal models.

Example:
    >>> async with A2AClient("http://localhost:3000") as client:
    ...     card = await client.get_agent_card()
    ...     task = await client.send_message(text_message("user", "Hello"))
"""

import itertools
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, TypedDict

import httpx

from agent_kit.a2a.schemas import AgentCard, JsonRpcErrorCode
from agent_kit.a2a.wire import (
    KIND_MESSAGE,
    decode_event,
    decode_message,
    decode_task,
    encode_message,
)
from agent_kit.models import Message, Task, TaskEvent, TaskState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_VERSION = "1.0"


class ClientAuth(TypedDict, total=False):
    """Credentials attached to every request."""

    type: Literal["bearer", "basic", "apiKey"]
    credentials: str
    header_name: str  # apiKey only, default X-API-Key


# ============================================================================
# Errors
# ============================================================================


class A2AError(Exception):
    """Error reported by a remote agent (or by the transport)."""

    def __init__(
        self,
        message: str,
        code: int = JsonRpcErrorCode.INTERNAL_ERROR,
        data: Any | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @property
    def retryable(self) -> bool:
        """Advisory hint that resubmitting the request may succeed."""
        return isinstance(self.data, dict) and self.data.get("retryable") is True

    @classmethod
    def from_json_rpc_error(cls, error: dict[str, Any]) -> "A2AError":
        """Build the most specific error class for a JSON-RPC error object."""
        code = error.get("code", JsonRpcErrorCode.INTERNAL_ERROR)
        message = error.get("message", "Unknown error")
        data = error.get("data")
        specific = _ERRORS_BY_CODE.get(code)
        if specific is not None:
            return specific(message, data=data)
        return cls(message, code, data)


class TaskNotFoundError(A2AError):
    """The requested task does not exist."""

    def __init__(self, message: str = "Task not found", data: Any | None = None):
        super().__init__(message, JsonRpcErrorCode.TASK_NOT_FOUND, data)


class AuthenticationRequiredError(A2AError):
    """The agent requires credentials."""

    def __init__(
        self, message: str = "Authentication required", data: Any | None = None
    ):
        super().__init__(message, JsonRpcErrorCode.AUTHENTICATION_REQUIRED, data)


class VersionNotSupportedError(A2AError):
    """The agent does not speak the requested protocol version."""

    def __init__(
        self, message: str = "A2A version not supported", data: Any | None = None
    ):
        super().__init__(message, JsonRpcErrorCode.VERSION_NOT_SUPPORTED, data)


_ERRORS_BY_CODE: dict[int, type[A2AError]] = {
    JsonRpcErrorCode.TASK_NOT_FOUND: TaskNotFoundError,
    JsonRpcErrorCode.AUTHENTICATION_REQUIRED: AuthenticationRequiredError,
    JsonRpcErrorCode.VERSION_NOT_SUPPORTED: VersionNotSupportedError,
}


@dataclass
class TaskPage:
    """One page of ``tasks/list`` results."""

    tasks: list[Task]
    next_page_token: str | None = None


# ============================================================================
# Client
# ============================================================================


class A2AClient:
    """Client for one A2A agent.

    Args:
        url: Base URL of the agent; a trailing slash is ignored.
        version: Value sent in the ``A2A-Version`` header.
        auth: Optional credentials (bearer, basic or API key).
        headers: Extra headers sent with every request.
        timeout: Request timeout in seconds.
        transport: Optional ``httpx`` transport (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        version: str = DEFAULT_VERSION,
        auth: ClientAuth | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.version = version
        self._auth = auth
        self._headers = dict(headers or {})
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._request_ids = itertools.count(1)

    async def __aenter__(self) -> "A2AClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------------

    async def get_agent_card(self, base_url: str | None = None) -> AgentCard:
        """Fetch ``/.well-known/agent-card.json`` of this (or another) agent."""
        card_url = f"{(base_url or self.url).rstrip('/')}/.well-known/agent-card.json"
        try:
            response = await self._http.get(card_url, headers=self._build_headers())
        except httpx.HTTPError as exc:
            raise _transport_error(card_url, exc) from exc
        if response.is_error:
            raise A2AError(
                f"Failed to fetch agent card: {response.status_code} "
                f"{response.reason_phrase}"
            )
        return AgentCard.model_validate(response.json())

    async def get_extended_agent_card(self) -> AgentCard:
        result = await self._rpc("agent/authenticatedExtendedCard", {})
        return AgentCard.model_validate(result)

    # ------------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------------

    async def send_message(
        self,
        message: Message,
        configuration: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Task | Message:
        """Send a message and wait for the resulting task.

        Returns:
            The task, or a message when the agent answers directly.
        """
        params = _send_params(message, configuration, metadata)
        result = await self._rpc("message/send", params)
        if isinstance(result, dict) and result.get("kind") == KIND_MESSAGE:
            return decode_message(result)
        return decode_task(result)

    async def send_streaming_message(
        self,
        message: Message,
        configuration: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[TaskEvent | Task]:
        """Send a message and yield the stream of task snapshots and events."""
        params = _send_params(message, configuration, metadata)
        async for item in self._stream_rpc("message/stream", params):
            yield item

    # ------------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------------

    async def get_task(self, task_id: str, history_length: int | None = None) -> Task:
        params: dict[str, Any] = {"id": task_id}
        if history_length is not None:
            params["historyLength"] = history_length
        return decode_task(await self._rpc("tasks/get", params))

    async def list_tasks(
        self,
        context_id: str | None = None,
        status: TaskState | list[TaskState] | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> TaskPage:
        params: dict[str, Any] = {}
        if context_id is not None:
            params["contextId"] = context_id
        if status is not None:
            params["status"] = (
                [str(s) for s in status] if isinstance(status, list) else str(status)
            )
        if page_size is not None:
            params["pageSize"] = page_size
        if page_token is not None:
            params["pageToken"] = page_token
        result = await self._rpc("tasks/list", params)
        return TaskPage(
            tasks=[decode_task(task) for task in result.get("tasks", [])],
            next_page_token=result.get("nextPageToken"),
        )

    async def cancel_task(self, task_id: str, reason: str | None = None) -> Task:
        params: dict[str, Any] = {"id": task_id}
        if reason is not None:
            params["reason"] = reason
        return decode_task(await self._rpc("tasks/cancel", params))

    async def subscribe_to_task(
        self, task_id: str, last_event_id: str | None = None
    ) -> AsyncIterator[TaskEvent | Task]:
        """Follow an existing task until it reaches a terminal state."""
        params: dict[str, Any] = {"id": task_id}
        if last_event_id is not None:
            params["lastEventId"] = last_event_id
        async for item in self._stream_rpc("tasks/resubscribe", params):
            yield item

    # ------------------------------------------------------------------------
    # Push notifications
    # ------------------------------------------------------------------------

    async def set_push_notification_config(self, config: dict[str, Any]) -> dict[str, Any]:
        return await self._rpc("tasks/pushNotificationConfig/set", config)

    async def get_push_notification_config(self, task_id: str) -> dict[str, Any] | None:
        return await self._rpc("tasks/pushNotificationConfig/get", {"taskId": task_id})

    async def delete_push_notification_config(self, task_id: str) -> None:
        await self._rpc("tasks/pushNotificationConfig/delete", {"taskId": task_id})

    # ------------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "A2A-Version": self.version,
            **self._headers,
        }
        if self._auth:
            auth_type = self._auth.get("type")
            credentials = self._auth.get("credentials", "")
            if auth_type == "bearer":
                headers["Authorization"] = f"Bearer {credentials}"
            elif auth_type == "basic":
                headers["Authorization"] = f"Basic {credentials}"
            elif auth_type == "apiKey":
                headers[self._auth.get("header_name", "X-API-Key")] = credentials
        return headers

    def _envelope(self, method: str, params: Any) -> dict[str, Any]:
        request_id = f"{int(time.time() * 1000)}-{next(self._request_ids)}"
        return {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}

    async def _rpc(self, method: str, params: Any) -> Any:
        try:
            response = await self._http.post(
                self.url,
                json=self._envelope(method, params),
                headers=self._build_headers(),
            )
        except httpx.HTTPError as exc:
            raise _transport_error(self.url, exc) from exc
        body = _json_body(response)
        if isinstance(body, dict) and body.get("error") is not None:
            raise A2AError.from_json_rpc_error(body["error"])
        if response.is_error or not isinstance(body, dict):
            raise A2AError(
                f"HTTP error: {response.status_code} {response.reason_phrase}"
            )
        return body.get("result")

    async def _stream_rpc(
        self, method: str, params: Any
    ) -> AsyncIterator[TaskEvent | Task]:
        headers = {
            **self._build_headers(),
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        request = self._http.build_request(
            "POST", self.url, json=self._envelope(method, params), headers=headers
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise _transport_error(self.url, exc) from exc

        try:
            content_type = response.headers.get("content-type", "")
            if response.is_error or "text/event-stream" not in content_type:
                await response.aread()
                body = _json_body(response)
                if isinstance(body, dict) and body.get("error") is not None:
                    raise A2AError.from_json_rpc_error(body["error"])
                raise A2AError(
                    f"HTTP error: {response.status_code} {response.reason_phrase}"
                )

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if not data or data == "[DONE]":
                    continue
                try:
                    envelope = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed SSE frame: %s", data[:100])
                    continue
                if isinstance(envelope, dict) and envelope.get("error") is not None:
                    raise A2AError.from_json_rpc_error(envelope["error"])
                payload = (
                    envelope.get("result", envelope)
                    if isinstance(envelope, dict) and envelope.get("jsonrpc") == "2.0"
                    else envelope
                )
                yield decode_event(payload)
        finally:
            await response.aclose()


def _send_params(
    message: Message,
    configuration: dict[str, Any] | None,
    metadata: dict[str, Any] | None,
) -> dict[str, Any]:
    params: dict[str, Any] = {"message": encode_message(message)}
    if configuration is not None:
        params["configuration"] = configuration
    if metadata is not None:
        params["metadata"] = metadata
    return params


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _transport_error(url: str, exc: httpx.HTTPError) -> A2AError:
    logger.error("A2A request failed: url=%s error=%s", url, exc)
    return A2AError(
        f"Request to {url} failed: {exc}",
        JsonRpcErrorCode.INTERNAL_ERROR,
        {"retryable": isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))},
    )


async def discover_agent(
    url: str,
    auth: ClientAuth | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AgentCard:
    """Fetch the agent card of the agent at *url*."""
    async with A2AClient(
        url, auth=auth, headers=headers, timeout=timeout, transport=transport
    ) as client:
        return await client.get_agent_card()
