"""Unified client: LangGraph REST plus A2A in one object.

Example:
    >>> async with AgentClient("http://localhost:3000") as client:
    ...     assistants = await client.assistants.search()
    ...     card = await client.a2a.discover_agent("http://other-agent:3000")
    ...     task = await client.a2a.converse("Hello")
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator

import httpx

from agent_kit.a2a.client import (
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_VERSION,
    A2AClient,
    ClientAuth,
)
from agent_kit.a2a.schemas import AgentCard
from agent_kit.langgraph.client import LangGraphClient
from agent_kit.models import (
    Message,
    Task,
    TaskEvent,
    TaskState,
    generate_id,
    is_terminal,
    text_message,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_WAIT_TIMEOUT_SECONDS = 300.0


class AgentA2AClient(A2AClient):
    """A2A client with caching discovery and text-level helpers."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._agent_cache: dict[str, AgentCard] = {}

    async def discover_agent(self, url: str, force: bool = False) -> AgentCard:
        """Fetch (and cache) the agent card of the agent at *url*.

        Args:
            url: Base URL of the agent.
            force: Bypass the cache.
        """
        if not force and url in self._agent_cache:
            return self._agent_cache[url]
        card = await self.get_agent_card(url)
        self._agent_cache[url] = card
        return card

    def clear_cache(self) -> None:
        self._agent_cache.clear()

    async def send_text(
        self,
        text: str,
        context_id: str | None = None,
        task_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Task | Message:
        """Send a plain text message."""
        message = text_message("user", text, context_id=context_id, task_id=task_id)
        message.metadata = metadata
        return await self.send_message(message)

    async def stream_text(
        self,
        text: str,
        context_id: str | None = None,
        task_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[TaskEvent | Task]:
        """Send a plain text message and yield the stream."""
        message = text_message("user", text, context_id=context_id, task_id=task_id)
        message.metadata = metadata
        async for item in self.send_streaming_message(message):
            yield item

    async def wait_for_task(
        self,
        task_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
    ) -> Task:
        """Poll ``tasks/get`` until the task is terminal.

        Raises:
            TimeoutError: If the task is not terminal after *timeout* seconds.
        """
        deadline = time.monotonic() + timeout
        while True:
            task = await self.get_task(task_id)
            if is_terminal(task.state):
                return task
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timeout waiting for task {task_id}")
            await asyncio.sleep(poll_interval)

    async def converse(
        self,
        message: Message | str,
        context_id: str | None = None,
        timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
    ) -> Task:
        """Send one conversation turn and wait for the task to finish.

        An agent answering with a bare message yields a synthetic completed
        task holding both messages.
        """
        if isinstance(message, str):
            outbound = text_message("user", message, context_id=context_id)
        else:
            outbound = message.model_copy(
                update={"context_id": context_id or message.context_id}
            )

        response = await self.send_message(outbound)
        if isinstance(response, Task):
            if is_terminal(response.state):
                return response
            return await self.wait_for_task(response.id, timeout=timeout)

        logger.debug("Agent answered without a task; building a synthetic one")
        return Task(
            id=f"synthetic-{int(time.time() * 1000)}",
            state=TaskState.COMPLETED,
            context_id=outbound.context_id or generate_id(),
            messages=[outbound, response],
        )


class AgentClient(LangGraphClient):
    """LangGraph client that also speaks A2A through :attr:`a2a`.

    Args:
        url: Base URL of the server.
        api_key: Optional LangGraph API key.
        headers: Extra headers for LangGraph requests.
        a2a_url: A2A endpoint; defaults to *url*.
        a2a_auth: Credentials for A2A requests.
        a2a_version: ``A2A-Version`` header value.
        a2a_headers: Extra headers for A2A requests.
        timeout: Request timeout in seconds, for both protocols.
        transport: Optional ``httpx`` transport shared by both clients.
    """

    def __init__(
        self,
        url: str = "http://localhost:3000",
        api_key: str | None = None,
        headers: dict[str, str] | None = None,
        a2a_url: str | None = None,
        a2a_auth: ClientAuth | None = None,
        a2a_version: str = DEFAULT_VERSION,
        a2a_headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            url, api_key=api_key, headers=headers, timeout=timeout, transport=transport
        )
        self.a2a = AgentA2AClient(
            a2a_url or url,
            version=a2a_version,
            auth=a2a_auth,
            headers=a2a_headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.a2a.aclose()
        await super().aclose()
