"""A2A Protocol method handlers.

Implements the JSON-RPC 2.0 methods of the A2A protocol on top of the
shared task store and task runner. Non-streaming methods return a
:class:`JsonRpcResponse`; streaming methods (``message/stream`` and
``tasks/resubscribe``) return an async iterator of ready-to-send SSE
frames, each frame being a JSON-RPC envelope around one result object.
"""

import json
import logging
from typing import Any, AsyncIterator, Callable, Iterable

from pydantic import ValidationError

from agent_kit.a2a.schemas import (
    PUSH_NOTIFICATION_METHODS,
    STREAMING_METHODS,
    A2AMethod,
    AgentCard,
    JsonRpcErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    MessageSendParams,
    TaskCancelParams,
    TaskListParams,
    TaskQueryParams,
    TaskResubscribeParams,
    create_error_response,
    create_success_response,
    resolve_method,
)
from agent_kit.a2a.wire import (
    decode_message,
    decode_state,
    encode_event,
    encode_task,
)
from agent_kit.handler import ERROR_INVALID_TRANSITION, TaskRunner
from agent_kit.models import Message, Task, TaskEvent, TaskState, is_terminal
from agent_kit.storage import TaskStore

logger = logging.getLogger(__name__)

AgentCardUpdate = dict[str, Any] | Callable[[AgentCard], AgentCard | dict[str, Any]]


class JsonRpcMethodError(Exception):
    """Raised inside a method handler to answer with a specific error code."""

    def __init__(self, code: int, message: str, data: Any | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def format_sse_frame(response: JsonRpcResponse) -> str:
    """Format a JSON-RPC response as an unnamed SSE ``data:`` frame."""
    return f"data: {json.dumps(response.model_dump())}\n\n"


def _validate(model, params: dict[str, Any], method: str):
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise ValueError(f"Invalid {method} params: {e}") from e


class A2AMethodHandler:
    """Handler for A2A JSON-RPC methods.

    Args:
        store: Task store shared with the LangGraph adapter.
        runner: Runner driving the agent's task handler.
        agent_card: Card served at the well-known discovery path.
        supported_versions: Accepted major versions of the ``A2A-Version``
            request header.
    """

    def __init__(
        self,
        store: TaskStore,
        runner: TaskRunner,
        agent_card: AgentCard,
        supported_versions: Iterable[str] = ("0", "1"),
    ) -> None:
        self._store = store
        self._runner = runner
        self._agent_card = agent_card
        self._supported_versions = tuple(supported_versions)

    # ------------------------------------------------------------------------
    # Agent card
    # ------------------------------------------------------------------------

    @property
    def agent_card(self) -> AgentCard:
        return self._agent_card

    def update_agent_card(self, update: AgentCardUpdate) -> AgentCard:
        """Update the agent card.

        Args:
            update: Either a partial mapping merged over the current card
                (field names or their camelCase aliases), or a function
                receiving a copy of the current card and returning the new
                one.

        Returns:
            The updated card.
        """
        if callable(update):
            result = update(self._agent_card.model_copy(deep=True))
            card = (
                result
                if isinstance(result, AgentCard)
                else AgentCard.model_validate(result)
            )
        else:
            merged = self._agent_card.model_dump(by_alias=True)
            for key, value in update.items():
                field = AgentCard.model_fields.get(key)
                merged[field.alias if field and field.alias else key] = value
            card = AgentCard.model_validate(merged)
        self._agent_card = card
        logger.info("Agent card updated: name=%s", card.name)
        return card

    # ------------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------------

    @staticmethod
    def is_streaming(method: str) -> bool:
        """True if *method* (or its alias) answers with an SSE stream."""
        return resolve_method(method) in STREAMING_METHODS

    def check_version(
        self, request_id: str | int | None, version: str | None
    ) -> JsonRpcResponse | None:
        """Validate an ``A2A-Version`` header value.

        Returns:
            An error response for unsupported versions, otherwise None.
        """
        if not version:
            return None
        major = version.strip().split(".", 1)[0]
        if major in self._supported_versions:
            return None
        logger.warning("A2A version not supported: %s", version)
        return create_error_response(
            request_id,
            JsonRpcErrorCode.VERSION_NOT_SUPPORTED,
            f"A2A version not supported: {version}",
            {"supportedVersions": list(self._supported_versions)},
        )

    async def handle_request(
        self,
        request: JsonRpcRequest,
        version: str | None = None,
    ) -> JsonRpcResponse:
        """Route a non-streaming JSON-RPC request.

        Args:
            request: The JSON-RPC request to handle.
            version: Value of the ``A2A-Version`` header, if any.

        Returns:
            JSON-RPC response with result or error.
        """
        method = resolve_method(request.method)
        params = request.params or {}

        logger.debug("A2A request: method=%s, id=%s", request.method, request.id)

        version_error = self.check_version(request.id, version)
        if version_error is not None:
            return version_error

        if method is None:
            logger.warning("A2A method not found: %s", request.method)
            return create_error_response(
                request.id,
                JsonRpcErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )

        if method in STREAMING_METHODS:
            return create_error_response(
                request.id,
                JsonRpcErrorCode.INVALID_REQUEST,
                f"{method} must be requested as a stream",
            )

        if method in PUSH_NOTIFICATION_METHODS:
            return create_error_response(
                request.id,
                JsonRpcErrorCode.PUSH_NOTIFICATION_NOT_SUPPORTED,
                "Push notifications are not supported",
            )

        handler_map = {
            A2AMethod.MESSAGE_SEND: self._handle_message_send,
            A2AMethod.TASKS_GET: self._handle_tasks_get,
            A2AMethod.TASKS_LIST: self._handle_tasks_list,
            A2AMethod.TASKS_CANCEL: self._handle_tasks_cancel,
            A2AMethod.EXTENDED_CARD: self._handle_extended_card,
        }

        try:
            result = await handler_map[method](params)
            return create_success_response(request.id, result)
        except JsonRpcMethodError as e:
            return create_error_response(request.id, e.code, e.message, e.data)
        except ValueError as e:
            logger.error("A2A invalid params: %s", e)
            return create_error_response(
                request.id,
                JsonRpcErrorCode.INVALID_PARAMS,
                str(e),
            )
        except Exception as e:
            logger.exception("A2A internal error")
            return create_error_response(
                request.id,
                JsonRpcErrorCode.INTERNAL_ERROR,
                f"Internal error: {str(e)}",
                {"retryable": True},
            )

    def open_stream(
        self,
        request: JsonRpcRequest,
        version: str | None = None,
    ) -> JsonRpcResponse | AsyncIterator[str]:
        """Prepare a streaming method.

        Validation happens eagerly, so protocol errors are answered as a
        plain JSON-RPC response instead of an SSE stream.

        Returns:
            An error response, or an async iterator of SSE frames.
        """
        method = resolve_method(request.method)
        params = request.params or {}

        logger.debug("A2A stream: method=%s, id=%s", request.method, request.id)

        version_error = self.check_version(request.id, version)
        if version_error is not None:
            return version_error

        try:
            if method == A2AMethod.MESSAGE_STREAM:
                send_params = _validate(MessageSendParams, params, "message/stream")
                message = self._decode_inbound(send_params, "message/stream")
                task = self._store.create_task(message)
                _, events = self._runner.start_stream(task, message)
                logger.info("A2A stream started: task_id=%s", task.id)
                return self._stream_message(request.id, task, events)
            if method == A2AMethod.TASKS_RESUBSCRIBE:
                query = _validate(TaskResubscribeParams, params, "tasks/resubscribe")
                task = self._require_task(query.resolve_task_id())
                return self._stream_task(request.id, task.id)
        except JsonRpcMethodError as e:
            return create_error_response(request.id, e.code, e.message, e.data)
        except ValueError as e:
            logger.error("A2A invalid params: %s", e)
            return create_error_response(
                request.id, JsonRpcErrorCode.INVALID_PARAMS, str(e)
            )

        return create_error_response(
            request.id,
            JsonRpcErrorCode.METHOD_NOT_FOUND,
            f"Method not found: {request.method}",
        )

    # ------------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------------

    async def _handle_message_send(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle the message/send method.

        Creates a task, runs the handler to completion and returns the final
        task. A handler that produced an invalid transition is reported as
        invalid params.
        """
        send_params = _validate(MessageSendParams, params, "message/send")
        message = self._decode_inbound(send_params, "message/send")
        task = self._store.create_task(message)
        logger.info("A2A message/send: task_id=%s context_id=%s", task.id, task.context_id)

        final = await self._runner.drain(task, message)
        if final is None:
            raise JsonRpcMethodError(
                JsonRpcErrorCode.TASK_NOT_FOUND, f"Task not found: {task.id}"
            )
        if final.error is not None and final.error.code == ERROR_INVALID_TRANSITION:
            raise JsonRpcMethodError(
                JsonRpcErrorCode.INVALID_PARAMS,
                final.error.message,
                {"task": encode_task(final)},
            )

        history_length = None
        if send_params.configuration is not None:
            history_length = send_params.configuration.history_length
        return encode_task(final, history_length=history_length)

    async def _handle_tasks_get(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle the tasks/get method."""
        query = _validate(TaskQueryParams, params, "tasks/get")
        task = self._require_task(query.resolve_task_id())
        return encode_task(task, history_length=query.history_length)

    async def _handle_tasks_list(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle the tasks/list method.

        ``nextPageToken`` is only present when more tasks match.
        """
        query = _validate(TaskListParams, params, "tasks/list")
        states = [decode_state(status) for status in query.statuses()]
        offset = query.offset()
        tasks = self._store.list(
            context_id=query.context_id,
            states=states or None,
            page_size=query.page_size + 1,
            offset=offset,
        )
        result: dict[str, Any] = {
            "tasks": [encode_task(task) for task in tasks[: query.page_size]],
        }
        if len(tasks) > query.page_size:
            result["nextPageToken"] = str(offset + query.page_size)
        return result

    async def _handle_tasks_cancel(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle the tasks/cancel method.

        Raises:
            ValueError: If the task is already in a terminal state.
        """
        cancel_params = _validate(TaskCancelParams, params, "tasks/cancel")
        task = self._require_task(cancel_params.resolve_task_id())
        if is_terminal(task.state):
            raise ValueError(f"Cannot cancel task in state {task.state}")

        cancelled = self._store.transition(task.id, TaskState.CANCELLED)
        logger.info(
            "A2A task cancelled: task_id=%s reason=%s",
            task.id,
            cancel_params.reason or "-",
        )
        return encode_task(cancelled)

    async def _handle_extended_card(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle agent/authenticatedExtendedCard (no extra fields are kept)."""
        return self._agent_card.to_wire()

    # ------------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------------

    async def _stream_message(
        self,
        request_id: str | int | None,
        task: Task,
        events: AsyncIterator[TaskEvent],
    ) -> AsyncIterator[str]:
        """Stream a new task: its submitted snapshot, then every event."""
        yield format_sse_frame(create_success_response(request_id, encode_task(task)))
        async for event in events:
            yield self._event_frame(request_id, event)

    async def _stream_task(
        self,
        request_id: str | int | None,
        task_id: str,
    ) -> AsyncIterator[str]:
        """Stream the current state of a task, then its live events."""
        async for event in self._runner.watch(task_id):
            yield self._event_frame(request_id, event)

    @staticmethod
    def _event_frame(request_id: str | int | None, event: TaskEvent) -> str:
        return format_sse_frame(create_success_response(request_id, encode_event(event)))

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _decode_inbound(self, send_params: MessageSendParams, method: str) -> Message:
        try:
            return decode_message(send_params.message)
        except ValueError as e:
            raise ValueError(f"Invalid {method} params: {e}") from e

    def _require_task(self, task_id: str) -> Task:
        task = self._store.get(task_id)
        if task is None:
            raise JsonRpcMethodError(
                JsonRpcErrorCode.TASK_NOT_FOUND, f"Task not found: {task_id}"
            )
        return task
