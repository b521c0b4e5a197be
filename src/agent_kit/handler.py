"""Task handler contract and the runner that drives it.

A task handler is the single piece of code an integrator writes. It is
called once per task with a :class:`TaskContext` and is either:

- an async generator yielding :class:`TaskYieldUpdate` values, or
- a coroutine returning the agent's reply :class:`Message`, which is
  treated as a ``working`` then ``completed`` pair around that reply.

:class:`TaskRunner` turns every yielded update into exactly one store
transition. Execution runs as a background asyncio task so that a client
disconnecting from a stream never stops the work itself; streaming
consumers observe progress through store subscriptions.

Cancellation: when the store moves a task to ``cancelled``, the runner sets
``context.cancelled``, cancels the handler's in-flight step and closes the
generator. Updates produced after the cancel are never applied.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import AsyncGenerator, AsyncIterator, Awaitable, Callable, Union

from agent_kit.models import (
    ArtifactPart,
    Message,
    Task,
    TaskError,
    TaskEvent,
    TaskState,
    TaskStatusUpdateEvent,
    is_terminal,
    status_event,
    text_message,
)
from agent_kit.storage import InvalidTransitionError, TaskStore

logger = logging.getLogger(__name__)

#: Error codes recorded on failed tasks.
ERROR_HANDLER = "handler_error"
ERROR_NO_RESULT = "no_result"
ERROR_INCOMPLETE = "incomplete"
ERROR_INVALID_TRANSITION = "invalid_transition"

#: States in which a handler may legitimately stop without finishing.
PAUSED_STATES = frozenset({TaskState.INPUT_REQUIRED, TaskState.AUTH_REQUIRED})

_EXHAUSTED = object()


@dataclass
class TaskYieldUpdate:
    """Progress report produced by a handler."""

    state: TaskState
    message: Message | None = None
    artifacts: list[ArtifactPart] = field(default_factory=list)


@dataclass
class TaskContext:
    """Everything a handler receives for one task.

    Attributes:
        task: Snapshot of the task at the time the handler was invoked.
        message: The inbound message that triggered the task.
        cancelled: Set when the task is cancelled; long-running handlers
            may wait on it or poll :attr:`is_cancelled`.
    """

    task: Task
    message: Message
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()


TaskHandler = Callable[
    [TaskContext],
    Union[AsyncIterator[TaskYieldUpdate], Awaitable[Message]],
]


class HandlerError(Exception):
    """Raised by handlers to fail a task with an explicit error.

    Unlike unexpected exceptions, these failures are not marked retryable
    unless requested.
    """

    def __init__(
        self, message: str, retryable: bool = False, code: str = ERROR_HANDLER
    ):
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class TaskCancelledError(Exception):
    """Internal signal: the task was cancelled while the handler ran."""


async def _single_reply(
    pending: Awaitable[Message],
) -> AsyncGenerator[TaskYieldUpdate, None]:
    """Adapt a request/response handler to the update sequence contract."""
    try:
        yield TaskYieldUpdate(state=TaskState.WORKING)
        reply = await pending
        yield TaskYieldUpdate(state=TaskState.COMPLETED, message=reply)
    finally:
        if inspect.iscoroutine(pending):
            pending.close()


def _error_from_exception(exc: BaseException) -> TaskError:
    if isinstance(exc, HandlerError):
        return TaskError(
            code=exc.code,
            message=str(exc),
            details={"retryable": exc.retryable},
        )
    return TaskError(
        code=ERROR_HANDLER,
        message=str(exc) or type(exc).__name__,
        details={"retryable": True},
    )


class TaskRunner:
    """Drives a task handler against a task store."""

    def __init__(self, store: TaskStore, handler: TaskHandler):
        self._store = store
        self._handler = handler
        self._jobs: set[asyncio.Task] = set()

    @property
    def store(self) -> TaskStore:
        return self._store

    # -- public API ----------------------------------------------------------

    def start(self, task: Task, message: Message) -> "asyncio.Task[Task | None]":
        """Run the handler for *task* in the background.

        Returns:
            The asyncio task; its result is the final task snapshot.
        """
        job = asyncio.create_task(self._execute(task, message))
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        return job

    async def drain(self, task: Task, message: Message) -> Task | None:
        """Run the handler to completion and return the final task.

        The run is shielded, so cancelling the caller (e.g. the client
        went away) does not stop the handler.
        """
        return await asyncio.shield(self.start(task, message))

    def start_stream(
        self, task: Task, message: Message
    ) -> tuple["asyncio.Task[Task | None]", AsyncIterator[TaskEvent]]:
        """Start the handler now and return its job with the task's events.

        The subscription and the job both exist before this returns, so a
        consumer that never iterates, or stops early, leaves the task running
        to its natural end. The events end after a terminal status event, or
        when the handler stops in a paused state.
        """
        events: asyncio.Queue[TaskEvent] = asyncio.Queue()
        unsubscribe = self._store.subscribe(task.id, events.put_nowait)
        job = self.start(task, message)
        # Everything the job publishes is queued by the time it ends.
        job.add_done_callback(lambda _: unsubscribe())
        return job, self._relay(events, job, unsubscribe)

    @staticmethod
    async def _relay(
        events: "asyncio.Queue[TaskEvent]",
        job: "asyncio.Task[Task | None]",
        unsubscribe: Callable[[], None],
    ) -> AsyncIterator[TaskEvent]:
        try:
            async for event in _follow(events, job):
                yield event
        finally:
            unsubscribe()

    async def watch(self, task_id: str) -> AsyncIterator[TaskEvent]:
        """Yield the current status of a task, then its future events.

        The first event describes the task as it is when iteration starts;
        the sequence ends right there for terminal tasks, otherwise after
        the first terminal event. Unknown tasks yield nothing.
        """
        events: asyncio.Queue[TaskEvent] = asyncio.Queue()
        unsubscribe = self._store.subscribe(task_id, events.put_nowait)
        try:
            current = self._store.get(task_id)
            if current is None:
                return
            yield status_event(current)
            if is_terminal(current.state):
                return
            async for event in _follow(events, None):
                yield event
        finally:
            unsubscribe()

    # -- execution -----------------------------------------------------------

    async def _execute(self, task: Task, message: Message) -> Task | None:
        context = TaskContext(task=task, message=message)

        def on_event(event: TaskEvent) -> None:
            if (
                isinstance(event, TaskStatusUpdateEvent)
                and event.state == TaskState.CANCELLED
            ):
                context.cancelled.set()

        unsubscribe = self._store.subscribe(task.id, on_event)
        try:
            updates = self._invoke(context)
        except Exception as exc:
            logger.exception("Task handler could not be started for %s", task.id)
            self._fail(task.id, _error_from_exception(exc))
            unsubscribe()
            return self._store.get(task.id)

        received = 0
        try:
            while True:
                try:
                    update = await self._next_update(updates, context.cancelled)
                except StopAsyncIteration:
                    self._settle(task.id, received)
                    break
                except TaskCancelledError:
                    logger.info("Task %s cancelled; handler stopped", task.id)
                    break
                except Exception as exc:
                    logger.exception("Task handler failed for %s", task.id)
                    self._fail(task.id, _error_from_exception(exc))
                    break

                received += 1
                try:
                    current = self._store.transition(
                        task.id,
                        update.state,
                        message=update.message,
                        artifacts=update.artifacts,
                    )
                except InvalidTransitionError as exc:
                    if context.is_cancelled:
                        break
                    logger.warning("Task handler produced %s", exc)
                    self._fail(
                        task.id,
                        TaskError(code=ERROR_INVALID_TRANSITION, message=str(exc)),
                    )
                    break
                if current is None or is_terminal(current.state):
                    break
        finally:
            unsubscribe()
            try:
                await updates.aclose()
            except Exception:
                logger.exception("Task handler for %s failed while closing", task.id)
        return self._store.get(task.id)

    def _invoke(self, context: TaskContext) -> AsyncGenerator[TaskYieldUpdate, None]:
        result = self._handler(context)
        if inspect.isasyncgen(result):
            return result
        if inspect.isawaitable(result):
            return _single_reply(result)
        raise TypeError(
            "Task handler must be an async generator or return an awaitable "
            f"Message, got {type(result).__name__}"
        )

    async def _next_update(
        self,
        updates: AsyncGenerator[TaskYieldUpdate, None],
        cancelled: asyncio.Event,
    ) -> TaskYieldUpdate:
        if cancelled.is_set():
            raise TaskCancelledError()
        step = asyncio.ensure_future(anext(updates, _EXHAUSTED))
        stop = asyncio.ensure_future(cancelled.wait())
        try:
            await asyncio.wait({step, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if cancelled.is_set() or not step.done():
                step.cancel()
        if cancelled.is_set():
            # Let the aborted step unwind before the generator is closed.
            await asyncio.gather(step, return_exceptions=True)
            raise TaskCancelledError()
        update = step.result()
        if update is _EXHAUSTED:
            raise StopAsyncIteration
        if not isinstance(update, TaskYieldUpdate):
            raise TypeError(
                f"Task handler yielded {type(update).__name__}, expected TaskYieldUpdate"
            )
        return update

    def _settle(self, task_id: str, received: int) -> None:
        """Close out a task whose handler returned without finishing it."""
        current = self._store.get(task_id)
        if current is None or is_terminal(current.state):
            return
        if current.state in PAUSED_STATES:
            return
        if received == 0:
            error = TaskError(
                code=ERROR_NO_RESULT,
                message="Task handler finished without yielding any update",
            )
        else:
            error = TaskError(
                code=ERROR_INCOMPLETE,
                message=f"Task handler finished while task was {current.state}",
            )
        self._fail(task_id, error)

    def _fail(self, task_id: str, error: TaskError) -> None:
        current = self._store.get(task_id)
        if current is None or is_terminal(current.state):
            return
        if current.state != TaskState.WORKING:
            self._store.transition(task_id, TaskState.WORKING)
        self._store.transition(
            task_id,
            TaskState.FAILED,
            message=text_message("agent", f"Error: {error.message}"),
            error=error,
        )


async def _follow(
    events: "asyncio.Queue[TaskEvent]",
    job: "asyncio.Task | None",
) -> AsyncIterator[TaskEvent]:
    """Yield queued events until a terminal one, or until *job* ends."""
    while True:
        if job is None:
            event = await events.get()
        else:
            getter = asyncio.ensure_future(events.get())
            try:
                await asyncio.wait({getter, job}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                received = getter.done()
                if not received:
                    getter.cancel()
            if not received:
                while not events.empty():
                    yield events.get_nowait()
                return
            event = getter.result()
        yield event
        if isinstance(event, TaskStatusUpdateEvent) and event.final:
            return
