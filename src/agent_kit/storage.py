"""In-memory storage layer for tasks, threads and runs.

This module provides the only authoritative state in the server:

- ``TaskStore`` owns tasks, their lifecycle transitions and the observer
  registry used by streaming subscribers.
- ``ThreadStore`` and ``RunStore`` own the LangGraph-side records. Thread
  message history is never stored twice: it is derived from the tasks that
  share the thread id as their ``contextId``.

All operations are synchronous. Running on a single event loop, a reader
never observes a half-applied transition. A ``Storage`` instance is created
once per server and handed to both protocol adapters.
"""

from __future__ import annotations

import itertools
import logging
from datetime import timedelta
from typing import Any, Callable, Iterable

from agent_kit.langgraph.schemas import Run, Thread
from agent_kit.models import (
    ArtifactPart,
    Message,
    Task,
    TaskArtifactUpdateEvent,
    TaskError,
    TaskEvent,
    TaskState,
    can_transition,
    generate_id,
    is_terminal,
    status_event,
    utc_now,
)

logger = logging.getLogger(__name__)

Listener = Callable[[TaskEvent], None]

_TICK = timedelta(microseconds=1)


class InvalidTransitionError(ValueError):
    """Raised when a transition is not allowed by the lifecycle table."""

    def __init__(self, task_id: str, current: TaskState, target: TaskState):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid transition for task {task_id}: {current} -> {target}"
        )


# ============================================================================
# Task Store
# ============================================================================


class TaskStore:
    """Registry of tasks keyed by id.

    Tasks handed out by the store are deep copies; the only way to mutate a
    stored task is :meth:`transition`.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._counter = 0
        self._subscribers: dict[str, dict[int, Listener]] = {}
        self._handles = itertools.count(1)

    def create_task(self, message: Message) -> Task:
        """Create a ``submitted`` task triggered by *message*.

        A missing ``contextId`` is replaced by a fresh random identifier.

        Args:
            message: The inbound message; stored at index 0 of the history.

        Returns:
            Copy of the created task.
        """
        self._counter += 1
        task_id = f"task-{self._counter}"
        context_id = message.context_id or generate_id()
        stored = message.model_copy(
            update={"context_id": context_id, "task_id": task_id}, deep=True
        )
        task = Task(id=task_id, context_id=context_id, messages=[stored])
        self._tasks[task_id] = task
        logger.debug("Task created: task_id=%s context_id=%s", task_id, context_id)
        return task.model_copy(deep=True)

    def get(self, task_id: str) -> Task | None:
        """Get a copy of a task, or None if it does not exist."""
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    def transition(
        self,
        task_id: str,
        state: TaskState,
        message: Message | None = None,
        artifacts: Iterable[ArtifactPart] | None = None,
        error: TaskError | None = None,
    ) -> Task | None:
        """Move a task to *state*, appending *message* to its history.

        Subscribers are notified synchronously: one artifact event per new
        artifact, then one status event. After a terminal status event all
        subscribers of the task are dropped.

        Args:
            task_id: Task to update.
            state: Target state.
            message: Optional message appended to the history.
            artifacts: Optional artifacts appended to the task.
            error: Failure details, kept only when *state* is ``failed``.

        Returns:
            Copy of the updated task, or None if the task does not exist.

        Raises:
            InvalidTransitionError: If the lifecycle table forbids the move.
                The stored task is left unchanged.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return None
        if not can_transition(task.state, state):
            raise InvalidTransitionError(task_id, task.state, state)

        previous = task.state
        task.state = state
        # Strictly later than the previous mutation, even within one clock tick.
        task.updated_at = max(utc_now(), task.updated_at + _TICK)

        if message is not None:
            message = message.model_copy(
                update={"context_id": task.context_id, "task_id": task.id},
                deep=True,
            )
            task.messages.append(message)

        new_artifacts = [artifact.model_copy(deep=True) for artifact in artifacts or ()]
        task.artifacts.extend(new_artifacts)

        if state == TaskState.FAILED and error is not None:
            task.error = error

        logger.debug("Task %s: %s -> %s", task_id, previous, state)

        snapshot = task.model_copy(deep=True)
        events: list[TaskEvent] = [
            TaskArtifactUpdateEvent(
                task_id=task.id,
                context_id=task.context_id,
                artifact=artifact,
                timestamp=task.updated_at,
            )
            for artifact in new_artifacts
        ]
        events.append(status_event(snapshot, message))
        self._notify(task_id, events)
        if is_terminal(state):
            self._subscribers.pop(task_id, None)
        return snapshot

    def list(
        self,
        context_id: str | None = None,
        states: Iterable[TaskState] | None = None,
        page_size: int | None = 10,
        offset: int = 0,
    ) -> list[Task]:
        """List tasks in insertion order.

        Args:
            context_id: Only tasks in this context.
            states: Only tasks currently in one of these states.
            page_size: Maximum number of tasks returned, None for all.
            offset: Number of matching tasks to skip.

        Returns:
            Copies of the matching tasks.
        """
        wanted = set(states) if states else None
        matches = [
            task
            for task in self._tasks.values()
            if (context_id is None or task.context_id == context_id)
            and (wanted is None or task.state in wanted)
        ]
        return [task.model_copy(deep=True) for task in matches[offset:][:page_size]]

    def context_messages(self, context_id: str) -> list[Message]:
        """Full message history of a context, in task creation order."""
        messages: list[Message] = []
        for task in self._tasks.values():
            if task.context_id == context_id:
                messages.extend(m.model_copy(deep=True) for m in task.messages)
        return messages

    def has_context(self, context_id: str) -> bool:
        """Check whether any task belongs to *context_id*."""
        return any(task.context_id == context_id for task in self._tasks.values())

    def subscribe(self, task_id: str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every future event of a task.

        Returns:
            A disposer removing the listener. Calling it more than once, or
            from inside the listener itself, is safe.
        """
        handle = next(self._handles)
        self._subscribers.setdefault(task_id, {})[handle] = listener

        def unsubscribe() -> None:
            listeners = self._subscribers.get(task_id)
            if listeners is None:
                return
            listeners.pop(handle, None)
            if not listeners:
                self._subscribers.pop(task_id, None)

        return unsubscribe

    def subscriber_count(self, task_id: str) -> int:
        """Number of active listeners for a task."""
        return len(self._subscribers.get(task_id, {}))

    def _notify(self, task_id: str, events: list[TaskEvent]) -> None:
        listeners = self._subscribers.get(task_id)
        if not listeners:
            return
        for event in events:
            for handle, listener in list(listeners.items()):
                # Skip listeners removed by an earlier callback.
                if handle not in listeners:
                    continue
                try:
                    listener(event)
                except Exception:
                    logger.exception("Subscriber of task %s failed", task_id)


# ============================================================================
# Thread Store
# ============================================================================


class ThreadStore:
    """LangGraph thread records."""

    def __init__(self) -> None:
        self._threads: dict[str, Thread] = {}

    def create(
        self,
        thread_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Thread:
        """Create (or replace) a thread record.

        Args:
            thread_id: Optional id; generated when omitted.
            metadata: Thread metadata.

        Returns:
            Copy of the created thread.
        """
        now = utc_now()
        thread = Thread(
            thread_id=thread_id or generate_id(),
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        self._threads[thread.thread_id] = thread
        return thread.model_copy(deep=True)

    def get(self, thread_id: str) -> Thread | None:
        thread = self._threads.get(thread_id)
        return thread.model_copy(deep=True) if thread is not None else None

    def exists(self, thread_id: str) -> bool:
        return thread_id in self._threads

    def search(self, metadata: dict[str, Any] | None = None) -> list[Thread]:
        """Threads whose metadata contains *metadata*, in creation order."""
        return [
            thread.model_copy(deep=True)
            for thread in self._threads.values()
            if not metadata
            or all(thread.metadata.get(key) == value for key, value in metadata.items())
        ]

    def delete(self, thread_id: str) -> bool:
        """Delete a thread. Returns False if it did not exist."""
        return self._threads.pop(thread_id, None) is not None


# ============================================================================
# Run Store
# ============================================================================


class RunStore:
    """LangGraph run records. A run shares its id with the task it wraps."""

    def __init__(self) -> None:
        self._runs: dict[str, Run] = {}

    def create(
        self,
        run_id: str,
        thread_id: str,
        assistant_id: str,
        metadata: dict[str, Any] | None = None,
        multitask_strategy: str = "enqueue",
    ) -> Run:
        now = utc_now()
        run = Run(
            run_id=run_id,
            thread_id=thread_id,
            assistant_id=assistant_id,
            metadata=dict(metadata or {}),
            multitask_strategy=multitask_strategy,
            created_at=now,
            updated_at=now,
        )
        self._runs[run_id] = run
        return run.model_copy(deep=True)

    def get(self, run_id: str) -> Run | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run is not None else None

    def list_for_thread(self, thread_id: str) -> list[Run]:
        return [
            run.model_copy(deep=True)
            for run in self._runs.values()
            if run.thread_id == thread_id
        ]

    def delete_for_thread(self, thread_id: str) -> int:
        """Delete all runs of a thread. Returns the number removed."""
        doomed = [rid for rid, run in self._runs.items() if run.thread_id == thread_id]
        for run_id in doomed:
            del self._runs[run_id]
        return len(doomed)


# ============================================================================
# Storage Container
# ============================================================================


class Storage:
    """All stores of one server instance."""

    def __init__(self) -> None:
        self.tasks = TaskStore()
        self.threads = ThreadStore()
        self.runs = RunStore()

    def thread_messages(self, thread_id: str) -> list[Message]:
        """Message history of a thread, derived from its tasks."""
        return self.tasks.context_messages(thread_id)
