"""LangGraph Platform compatible service.

Implements the behavior behind the LangGraph REST surface on top of the
shared task store: a single synthetic assistant derived from the agent
card, threads as conversation contexts, and runs that each wrap exactly
one task.

Thread message history is not stored separately; it is the history of
the tasks whose ``contextId`` is the thread id, so conversations started
over A2A with that context are visible here too. Run and thread statuses
are derived from task states whenever they are read.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable

from agent_kit.a2a.schemas import AgentCard
from agent_kit.handler import TaskRunner
from agent_kit.langgraph.messages import normalize_run_input, to_langgraph_message
from agent_kit.langgraph.schemas import (
    Assistant,
    AssistantSearchRequest,
    Run,
    RunCreate,
    ServerInfo,
    Thread,
    ThreadCreate,
    ThreadSearchRequest,
    ThreadState,
)
from agent_kit.models import (
    Message,
    Task,
    TaskEvent,
    TaskState,
    TaskStatusUpdateEvent,
    format_timestamp,
    generate_id,
    is_terminal,
    utc_now,
)
from agent_kit.storage import Storage

logger = logging.getLogger(__name__)

#: Graph id of the one assistant every server exposes.
GRAPH_ID = "agent"

RUN_STATUS_BY_STATE: dict[TaskState, str] = {
    TaskState.SUBMITTED: "pending",
    TaskState.WORKING: "running",
    TaskState.COMPLETED: "success",
    TaskState.FAILED: "error",
    TaskState.REJECTED: "error",
    TaskState.CANCELLED: "interrupted",
    TaskState.INPUT_REQUIRED: "interrupted",
    TaskState.AUTH_REQUIRED: "interrupted",
}

THREAD_STATUS_BY_STATE: dict[TaskState, str] = {
    TaskState.SUBMITTED: "busy",
    TaskState.WORKING: "busy",
    TaskState.COMPLETED: "idle",
    TaskState.CANCELLED: "idle",
    TaskState.FAILED: "error",
    TaskState.REJECTED: "error",
    TaskState.INPUT_REQUIRED: "interrupted",
    TaskState.AUTH_REQUIRED: "interrupted",
}

#: One stream part: SSE event name and its JSON payload.
StreamPart = tuple[str, Any]


class LangGraphError(Exception):
    """Error answered with an HTTP status and a ``{"error": message}`` body."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(LangGraphError):
    status_code = 404


class ConflictError(LangGraphError):
    status_code = 409


class LangGraphService:
    """LangGraph-side view of the agent.

    Args:
        storage: Stores shared with the A2A adapter.
        runner: Runner driving the agent's task handler.
        agent_card: Returns the current agent card; the assistant is
            rebuilt from it on every read, so card updates show up here.
    """

    def __init__(
        self,
        storage: Storage,
        runner: TaskRunner,
        agent_card: Callable[[], AgentCard],
    ) -> None:
        self._storage = storage
        self._runner = runner
        self._agent_card = agent_card
        self._assistant_id = generate_id()
        self._created_at = utc_now()

    # ========================================================================
    # Server / Assistants
    # ========================================================================

    def info(self) -> ServerInfo:
        return ServerInfo()

    @property
    def assistant_id(self) -> str:
        return self._assistant_id

    def assistant(self) -> Assistant:
        """The singleton assistant, built from the current agent card."""
        card = self._agent_card()
        return Assistant(
            assistant_id=self._assistant_id,
            graph_id=GRAPH_ID,
            name=card.name,
            description=card.description,
            metadata={
                "a2a_url": card.url,
                "capabilities": card.capabilities.model_dump(
                    by_alias=True, exclude_none=True
                ),
                "skills": [
                    skill.model_dump(by_alias=True, exclude_none=True)
                    for skill in card.skills
                ],
            },
            version=1,
            created_at=self._created_at,
            updated_at=self._created_at,
        )

    def search_assistants(self, request: AssistantSearchRequest) -> list[Assistant]:
        """Every search matches the singleton assistant."""
        return [self.assistant()]

    def get_assistant(self, assistant_id: str | None) -> Assistant:
        """Look up the assistant by its id or by the graph id.

        Raises:
            NotFoundError: For any other id.
        """
        if assistant_id in (None, self._assistant_id, GRAPH_ID):
            return self.assistant()
        raise NotFoundError(f"Assistant {assistant_id} not found")

    # ========================================================================
    # Threads
    # ========================================================================

    def thread_exists(self, thread_id: str) -> bool:
        return self._storage.threads.exists(thread_id)

    def create_thread(self, request: ThreadCreate) -> Thread:
        """Create a thread.

        Raises:
            ConflictError: If the id exists and ``if_exists`` is ``raise``.
        """
        threads = self._storage.threads
        if request.thread_id and threads.exists(request.thread_id):
            if request.if_exists == "do_nothing":
                return self.get_thread(request.thread_id)
            raise ConflictError(f"Thread {request.thread_id} already exists")
        thread = threads.create(request.thread_id, request.metadata)
        logger.info("Thread created: thread_id=%s", thread.thread_id)
        return self._thread_view(thread)

    def search_threads(self, request: ThreadSearchRequest) -> list[Thread]:
        """Search threads by metadata subset and derived status."""
        threads = [
            self._thread_view(thread)
            for thread in self._storage.threads.search(metadata=request.metadata)
        ]
        if request.status is not None:
            threads = [t for t in threads if t.status == request.status]
        return threads[request.offset : request.offset + request.limit]

    def get_thread(self, thread_id: str) -> Thread:
        thread = self._storage.threads.get(thread_id)
        if thread is None:
            raise NotFoundError(f"Thread {thread_id} not found")
        return self._thread_view(thread)

    def delete_thread(self, thread_id: str) -> None:
        """Delete a thread and its run records.

        Tasks of the thread stay in the task store, where A2A clients can
        still read them.
        """
        if not self._storage.threads.delete(thread_id):
            raise NotFoundError(f"Thread {thread_id} not found")
        removed = self._storage.runs.delete_for_thread(thread_id)
        logger.info("Thread deleted: thread_id=%s runs=%d", thread_id, removed)

    def get_thread_state(self, thread_id: str) -> ThreadState:
        """Point-in-time snapshot of a thread's messages.

        A conversation started over A2A has no thread record but is still
        readable here under its ``contextId``.
        """
        if not (
            self._storage.threads.exists(thread_id)
            or self._storage.tasks.has_context(thread_id)
        ):
            raise NotFoundError(f"Thread {thread_id} not found")
        return ThreadState(
            values={"messages": self._message_dicts(thread_id)},
            next=[],
            tasks=[],
            metadata={"thread_id": thread_id},
            created_at=format_timestamp(utc_now()),
        )

    # ========================================================================
    # Runs
    # ========================================================================

    def create_run(self, thread_id: str, request: RunCreate) -> Run:
        """Create a run and execute it in the background."""
        run, task, message, _ = self._prepare_run(thread_id, request)
        self._runner.start(task, message)
        return self._run_view(run, task)

    def list_runs(self, thread_id: str) -> list[Run]:
        if not self._storage.threads.exists(thread_id):
            raise NotFoundError(f"Thread {thread_id} not found")
        return [
            self._run_view(run, self._storage.tasks.get(run.run_id))
            for run in self._storage.runs.list_for_thread(thread_id)
        ]

    def get_run(self, thread_id: str, run_id: str) -> Run:
        run = self._storage.runs.get(run_id)
        if run is None or run.thread_id != thread_id:
            raise NotFoundError(f"Run {run_id} not found")
        return self._run_view(run, self._storage.tasks.get(run_id))

    async def wait_run(self, thread_id: str | None, request: RunCreate) -> ThreadState:
        """Run to completion and return the resulting thread state.

        Without *thread_id* the run uses a temporary thread, removed
        afterwards unless ``on_completion`` is ``keep``.
        """
        run, task, message, temporary = self._prepare_run(thread_id, request)
        try:
            await self._runner.drain(task, message)
            return self.get_thread_state(run.thread_id)
        finally:
            if temporary and request.on_completion == "delete":
                self._discard_thread(run.thread_id)

    def stream_run(
        self, thread_id: str | None, request: RunCreate
    ) -> tuple[Run, AsyncIterator[StreamPart]]:
        """Create a run, start it, and return it with its stream parts.

        Validation happens before the stream exists, so lookup errors are
        raised here rather than sent as stream parts. The run is already
        executing when this returns; abandoning the parts does not stop it.
        """
        run, task, message, temporary = self._prepare_run(thread_id, request)
        messages = self._message_dicts(run.thread_id)
        job, events = self._runner.start_stream(task, message)
        discard_thread = temporary and request.on_completion == "delete"
        if discard_thread:
            job.add_done_callback(lambda _: self._discard_thread(run.thread_id))
        return run, self._stream(run, messages, job, events, discard_thread)

    async def _stream(
        self,
        run: Run,
        messages: list[dict[str, Any]],
        job: "asyncio.Task[Task | None]",
        events: AsyncIterator[TaskEvent],
        discard_thread: bool,
    ) -> AsyncIterator[StreamPart]:
        yield "metadata", {
            "run_id": run.run_id,
            "thread_id": run.thread_id,
            "assistant_id": run.assistant_id,
        }
        last_agent: dict[str, Any] | None = None
        try:
            async for event in events:
                # Artifacts have no LangGraph projection
                if not isinstance(event, TaskStatusUpdateEvent):
                    continue
                if event.message is not None:
                    projected = to_langgraph_message(event.message).model_dump()
                    messages.append(projected)
                    if event.message.role == "agent":
                        last_agent = projected
                    yield "messages", [projected]
                    yield "values", {"messages": list(messages)}
                yield "updates", {
                    "agent": {"messages": [last_agent] if last_agent else []}
                }

            final = await asyncio.shield(job)
            if discard_thread:
                self._discard_thread(run.thread_id)
            if final is not None and final.state == TaskState.FAILED:
                error = final.error.message if final.error else "Run failed"
                yield "error", {"message": error}
            else:
                yield "end", None
        except Exception as e:
            logger.exception("Run stream failed: run_id=%s", run.run_id)
            yield "error", {"message": str(e)}

    # ========================================================================
    # Helpers
    # ========================================================================

    def _prepare_run(
        self, thread_id: str | None, request: RunCreate
    ) -> tuple[Run, Task, Message, bool]:
        assistant = self.get_assistant(request.assistant_id)
        temporary = thread_id is None
        if thread_id is None:
            thread_id = self._storage.threads.create(metadata={"temporary": True}).thread_id
        elif not self._storage.threads.exists(thread_id):
            raise NotFoundError(f"Thread {thread_id} not found")
        elif request.multitask_strategy == "reject" and self._has_active_run(thread_id):
            raise ConflictError(
                f"Thread {thread_id} already has an active run. "
                f"Use multitask_strategy='enqueue' to queue runs."
            )

        message = normalize_run_input(request.input)
        message.context_id = thread_id
        task = self._storage.tasks.create_task(message)
        run = self._storage.runs.create(
            run_id=task.id,
            thread_id=thread_id,
            assistant_id=assistant.assistant_id,
            metadata=request.metadata,
            multitask_strategy=request.multitask_strategy,
        )
        logger.info(
            "Run created: run_id=%s thread_id=%s temporary=%s",
            run.run_id,
            thread_id,
            temporary,
        )
        return run, task, task.messages[0], temporary

    def _has_active_run(self, thread_id: str) -> bool:
        for run in self._storage.runs.list_for_thread(thread_id):
            task = self._storage.tasks.get(run.run_id)
            if task is not None and not is_terminal(task.state):
                return True
        return False

    def _discard_thread(self, thread_id: str) -> None:
        if not self._storage.threads.exists(thread_id):
            return
        self._storage.threads.delete(thread_id)
        self._storage.runs.delete_for_thread(thread_id)
        logger.debug("Temporary thread removed: thread_id=%s", thread_id)

    def _message_dicts(self, thread_id: str) -> list[dict[str, Any]]:
        return [
            to_langgraph_message(message).model_dump()
            for message in self._storage.thread_messages(thread_id)
        ]

    def _thread_view(self, thread: Thread) -> Thread:
        latest = self._storage.tasks.list(context_id=thread.thread_id, page_size=None)
        thread.status = (
            THREAD_STATUS_BY_STATE[latest[-1].state] if latest else "idle"
        )
        thread.values = {"messages": self._message_dicts(thread.thread_id)}
        return thread

    def _run_view(self, run: Run, task: Task | None) -> Run:
        if task is not None:
            run.status = RUN_STATUS_BY_STATE[task.state]
            run.updated_at = task.updated_at
        return run
