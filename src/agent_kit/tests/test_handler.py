"""Tests for the task handler contract and TaskRunner."""

import asyncio

import pytest

from agent_kit.echo import echo_handler
from agent_kit.handler import (
    ERROR_HANDLER,
    ERROR_INCOMPLETE,
    ERROR_INVALID_TRANSITION,
    ERROR_NO_RESULT,
    HandlerError,
    TaskContext,
    TaskRunner,
    TaskYieldUpdate,
)
from agent_kit.models import (
    ArtifactContent,
    ArtifactPart,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatusUpdateEvent,
    extract_text,
    text_message,
)
from agent_kit.storage import TaskStore


async def wait_for_state(store: TaskStore, task_id: str, state: TaskState) -> None:
    for _ in range(200):
        if store.get(task_id).state == state:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"Task {task_id} never reached {state}")


def make_runner(handler) -> TaskRunner:
    return TaskRunner(TaskStore(), handler)


def events_of(runner: TaskRunner, task):
    _, events = runner.start_stream(task, task.messages[0])
    return events


async def run(runner: TaskRunner, text: str = "hi"):
    task = runner.store.create_task(text_message("user", text))
    return await runner.drain(task, task.messages[0])


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def failing_handler(context):
    yield TaskYieldUpdate(state=TaskState.WORKING)
    raise RuntimeError("boom")


async def explicit_failure_handler(context):
    yield TaskYieldUpdate(state=TaskState.WORKING)
    raise HandlerError("quota exceeded", retryable=False)


async def silent_handler(context):
    return
    yield  # pragma: no cover


async def unfinished_handler(context):
    yield TaskYieldUpdate(state=TaskState.WORKING)


async def input_required_handler(context):
    yield TaskYieldUpdate(state=TaskState.WORKING)
    yield TaskYieldUpdate(
        state=TaskState.INPUT_REQUIRED,
        message=text_message("agent", "Which account?"),
    )


async def skipping_handler(context):
    yield TaskYieldUpdate(
        state=TaskState.COMPLETED, message=text_message("agent", "too early")
    )


async def wrong_type_handler(context):
    yield {"state": "working"}


async def artifact_handler(context):
    yield TaskYieldUpdate(state=TaskState.WORKING)
    yield TaskYieldUpdate(
        state=TaskState.COMPLETED,
        message=text_message("agent", "see report"),
        artifacts=[ArtifactPart(artifact=ArtifactContent(name="r", content="data"))],
    )


async def reply_handler(context):
    return text_message("agent", f"Reply to {extract_text(context.message.parts)}")


def sync_handler(context):
    return "not a message"


def gated_handler(gate: asyncio.Event, seen: list):
    async def handler(context: TaskContext):
        seen.append(context)
        yield TaskYieldUpdate(state=TaskState.WORKING)
        await gate.wait()
        yield TaskYieldUpdate(
            state=TaskState.COMPLETED, message=text_message("agent", "late")
        )

    return handler


# ---------------------------------------------------------------------------
# Drain
# ---------------------------------------------------------------------------


class TestDrain:
    async def test_echo_completes(self):
        final = await run(make_runner(echo_handler), "hello")
        assert final.state == TaskState.COMPLETED
        assert extract_text(final.messages[-1].parts) == "Echo: hello"

    async def test_coroutine_handler_is_working_then_completed(self):
        runner = make_runner(reply_handler)
        task = runner.store.create_task(text_message("user", "ping"))
        states = []
        runner.store.subscribe(task.id, lambda event: states.append(event.state))

        final = await runner.drain(task, task.messages[0])

        assert states == [TaskState.WORKING, TaskState.COMPLETED]
        assert extract_text(final.messages[-1].parts) == "Reply to ping"

    async def test_exception_fails_task_with_retryable_hint(self):
        final = await run(make_runner(failing_handler))
        assert final.state == TaskState.FAILED
        assert final.error.code == ERROR_HANDLER
        assert final.error.details == {"retryable": True}
        assert extract_text(final.messages[-1].parts) == "Error: boom"

    async def test_handler_error_is_not_retryable_by_default(self):
        final = await run(make_runner(explicit_failure_handler))
        assert final.state == TaskState.FAILED
        assert final.error.details == {"retryable": False}

    async def test_empty_sequence_fails(self):
        final = await run(make_runner(silent_handler))
        assert final.state == TaskState.FAILED
        assert final.error.code == ERROR_NO_RESULT

    async def test_ending_while_working_fails(self):
        final = await run(make_runner(unfinished_handler))
        assert final.state == TaskState.FAILED
        assert final.error.code == ERROR_INCOMPLETE

    async def test_paused_task_stays_paused(self):
        final = await run(make_runner(input_required_handler))
        assert final.state == TaskState.INPUT_REQUIRED
        assert final.error is None

    async def test_invalid_transition_fails_task(self):
        final = await run(make_runner(skipping_handler))
        assert final.state == TaskState.FAILED
        assert final.error.code == ERROR_INVALID_TRANSITION
        # The invalid update's message was never recorded.
        texts = [extract_text(m.parts) for m in final.messages]
        assert "too early" not in texts

    async def test_wrong_update_type_fails_task(self):
        final = await run(make_runner(wrong_type_handler))
        assert final.state == TaskState.FAILED
        assert "TaskYieldUpdate" in final.error.message

    async def test_non_async_handler_fails_task(self):
        final = await run(make_runner(sync_handler))
        assert final.state == TaskState.FAILED

    async def test_artifacts_recorded(self):
        final = await run(make_runner(artifact_handler))
        assert final.state == TaskState.COMPLETED
        assert final.artifacts[0].artifact.name == "r"


# ---------------------------------------------------------------------------
# Stream / watch
# ---------------------------------------------------------------------------


class TestStream:
    async def test_events_in_yield_order(self):
        runner = make_runner(artifact_handler)
        task = runner.store.create_task(text_message("user", "hi"))

        events = [event async for event in events_of(runner, task)]

        assert [type(e).__name__ for e in events] == [
            "TaskStatusUpdateEvent",
            "TaskArtifactUpdateEvent",
            "TaskStatusUpdateEvent",
        ]
        assert events[0].state == TaskState.WORKING
        assert isinstance(events[1], TaskArtifactUpdateEvent)
        assert events[-1].final is True

    async def test_exactly_one_final_event(self):
        runner = make_runner(echo_handler)
        task = runner.store.create_task(text_message("user", "hi"))
        events = [event async for event in events_of(runner, task)]
        finals = [e for e in events if isinstance(e, TaskStatusUpdateEvent) and e.final]
        assert len(finals) == 1
        assert events[-1] is finals[0]

    async def test_paused_stream_ends_without_final(self):
        runner = make_runner(input_required_handler)
        task = runner.store.create_task(text_message("user", "hi"))
        events = [event async for event in events_of(runner, task)]
        assert events[-1].state == TaskState.INPUT_REQUIRED
        assert events[-1].final is False

    async def test_closing_stream_does_not_stop_task(self):
        gate = asyncio.Event()
        runner = make_runner(gated_handler(gate, []))
        task = runner.store.create_task(text_message("user", "hi"))

        stream = events_of(runner, task)
        first = await anext(stream)
        assert first.state == TaskState.WORKING
        await stream.aclose()
        assert runner.store.subscriber_count(task.id) == 1  # runner's own listener

        gate.set()
        await wait_for_state(runner.store, task.id, TaskState.COMPLETED)

    async def test_job_starts_before_iteration(self):
        runner = make_runner(echo_handler)
        task = runner.store.create_task(text_message("user", "hi"))

        job, _ = runner.start_stream(task, task.messages[0])
        final = await job

        assert final.state == TaskState.COMPLETED
        assert runner.store.subscriber_count(task.id) == 0


class TestWatch:
    async def test_unknown_task_yields_nothing(self):
        runner = make_runner(echo_handler)
        assert [event async for event in runner.watch("missing")] == []

    async def test_terminal_task_yields_one_event(self):
        runner = make_runner(echo_handler)
        final = await run(runner)
        events = [event async for event in runner.watch(final.id)]
        assert len(events) == 1
        assert events[0].state == TaskState.COMPLETED
        assert events[0].final is True

    async def test_current_state_then_live_events(self):
        gate = asyncio.Event()
        runner = make_runner(gated_handler(gate, []))
        task = runner.store.create_task(text_message("user", "hi"))
        runner.start(task, task.messages[0])
        await wait_for_state(runner.store, task.id, TaskState.WORKING)

        watcher = runner.watch(task.id)
        first = await anext(watcher)
        assert first.state == TaskState.WORKING
        gate.set()
        rest = [event async for event in watcher]
        assert [e.state for e in rest] == [TaskState.COMPLETED]


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    async def test_cancel_stops_handler_and_discards_updates(self):
        gate = asyncio.Event()
        seen: list[TaskContext] = []
        runner = make_runner(gated_handler(gate, seen))
        task = runner.store.create_task(text_message("user", "hi"))
        job = runner.start(task, task.messages[0])
        await wait_for_state(runner.store, task.id, TaskState.WORKING)

        runner.store.transition(task.id, TaskState.CANCELLED)
        final = await asyncio.wait_for(job, timeout=1)

        assert final.state == TaskState.CANCELLED
        assert seen[0].is_cancelled
        gate.set()
        await asyncio.sleep(0.01)
        assert runner.store.get(task.id).state == TaskState.CANCELLED

    async def test_cancelled_caller_does_not_cancel_drain(self):
        gate = asyncio.Event()
        runner = make_runner(gated_handler(gate, []))
        task = runner.store.create_task(text_message("user", "hi"))

        caller = asyncio.create_task(runner.drain(task, task.messages[0]))
        await wait_for_state(runner.store, task.id, TaskState.WORKING)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        gate.set()
        await wait_for_state(runner.store, task.id, TaskState.COMPLETED)
