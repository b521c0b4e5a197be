"""Echo agent: the reference task handler.

Replies to every message with ``Echo: <text>``. Used by ``agent-kit`` /
``python -m agent_kit`` and as a fixture in tests.
"""

from typing import AsyncIterator

from agent_kit.a2a.schemas import AgentSkill
from agent_kit.handler import TaskContext, TaskYieldUpdate
from agent_kit.models import TaskState, extract_text, text_message

ECHO_SKILL = AgentSkill(
    id="echo",
    name="Echo",
    description="Repeats the text of the inbound message",
    tags=["echo", "test"],
)


async def echo_handler(context: TaskContext) -> AsyncIterator[TaskYieldUpdate]:
    """Yield ``working``, then ``completed`` with the echoed text."""
    text = extract_text(context.message.parts)
    yield TaskYieldUpdate(state=TaskState.WORKING)
    yield TaskYieldUpdate(
        state=TaskState.COMPLETED,
        message=text_message("agent", f"Echo: {text}"),
    )
