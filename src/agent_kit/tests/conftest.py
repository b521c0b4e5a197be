"""Pytest configuration and shared fixtures.

Usage::

    uv run pytest
    uv run pytest src/agent_kit/tests/test_handler.py -v
"""

from dataclasses import dataclass

import pytest

from agent_kit.a2a.handlers import A2AMethodHandler
from agent_kit.a2a.schemas import AgentCapabilities, AgentCard, AgentSkill
from agent_kit.config import reset_config
from agent_kit.echo import echo_handler
from agent_kit.handler import TaskHandler, TaskRunner
from agent_kit.langgraph.handlers import LangGraphService
from agent_kit.storage import Storage


@pytest.fixture(autouse=True)
def _reset_config():
    """Every test starts from a configuration read fresh from the env."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def agent_card() -> AgentCard:
    return AgentCard(
        name="Test Agent",
        description="Agent used in tests",
        url="http://localhost:3000",
        version="1.0.0",
        capabilities=AgentCapabilities(streaming=True, push_notifications=False),
        skills=[AgentSkill(id="echo", name="Echo", tags=["test"])],
    )


@pytest.fixture
def storage() -> Storage:
    return Storage()


@pytest.fixture
def runner(storage: Storage) -> TaskRunner:
    return TaskRunner(storage.tasks, echo_handler)


@pytest.fixture
def a2a_handler(storage: Storage, runner: TaskRunner, agent_card: AgentCard):
    return A2AMethodHandler(storage.tasks, runner, agent_card)


@pytest.fixture
def service(storage: Storage, runner: TaskRunner, a2a_handler: A2AMethodHandler):
    return LangGraphService(storage, runner, lambda: a2a_handler.agent_card)


@dataclass
class Stack:
    """Everything ``create_app`` wires together, minus the HTTP layer."""

    storage: Storage
    runner: TaskRunner
    a2a: A2AMethodHandler
    service: LangGraphService


@pytest.fixture
def make_stack(agent_card: AgentCard):
    """Factory building a fresh stack around a given task handler."""

    def build(handler: TaskHandler = echo_handler) -> Stack:
        storage = Storage()
        runner = TaskRunner(storage.tasks, handler)
        a2a = A2AMethodHandler(storage.tasks, runner, agent_card)
        service = LangGraphService(storage, runner, lambda: a2a.agent_card)
        return Stack(storage, runner, a2a, service)

    return build
