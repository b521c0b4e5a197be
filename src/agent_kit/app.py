"""Application assembly and entry point.

:func:`create_app` wires one task store and one task runner to both
protocol adapters, installs the dual router and registers every route on
a single Robyn application. :class:`AgentServer` is the object integrators
hold on to afterwards.
"""

import json
import logging
import os
import re

# ---------------------------------------------------------------------------
# Logging: configure BEFORE any other imports so all loggers inherit the level.
# Set LOG_LEVEL=DEBUG in .env or environment for full request tracing.
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)

from robyn import Request, Robyn  # noqa: E402

from agent_kit.a2a.handlers import A2AMethodHandler, AgentCardUpdate  # noqa: E402
from agent_kit.a2a.schemas import (  # noqa: E402
    AgentCapabilities,
    AgentCard,
    AgentSkill,
    ProtocolBinding,
)
from agent_kit.config import AgentConfig, Config, get_config  # noqa: E402
from agent_kit.echo import ECHO_SKILL, echo_handler  # noqa: E402
from agent_kit.handler import TaskHandler, TaskRunner  # noqa: E402
from agent_kit.langgraph.handlers import LangGraphService  # noqa: E402
from agent_kit.router import register_dual_router  # noqa: E402
from agent_kit.routes.a2a import register_a2a_routes  # noqa: E402
from agent_kit.routes.assistants import register_assistant_routes  # noqa: E402
from agent_kit.routes.helpers import request_path  # noqa: E402
from agent_kit.routes.runs import register_run_routes  # noqa: E402
from agent_kit.routes.streams import register_stream_routes  # noqa: E402
from agent_kit.routes.system import register_system_routes  # noqa: E402
from agent_kit.routes.threads import register_thread_routes  # noqa: E402
from agent_kit.storage import Storage  # noqa: E402

logger = logging.getLogger(__name__)

# Resource ids directly after known resource names.
_PATH_ID_PATTERN = re.compile(
    r"/(?P<resource>assistants|threads|runs)/(?P<id>[0-9a-zA-Z-]{8,64})"
)

# Keys whose values must never appear in debug logs.
_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "api_key",
        "apikey",
        "api-key",
        "token",
        "secret",
        "password",
        "credential",
    }
)


# ---------------------------------------------------------------------------
# Debug request logging
# ---------------------------------------------------------------------------


def _is_sensitive_key(key: str) -> bool:
    """Check if a key name contains any sensitive keyword (substring match)."""
    lower = key.lower()
    return any(sensitive in lower for sensitive in _SENSITIVE_KEYS)


def _mask_sensitive(obj: object, _depth: int = 0) -> None:
    """Recursively mask values of sensitive keys in a dict/list, in-place.

    Handles nested structures up to depth 5.
    """
    if _depth > 5:
        return
    if isinstance(obj, dict):
        for key in obj:
            if isinstance(key, str) and _is_sensitive_key(key):
                obj[key] = "***"
            else:
                _mask_sensitive(obj[key], _depth + 1)
    elif isinstance(obj, list):
        for item in obj:
            _mask_sensitive(item, _depth + 1)


async def log_request(request: Request) -> Request:
    """Log incoming requests at DEBUG level, with sensitive values masked."""
    if not logger.isEnabledFor(logging.DEBUG):
        return request

    path = request_path(request)
    method = getattr(request, "method", "?")
    ids = {m.group("resource"): m.group("id") for m in _PATH_ID_PATTERN.finditer(path)}
    id_parts = " ".join(f"{resource[:-1]}_id={rid}" for resource, rid in ids.items())
    logger.debug("▶ %s %s %s", method, path, id_parts)

    if method in ("POST", "PUT", "PATCH"):
        raw_body = getattr(request, "body", None)
        if raw_body:
            body_str = (
                raw_body
                if isinstance(raw_body, str)
                else raw_body.decode("utf-8", errors="replace")
            )
            if len(body_str) > 4096:
                logger.debug("  body: <%d bytes, truncated>", len(body_str))
                return request
            try:
                body_obj = json.loads(body_str)
            except json.JSONDecodeError:
                logger.debug("  body (raw): %s", body_str[:2048])
            else:
                _mask_sensitive(body_obj)
                logger.debug("  body: %s", json.dumps(body_obj, default=str))

    return request


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_agent_card(
    agent: AgentConfig, skills: list[AgentSkill] | None = None
) -> AgentCard:
    """Default agent card for an agent described by configuration."""
    return AgentCard(
        name=agent.name,
        description=agent.description,
        url=agent.url,
        version=agent.version,
        capabilities=AgentCapabilities(
            streaming=True,
            push_notifications=False,
            extended_cards=True,
        ),
        skills=skills or [],
        protocols=[ProtocolBinding(type="jsonrpc", url=agent.url)],
    )


class AgentServer:
    """A task handler served over both protocols.

    Attributes:
        app: The Robyn application holding every route.
        storage: Stores shared by both adapters.
        runner: Runner driving the task handler.
        a2a: A2A JSON-RPC method handler.
        langgraph: LangGraph service.
    """

    def __init__(
        self,
        app: Robyn,
        storage: Storage,
        runner: TaskRunner,
        a2a: A2AMethodHandler,
        langgraph: LangGraphService,
        config: Config,
    ) -> None:
        self.app = app
        self.storage = storage
        self.runner = runner
        self.a2a = a2a
        self.langgraph = langgraph
        self.config = config

    @property
    def agent_card(self) -> AgentCard:
        return self.a2a.agent_card

    def update_agent_card(self, update: AgentCardUpdate) -> AgentCard:
        """Update the card served by A2A discovery and the LangGraph assistant."""
        return self.a2a.update_agent_card(update)

    def start(self, host: str | None = None, port: int | None = None) -> None:
        """Start serving. Blocks until the server stops."""
        host = host or self.config.server.host
        port = port or self.config.server.port
        logger.info("Starting %s on %s:%d", self.agent_card.name, host, port)
        self.app.start(host=host, port=port)


def create_app(
    handler: TaskHandler,
    agent_card: AgentCard | None = None,
    config: Config | None = None,
    app: Robyn | None = None,
) -> AgentServer:
    """Build the dual-protocol server around *handler*.

    Args:
        handler: The agent's task handler.
        agent_card: Card to advertise; built from configuration if omitted.
        config: Configuration; read from the environment if omitted.
        app: Application to register on; a new Robyn app if omitted.

    Returns:
        The assembled server.
    """
    config = config or get_config()
    agent_card = agent_card or build_agent_card(config.agent)
    app = app if app is not None else Robyn(__file__)

    storage = Storage()
    runner = TaskRunner(storage.tasks, handler)
    a2a = A2AMethodHandler(
        storage.tasks,
        runner,
        agent_card,
        supported_versions=config.a2a.supported_versions,
    )
    langgraph = LangGraphService(storage, runner, lambda: a2a.agent_card)

    @app.before_request()
    async def request_logging_middleware(request: Request) -> Request:
        return await log_request(request)

    register_dual_router(app, config.cors)
    register_a2a_routes(app, a2a)
    register_system_routes(app, langgraph)
    register_assistant_routes(app, langgraph)
    register_thread_routes(app, langgraph)
    register_run_routes(app, langgraph)
    register_stream_routes(app, langgraph)

    logger.info("Agent server assembled: agent=%s", agent_card.name)
    return AgentServer(app, storage, runner, a2a, langgraph, config)


def main() -> None:
    """Serve the echo agent configured from the environment."""
    config = get_config()
    server = create_app(
        echo_handler,
        agent_card=build_agent_card(config.agent, skills=[ECHO_SKILL]),
        config=config,
    )
    server.start()


if __name__ == "__main__":
    main()
