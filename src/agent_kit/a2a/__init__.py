"""A2A (Agent-to-Agent) Protocol implementation.

This package exposes the agent through JSON-RPC 2.0 over HTTP with SSE
streaming, and provides a client for talking to other A2A agents.

Supported Methods:
- message/send: Send message and wait for the final task
- message/stream: Send message and stream task events (SSE)
- tasks/get, tasks/list: Inspect tasks
- tasks/cancel: Cancel a non-terminal task
- tasks/resubscribe: Follow an existing task (SSE)
- agent/authenticatedExtendedCard: Return the agent card

Legacy names (``SendMessage``, ``a2a.SendMessage``, ...) are accepted too.
"""

from agent_kit.a2a.client import (
    A2AClient,
    A2AError,
    AuthenticationRequiredError,
    TaskNotFoundError,
    TaskPage,
    VersionNotSupportedError,
    discover_agent,
)
from agent_kit.a2a.handlers import A2AMethodHandler, JsonRpcMethodError
from agent_kit.a2a.schemas import (
    A2AMethod,
    AgentCapabilities,
    AgentCard,
    AgentProvider,
    AgentSkill,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    ProtocolBinding,
    SecurityScheme,
    create_error_response,
    create_success_response,
)

__all__ = [
    # Handler
    "A2AMethodHandler",
    "JsonRpcMethodError",
    # Client
    "A2AClient",
    "A2AError",
    "AuthenticationRequiredError",
    "TaskNotFoundError",
    "TaskPage",
    "VersionNotSupportedError",
    "discover_agent",
    # Schemas
    "A2AMethod",
    "AgentCapabilities",
    "AgentCard",
    "AgentProvider",
    "AgentSkill",
    "JsonRpcError",
    "JsonRpcErrorCode",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "ProtocolBinding",
    "SecurityScheme",
    "create_error_response",
    "create_success_response",
]
