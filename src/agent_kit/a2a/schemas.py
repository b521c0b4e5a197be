"""A2A Protocol Pydantic schemas.

JSON-RPC 2.0 request/response models, method parameter models and the
agent card for the Agent-to-Agent Protocol implementation.

Task, message and part payloads are not modeled here: they are translated
between the internal models and the ``kind``-discriminated wire format by
:mod:`agent_kit.a2a.wire`.
"""

from enum import IntEnum, StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


# ============================================================================
# JSON-RPC 2.0 Error Codes
# ============================================================================


class JsonRpcErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 error codes plus the A2A reserved range."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # A2A-specific error codes (application-defined)
    TASK_NOT_FOUND = -32001
    TASK_CANCELLED = -32002
    PUSH_NOTIFICATION_NOT_SUPPORTED = -32003
    VERSION_NOT_SUPPORTED = -32004
    CONTENT_TYPE_NOT_SUPPORTED = -32005
    AUTHENTICATION_REQUIRED = -32006
    AUTHORIZATION_FAILED = -32007
    RATE_LIMITED = -32008


# ============================================================================
# JSON-RPC 2.0 Base Models
# ============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None = None
    method: str
    params: dict[str, Any] | None = None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response object."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: str | int | None = None
    result: Any | None = None
    error: JsonRpcError | None = None

    def model_dump(self, **kwargs) -> dict[str, Any]:
        """Custom dump to exclude None result/error based on which is set."""
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


# ============================================================================
# Methods
# ============================================================================


class A2AMethod(StrEnum):
    """Canonical A2A JSON-RPC method names."""

    MESSAGE_SEND = "message/send"
    MESSAGE_STREAM = "message/stream"
    TASKS_GET = "tasks/get"
    TASKS_LIST = "tasks/list"
    TASKS_CANCEL = "tasks/cancel"
    TASKS_RESUBSCRIBE = "tasks/resubscribe"
    EXTENDED_CARD = "agent/authenticatedExtendedCard"
    PUSH_CONFIG_SET = "tasks/pushNotificationConfig/set"
    PUSH_CONFIG_GET = "tasks/pushNotificationConfig/get"
    PUSH_CONFIG_DELETE = "tasks/pushNotificationConfig/delete"
    PUSH_CONFIG_LIST = "tasks/pushNotificationConfig/list"


# Legacy and gRPC-style names accepted interchangeably with the canonical ones
METHOD_ALIASES: dict[str, A2AMethod] = {
    "SendMessage": A2AMethod.MESSAGE_SEND,
    "a2a.SendMessage": A2AMethod.MESSAGE_SEND,
    "SendStreamingMessage": A2AMethod.MESSAGE_STREAM,
    "a2a.SendStreamingMessage": A2AMethod.MESSAGE_STREAM,
    "GetTask": A2AMethod.TASKS_GET,
    "a2a.GetTask": A2AMethod.TASKS_GET,
    "ListTasks": A2AMethod.TASKS_LIST,
    "a2a.ListTasks": A2AMethod.TASKS_LIST,
    "CancelTask": A2AMethod.TASKS_CANCEL,
    "a2a.CancelTask": A2AMethod.TASKS_CANCEL,
    "SubscribeToTask": A2AMethod.TASKS_RESUBSCRIBE,
    "a2a.SubscribeToTask": A2AMethod.TASKS_RESUBSCRIBE,
    "GetExtendedAgentCard": A2AMethod.EXTENDED_CARD,
    "a2a.GetExtendedAgentCard": A2AMethod.EXTENDED_CARD,
    "SetTaskPushNotificationConfig": A2AMethod.PUSH_CONFIG_SET,
    "GetTaskPushNotificationConfig": A2AMethod.PUSH_CONFIG_GET,
    "DeleteTaskPushNotificationConfig": A2AMethod.PUSH_CONFIG_DELETE,
    "ListTaskPushNotificationConfig": A2AMethod.PUSH_CONFIG_LIST,
}

STREAMING_METHODS = frozenset({A2AMethod.MESSAGE_STREAM, A2AMethod.TASKS_RESUBSCRIBE})

PUSH_NOTIFICATION_METHODS = frozenset(
    {
        A2AMethod.PUSH_CONFIG_SET,
        A2AMethod.PUSH_CONFIG_GET,
        A2AMethod.PUSH_CONFIG_DELETE,
        A2AMethod.PUSH_CONFIG_LIST,
    }
)


def resolve_method(method: str) -> A2AMethod | None:
    """Map a method name or alias to its canonical method, or None."""
    if method in METHOD_ALIASES:
        return METHOD_ALIASES[method]
    try:
        return A2AMethod(method)
    except ValueError:
        return None


# ============================================================================
# A2A Method Parameters
# ============================================================================


class MessageSendConfiguration(BaseModel):
    """Optional request configuration of message/send."""

    blocking: bool | None = None
    history_length: int | None = Field(default=None, ge=0, alias="historyLength")
    accepted_output_modes: list[str] | None = Field(
        default=None, alias="acceptedOutputModes"
    )

    model_config = {"populate_by_name": True}


class MessageSendParams(BaseModel):
    """Parameters for message/send and message/stream methods.

    The message itself stays a raw mapping and is decoded by
    :func:`agent_kit.a2a.wire.decode_message`.
    """

    message: dict[str, Any]
    configuration: MessageSendConfiguration | None = None
    metadata: dict[str, Any] | None = None


class TaskIdParams(BaseModel):
    """Parameters addressing one task.

    The id may be given as ``id``, ``taskId`` or as a resource ``name``
    (``tasks/{id}``).
    """

    id: str | None = None
    task_id: str | None = Field(default=None, alias="taskId")
    name: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}

    def resolve_task_id(self) -> str:
        """Return the bare task id.

        Raises:
            ValueError: If no identifier was supplied.
        """
        raw = self.id or self.task_id or self.name
        if not raw:
            raise ValueError("Missing task id: provide 'id' or 'name'")
        return raw.removeprefix("tasks/")


class TaskQueryParams(TaskIdParams):
    """Parameters for tasks/get."""

    history_length: int | None = Field(default=None, ge=0, alias="historyLength")


class TaskCancelParams(TaskIdParams):
    """Parameters for tasks/cancel."""

    reason: str | None = None


class TaskResubscribeParams(TaskIdParams):
    """Parameters for tasks/resubscribe."""

    last_event_id: str | None = Field(default=None, alias="lastEventId")


class TaskListParams(BaseModel):
    """Parameters for tasks/list.

    ``pageToken`` is the offset of the first task of the page, as returned
    in ``nextPageToken`` by the previous call.
    """

    context_id: str | None = Field(default=None, alias="contextId")
    status: str | list[str] | None = None
    page_size: int = Field(default=10, ge=1, le=1000, alias="pageSize")
    page_token: str | None = Field(default=None, alias="pageToken")

    model_config = {"populate_by_name": True}

    def statuses(self) -> list[str]:
        if self.status is None:
            return []
        if isinstance(self.status, str):
            return [self.status]
        return list(self.status)

    def offset(self) -> int:
        if not self.page_token:
            return 0
        try:
            offset = int(self.page_token)
        except ValueError:
            raise ValueError(f"Invalid pageToken: {self.page_token}") from None
        if offset < 0:
            raise ValueError(f"Invalid pageToken: {self.page_token}")
        return offset


# ============================================================================
# Agent Card
# ============================================================================


class AgentProvider(BaseModel):
    """Organization publishing the agent."""

    name: str | None = None
    organization: str
    url: str | None = None
    email: str | None = None


class AgentCapabilities(BaseModel):
    """Capability flags; unknown flags are kept as extra fields."""

    streaming: bool | None = None
    push_notifications: bool | None = Field(default=None, alias="pushNotifications")
    extended_cards: bool | None = Field(default=None, alias="extendedCards")
    multi_turn: bool | None = Field(default=None, alias="multiTurn")

    model_config = {"populate_by_name": True, "extra": "allow"}


class AgentSkill(BaseModel):
    """A skill that the agent can perform."""

    id: str
    name: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    input_schema: dict[str, Any] | None = Field(default=None, alias="inputSchema")
    output_schema: dict[str, Any] | None = Field(default=None, alias="outputSchema")
    examples: list[dict[str, Any]] | None = None

    model_config = {"populate_by_name": True}


class SecurityScheme(BaseModel):
    """Security scheme declaration (apiKey, http, oauth2, openIdConnect, mutualTLS).

    Scheme specific fields (``in``, ``scheme``, ``flows``...) are kept as
    extra fields.
    """

    type: Literal["apiKey", "http", "oauth2", "openIdConnect", "mutualTLS"]
    description: str | None = None

    model_config = {"extra": "allow"}


class ProtocolBinding(BaseModel):
    """Transport binding offered by the agent."""

    type: Literal["jsonrpc", "grpc", "http"]
    url: str
    config: dict[str, Any] | None = None


class AgentCardSignature(BaseModel):
    """Cryptographic signature for card integrity."""

    algorithm: str
    value: str
    key_id: str | None = Field(default=None, alias="keyId")

    model_config = {"populate_by_name": True}


class AgentCard(BaseModel):
    """Agent Card: identity, capabilities and security requirements.

    Served raw (no JSON-RPC envelope) at ``/.well-known/agent-card.json``.
    """

    name: str
    url: str
    description: str | None = None
    version: str | None = None
    provider: AgentProvider | None = None
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)
    default_input_modes: list[str] = Field(
        default_factory=lambda: ["text"], alias="defaultInputModes"
    )
    default_output_modes: list[str] = Field(
        default_factory=lambda: ["text"], alias="defaultOutputModes"
    )
    skills: list[AgentSkill] = Field(default_factory=list)
    security_schemes: dict[str, SecurityScheme] | None = Field(
        default=None, alias="securitySchemes"
    )
    security: list[dict[str, list[str]]] | None = None
    protocols: list[ProtocolBinding] | None = None
    default_input_content_types: list[str] | None = Field(
        default=None, alias="defaultInputContentTypes"
    )
    default_output_content_types: list[str] | None = Field(
        default=None, alias="defaultOutputContentTypes"
    )
    a2a_version: str | None = Field(default=None, alias="a2aVersion")
    extended_card_url: str | None = Field(default=None, alias="extendedCardUrl")
    metadata: dict[str, Any] | None = None
    signature: AgentCardSignature | None = None

    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        """JSON form of the card with camelCase keys and no null fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Helper Functions
# ============================================================================


def create_error_response(
    request_id: str | int | None,
    code: int,
    message: str,
    data: Any | None = None,
) -> JsonRpcResponse:
    """Create a JSON-RPC error response."""
    return JsonRpcResponse(
        id=request_id,
        error=JsonRpcError(code=code, message=message, data=data),
    )


def create_success_response(
    request_id: str | int | None,
    result: Any,
) -> JsonRpcResponse:
    """Create a JSON-RPC success response."""
    return JsonRpcResponse(id=request_id, result=result)
