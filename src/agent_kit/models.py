"""Internal data model shared by both protocol adapters.

Tasks, messages and parts are represented once here. The A2A adapter
translates them to and from the ``kind``-discriminated wire format and the
LangGraph adapter projects them onto threads, runs and LangChain-style
messages.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter, field_serializer


def generate_id() -> str:
    """Generate a random identifier (UUID4 string with dashes)."""
    return str(uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize datetime to ISO 8601 format with Z suffix."""
    return value.isoformat().replace("+00:00", "Z")


# ============================================================================
# Task Lifecycle States
# ============================================================================


class TaskState(StrEnum):
    """Lifecycle states of a task."""

    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input_required"
    AUTH_REQUIRED = "auth_required"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


TERMINAL_STATES: frozenset[TaskState] = frozenset(
    {
        TaskState.COMPLETED,
        TaskState.FAILED,
        TaskState.CANCELLED,
        TaskState.REJECTED,
    }
)

VALID_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.SUBMITTED: frozenset(
        {TaskState.WORKING, TaskState.CANCELLED, TaskState.REJECTED}
    ),
    TaskState.WORKING: frozenset(
        {
            TaskState.COMPLETED,
            TaskState.FAILED,
            TaskState.CANCELLED,
            TaskState.INPUT_REQUIRED,
        }
    ),
    TaskState.INPUT_REQUIRED: frozenset({TaskState.WORKING, TaskState.CANCELLED}),
    TaskState.AUTH_REQUIRED: frozenset({TaskState.WORKING, TaskState.CANCELLED}),
}


def is_terminal(state: TaskState) -> bool:
    """Return True if no further transitions are allowed from *state*."""
    return state in TERMINAL_STATES


def can_transition(current: TaskState, target: TaskState) -> bool:
    """Check a transition against the lifecycle table."""
    return target in VALID_TRANSITIONS.get(current, frozenset())


# ============================================================================
# Message Parts
# ============================================================================


class TextPart(BaseModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str
    metadata: dict[str, Any] | None = None


class FileContent(BaseModel):
    """File reference carried by a file part (URL or inline base64)."""

    url: str | None = None
    base64: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    name: str | None = None

    model_config = {"populate_by_name": True}


class FilePart(BaseModel):
    """File content part."""

    type: Literal["file"] = "file"
    file: FileContent
    metadata: dict[str, Any] | None = None


class DataPart(BaseModel):
    """Structured data part."""

    type: Literal["data"] = "data"
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


class ArtifactContent(BaseModel):
    """Artifact produced by an agent."""

    id: str | None = None
    name: str | None = None
    mime_type: str = Field(default="text/plain", alias="mimeType")
    content: str
    description: str | None = None

    model_config = {"populate_by_name": True}


class ArtifactPart(BaseModel):
    """Artifact content part."""

    type: Literal["artifact"] = "artifact"
    artifact: ArtifactContent
    metadata: dict[str, Any] | None = None


Part = Annotated[
    TextPart | FilePart | DataPart | ArtifactPart,
    Field(discriminator="type"),
]

PART_ADAPTER: TypeAdapter[Part] = TypeAdapter(Part)


# ============================================================================
# Messages
# ============================================================================


class Message(BaseModel):
    """One exchange unit between a user and the agent."""

    role: Literal["user", "agent"]
    parts: list[Part]
    message_id: str = Field(default_factory=generate_id, alias="messageId")
    context_id: str | None = Field(default=None, alias="contextId")
    task_id: str | None = Field(default=None, alias="taskId")
    metadata: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


def extract_text(parts: list[Part]) -> str:
    """Join the text of all text parts with newlines."""
    return "\n".join(part.text for part in parts if isinstance(part, TextPart))


def text_message(
    role: Literal["user", "agent"],
    text: str,
    context_id: str | None = None,
    task_id: str | None = None,
) -> Message:
    """Build a single-part text message."""
    return Message(
        role=role,
        parts=[TextPart(text=text)],
        context_id=context_id,
        task_id=task_id,
    )


# ============================================================================
# Tasks
# ============================================================================


class TaskError(BaseModel):
    """Failure details attached to a failed task."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class Task(BaseModel):
    """A tracked unit of agent work."""

    id: str
    state: TaskState = TaskState.SUBMITTED
    context_id: str = Field(alias="contextId")
    messages: list[Message] = Field(default_factory=list)
    artifacts: list[ArtifactPart] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: TaskError | None = None
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


# ============================================================================
# Stream Events
# ============================================================================


class TaskStatusUpdateEvent(BaseModel):
    """A task changed state, optionally with a message."""

    type: Literal["task_status_update"] = "task_status_update"
    task_id: str = Field(alias="taskId")
    context_id: str = Field(alias="contextId")
    state: TaskState
    message: Message | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    final: bool = False

    model_config = {"populate_by_name": True}

    @field_serializer("timestamp")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


class TaskArtifactUpdateEvent(BaseModel):
    """A task produced an artifact."""

    type: Literal["task_artifact_update"] = "task_artifact_update"
    task_id: str = Field(alias="taskId")
    context_id: str = Field(alias="contextId")
    artifact: ArtifactPart
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"populate_by_name": True}

    @field_serializer("timestamp")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


TaskEvent = TaskStatusUpdateEvent | TaskArtifactUpdateEvent


def status_event(task: Task, message: Message | None = None) -> TaskStatusUpdateEvent:
    """Build the status event describing the task's current state."""
    return TaskStatusUpdateEvent(
        task_id=task.id,
        context_id=task.context_id,
        state=task.state,
        message=message,
        timestamp=task.updated_at,
        final=is_terminal(task.state),
    )
