"""Translation between internal models and the A2A wire format.

This module is the only place where the two dialects meet:

- parts are discriminated by ``type`` internally and by ``kind`` on the wire;
- wire messages carry ``kind: "message"`` and always a ``messageId``;
- wire tasks nest the state under ``status`` and always carry a
  ``contextId`` (falling back to the task id);
- stream events are ``status-update`` / ``artifact-update`` objects.

Decoders accept both camelCase and snake_case identifiers (``contextId`` /
``context_id`` and friends) so that third-party producers interoperate.
All functions are pure and raise ``ValueError`` (pydantic's
``ValidationError`` included) on malformed input.
"""

from datetime import datetime
from typing import Any

from agent_kit.models import (
    PART_ADAPTER,
    ArtifactPart,
    Message,
    Part,
    Task,
    TaskArtifactUpdateEvent,
    TaskError,
    TaskEvent,
    TaskState,
    TaskStatusUpdateEvent,
    format_timestamp,
    generate_id,
    is_terminal,
)

KIND_MESSAGE = "message"
KIND_TASK = "task"
KIND_STATUS_UPDATE = "status-update"
KIND_ARTIFACT_UPDATE = "artifact-update"

# Spellings used by other A2A implementations
_STATE_SYNONYMS = {"canceled": TaskState.CANCELLED}


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"Invalid {what}: expected an object")
    return data


def decode_state(value: Any) -> TaskState:
    """Parse a wire task state (``input-required`` and ``input_required`` alike)."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid task state: {value!r}")
    normalized = value.strip().lower().replace("-", "_")
    if normalized in _STATE_SYNONYMS:
        return _STATE_SYNONYMS[normalized]
    try:
        return TaskState(normalized)
    except ValueError:
        raise ValueError(f"Invalid task state: {value!r}") from None


# ============================================================================
# Parts
# ============================================================================


def encode_part(part: Part) -> dict[str, Any]:
    """Encode a part, renaming ``type`` to ``kind``."""
    data = part.model_dump(mode="json", by_alias=True, exclude_none=True)
    data["kind"] = data.pop("type")
    return data


def decode_part(data: Any) -> Part:
    """Decode a wire part; ``kind`` is preferred, ``type`` is accepted."""
    data = dict(_require_mapping(data, "part"))
    kind = data.pop("kind", None)
    if kind is not None:
        data["type"] = kind
    return PART_ADAPTER.validate_python(data)


# ============================================================================
# Messages
# ============================================================================


def encode_message(message: Message) -> dict[str, Any]:
    """Encode a message; a missing ``messageId`` is generated."""
    data: dict[str, Any] = {
        "kind": KIND_MESSAGE,
        "role": message.role,
        "parts": [encode_part(part) for part in message.parts],
        "messageId": message.message_id or generate_id(),
    }
    if message.context_id is not None:
        data["contextId"] = message.context_id
    if message.task_id is not None:
        data["taskId"] = message.task_id
    if message.metadata is not None:
        data["metadata"] = message.metadata
    return data


def decode_message(data: Any) -> Message:
    """Decode a wire message into the internal model."""
    data = _require_mapping(data, "message")
    parts = data.get("parts")
    if not isinstance(parts, list):
        raise ValueError("Invalid message: 'parts' must be a list")
    fields: dict[str, Any] = {
        "role": data.get("role"),
        "parts": [decode_part(part) for part in parts],
        "context_id": _pick(data, "contextId", "context_id"),
        "task_id": _pick(data, "taskId", "task_id"),
        "metadata": data.get("metadata"),
    }
    message_id = _pick(data, "messageId", "message_id")
    if message_id is not None:
        fields["message_id"] = message_id
    return Message.model_validate(fields)


# ============================================================================
# Tasks
# ============================================================================


def _encode_status(
    state: TaskState, timestamp: datetime, message: Message | None
) -> dict[str, Any]:
    status: dict[str, Any] = {"state": str(state), "timestamp": format_timestamp(timestamp)}
    if message is not None:
        status["message"] = encode_message(message)
    return status


def encode_task(task: Task, history_length: int | None = None) -> dict[str, Any]:
    """Encode a task.

    Args:
        task: Internal task.
        history_length: When given, only the last N messages are included
            in ``history``.
    """
    history = task.messages
    if history_length is not None:
        history = history[-history_length:] if history_length > 0 else []

    latest = task.messages[-1] if task.messages else None
    status_message = latest if latest is not None and latest.role == "agent" else None

    data: dict[str, Any] = {
        "kind": KIND_TASK,
        "id": task.id,
        "contextId": task.context_id or task.id,
        "status": _encode_status(task.state, task.updated_at, status_message),
        "history": [encode_message(message) for message in history],
        "artifacts": [encode_part(artifact) for artifact in task.artifacts],
        "metadata": task.metadata,
    }
    if task.error is not None:
        data["error"] = task.error.model_dump(exclude_none=True)
    return data


def decode_task(data: Any) -> Task:
    """Decode a wire task (``kind: "task"``) into the internal model."""
    data = _require_mapping(data, "task")
    status = _require_mapping(data.get("status") or {}, "task status")
    state_value = status.get("state", data.get("state"))
    task_id = data.get("id")
    fields: dict[str, Any] = {
        "id": task_id,
        "state": decode_state(state_value) if state_value is not None else TaskState.SUBMITTED,
        "context_id": _pick(data, "contextId", "context_id") or task_id,
        "messages": [decode_message(m) for m in data.get("history") or []],
        "artifacts": [decode_part(a) for a in data.get("artifacts") or []],
        "metadata": data.get("metadata") or {},
    }
    if data.get("error") is not None:
        fields["error"] = TaskError.model_validate(data["error"])
    if status.get("timestamp"):
        fields["updated_at"] = status["timestamp"]
    return Task.model_validate(fields)


# ============================================================================
# Stream Events
# ============================================================================


def encode_event(event: TaskEvent) -> dict[str, Any]:
    """Encode an internal stream event as a ``status-update``/``artifact-update``."""
    if isinstance(event, TaskStatusUpdateEvent):
        return {
            "kind": KIND_STATUS_UPDATE,
            "taskId": event.task_id,
            "contextId": event.context_id or event.task_id,
            "status": _encode_status(event.state, event.timestamp, event.message),
            "final": is_terminal(event.state),
        }
    return {
        "kind": KIND_ARTIFACT_UPDATE,
        "taskId": event.task_id,
        "contextId": event.context_id or event.task_id,
        "artifact": encode_part(event.artifact),
        "timestamp": format_timestamp(event.timestamp),
    }


def decode_event(data: Any) -> TaskEvent | Task:
    """Decode a streamed result object.

    Returns:
        A status or artifact event, or a :class:`Task` for ``kind: "task"``
        snapshots.

    Raises:
        ValueError: For unknown kinds or malformed payloads.
    """
    data = _require_mapping(data, "event")
    kind = data.get("kind")
    if kind == KIND_TASK:
        return decode_task(data)

    task_id = _pick(data, "taskId", "task_id")
    context_id = _pick(data, "contextId", "context_id") or task_id
    if kind == KIND_STATUS_UPDATE:
        status = _require_mapping(data.get("status") or {}, "event status")
        fields: dict[str, Any] = {
            "task_id": task_id,
            "context_id": context_id,
            "state": decode_state(status.get("state")),
            "final": bool(data.get("final", False)),
        }
        if status.get("message") is not None:
            fields["message"] = decode_message(status["message"])
        if status.get("timestamp"):
            fields["timestamp"] = status["timestamp"]
        return TaskStatusUpdateEvent.model_validate(fields)
    if kind == KIND_ARTIFACT_UPDATE:
        artifact = decode_part(data.get("artifact"))
        if not isinstance(artifact, ArtifactPart):
            raise ValueError("Invalid artifact-update: artifact must be an artifact part")
        fields = {"task_id": task_id, "context_id": context_id, "artifact": artifact}
        if data.get("timestamp"):
            fields["timestamp"] = data["timestamp"]
        return TaskArtifactUpdateEvent.model_validate(fields)
    raise ValueError(f"Unknown event kind: {kind!r}")
