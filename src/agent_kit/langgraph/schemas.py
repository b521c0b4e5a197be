"""Pydantic models for the LangGraph-compatible REST API.

Request and response shapes follow the LangGraph Platform API closely
enough for LangGraph SDK clients to consume the server.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_serializer, field_validator

from agent_kit.models import format_timestamp


# ============================================================================
# Server Info
# ============================================================================


class ServerInfo(BaseModel):
    """Response of ``GET /info``."""

    version: str = "1.0.0"
    langgraph_api_version: str = "0.1.0"


# ============================================================================
# Assistant Models
# ============================================================================


class Assistant(BaseModel):
    """Assistant resource.

    Exactly one assistant exists per server, derived from the agent card.
    """

    assistant_id: str
    graph_id: str = "agent"
    name: str | None = None
    description: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


class AssistantSearchRequest(BaseModel):
    """Request to search assistants."""

    metadata: dict[str, Any] | None = None
    graph_id: str | None = None
    limit: int = Field(default=10, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


# ============================================================================
# Thread Models
# ============================================================================


class ThreadCreate(BaseModel):
    """Request to create a thread."""

    thread_id: str | None = None  # Optional, auto-generated if not provided
    metadata: dict[str, Any] = Field(default_factory=dict)
    if_exists: Literal["raise", "do_nothing"] = "raise"


class Thread(BaseModel):
    """Thread resource.

    A thread is a conversation context; its id doubles as the ``contextId``
    of every task run against it.
    """

    thread_id: str
    status: str = "idle"  # "idle", "busy", "interrupted", "error"
    metadata: dict[str, Any] = Field(default_factory=dict)
    values: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


class ThreadState(BaseModel):
    """Point-in-time snapshot of a thread's state."""

    values: dict[str, Any] = Field(default_factory=lambda: {"messages": []})
    next: list[str] = Field(default_factory=list)
    tasks: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None


class ThreadSearchRequest(BaseModel):
    """Request to search threads."""

    metadata: dict[str, Any] | None = None
    status: str | None = None  # "idle", "busy", "interrupted", "error"
    limit: int = Field(default=10, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


# ============================================================================
# Run Models
# ============================================================================


MULTITASK_STRATEGIES = ("reject", "enqueue", "rollback", "interrupt")
ON_COMPLETION_ACTIONS = ("delete", "keep")


class RunCreate(BaseModel):
    """Request to create, wait on, or stream a run.

    ``input`` is free-form; it is normalized into a single inbound message
    by :func:`agent_kit.langgraph.messages.normalize_run_input`. Optional
    fields that are ``null`` or unrecognized fall back to their defaults.
    """

    assistant_id: str | None = None  # Defaults to the server's assistant
    input: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    multitask_strategy: str = "enqueue"
    on_completion: Literal["delete", "keep"] = "delete"  # stateless runs only

    @field_validator("assistant_id", mode="before")
    @classmethod
    def _assistant_id_as_text(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("multitask_strategy", mode="before")
    @classmethod
    def _known_strategy(cls, value: Any) -> str:
        return value if value in MULTITASK_STRATEGIES else "enqueue"

    @field_validator("on_completion", mode="before")
    @classmethod
    def _known_completion(cls, value: Any) -> str:
        return value if value in ON_COMPLETION_ACTIONS else "delete"


class Run(BaseModel):
    """Run resource. Maps 1:1 to a task; ``run_id`` is the task id."""

    run_id: str
    thread_id: str
    assistant_id: str
    status: str = "pending"  # "pending", "running", "success", "error", "interrupted"
    metadata: dict[str, Any] = Field(default_factory=dict)
    multitask_strategy: str = "enqueue"
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    @classmethod
    def serialize_datetime(cls, value: datetime) -> str:
        """Serialize datetime to ISO 8601 format with Z suffix."""
        return format_timestamp(value)


# ============================================================================
# Messages
# ============================================================================


class LangGraphMessage(BaseModel):
    """LangChain-style message as exchanged by LangGraph clients."""

    type: Literal["human", "ai"]
    content: str
    id: str
