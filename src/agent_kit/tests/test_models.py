"""Tests for the internal data model and the lifecycle table."""

import itertools

import pytest
from pydantic import ValidationError

from agent_kit.models import (
    PART_ADAPTER,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ArtifactPart,
    DataPart,
    FilePart,
    Message,
    TaskState,
    TextPart,
    can_transition,
    extract_text,
    format_timestamp,
    is_terminal,
    text_message,
    utc_now,
)

# Expected lifecycle table, as (from, to) pairs.
ALLOWED = {
    (source, target)
    for source, targets in {
        TaskState.SUBMITTED: ["working", "cancelled", "rejected"],
        TaskState.WORKING: ["completed", "failed", "cancelled", "input_required"],
        TaskState.INPUT_REQUIRED: ["working", "cancelled"],
        TaskState.AUTH_REQUIRED: ["working", "cancelled"],
    }.items()
    for target in map(TaskState, targets)
}


class TestLifecycleTable:
    """The transition table and terminal states."""

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            TaskState.COMPLETED,
            TaskState.FAILED,
            TaskState.CANCELLED,
            TaskState.REJECTED,
        }

    @pytest.mark.parametrize("state", list(TaskState))
    def test_terminal_states_have_no_exits(self, state):
        if is_terminal(state):
            assert not any(can_transition(state, target) for target in TaskState)

    @pytest.mark.parametrize(
        ("current", "target"), list(itertools.product(TaskState, TaskState))
    )
    def test_every_pair(self, current, target):
        expected = (current, target) in ALLOWED
        assert can_transition(current, target) is expected
        assert (target in VALID_TRANSITIONS.get(current, ())) is expected

    def test_every_non_terminal_state_has_exits(self):
        for state in TaskState:
            if not is_terminal(state):
                assert VALID_TRANSITIONS[state]


class TestParts:
    """Discriminated part union."""

    def test_text_part_from_dict(self):
        part = PART_ADAPTER.validate_python({"type": "text", "text": "hi"})
        assert isinstance(part, TextPart)
        assert part.text == "hi"

    def test_file_part_aliases(self):
        part = PART_ADAPTER.validate_python(
            {"type": "file", "file": {"url": "https://x/y.png", "mimeType": "image/png"}}
        )
        assert isinstance(part, FilePart)
        assert part.file.mime_type == "image/png"

    def test_data_part(self):
        part = PART_ADAPTER.validate_python({"type": "data", "data": {"a": 1}})
        assert isinstance(part, DataPart)

    def test_artifact_part_defaults(self):
        part = PART_ADAPTER.validate_python(
            {"type": "artifact", "artifact": {"content": "body"}}
        )
        assert isinstance(part, ArtifactPart)
        assert part.artifact.mime_type == "text/plain"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            PART_ADAPTER.validate_python({"type": "video", "url": "x"})


class TestMessages:
    def test_text_message_generates_id(self):
        first = text_message("user", "a")
        second = text_message("user", "a")
        assert first.message_id != second.message_id

    def test_extract_text_joins_text_parts_only(self):
        message = Message(
            role="user",
            parts=[
                TextPart(text="one"),
                DataPart(data={"ignored": True}),
                TextPart(text="two"),
            ],
        )
        assert extract_text(message.parts) == "one\ntwo"

    def test_camel_case_aliases(self):
        message = Message.model_validate(
            {"role": "agent", "parts": [], "messageId": "m-1", "contextId": "c-1"}
        )
        assert message.message_id == "m-1"
        assert message.context_id == "c-1"

    def test_invalid_role(self):
        with pytest.raises(ValidationError):
            Message(role="system", parts=[])


def test_format_timestamp_uses_z_suffix():
    assert format_timestamp(utc_now()).endswith("Z")
