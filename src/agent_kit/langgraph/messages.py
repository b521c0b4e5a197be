"""Conversion between internal messages and LangGraph messages.

The LangGraph projection is text only: a message's content is the
newline-joined text of its text parts, and every other part is dropped.

Run input is normalized by trying :data:`INPUT_STRATEGIES` in order; the
first strategy that recognizes the payload wins, and anything left over
is serialized to JSON and sent as plain text.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable

from agent_kit.langgraph.schemas import LangGraphMessage
from agent_kit.models import Message, extract_text, text_message

HUMAN_TYPES = frozenset({"human", "user"})


def to_langgraph_message(message: Message) -> LangGraphMessage:
    """Project a message onto the LangGraph ``human``/``ai`` shape.

    The message id is kept, so the same message has the same id in every
    thread state snapshot.
    """
    return LangGraphMessage(
        type="human" if message.role == "user" else "ai",
        content=extract_text(message.parts),
        id=message.message_id,
    )


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for block in content:
            if isinstance(block, str):
                texts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                texts.append(str(block.get("text", "")))
        return "\n".join(texts)
    if content is None:
        return ""
    return json.dumps(content)


def from_langgraph_message(data: dict[str, Any] | LangGraphMessage) -> Message:
    """Build an internal message from a LangGraph/LangChain message.

    Accepts ``type`` (``human``/``ai``) as well as OpenAI-style ``role``
    (``user``/``assistant``). Content may be a string or a list of content
    blocks, of which only text blocks are kept.
    """
    if isinstance(data, LangGraphMessage):
        data = data.model_dump()
    kind = str(data.get("type") or data.get("role") or "human").lower()
    role = "user" if kind in HUMAN_TYPES else "agent"
    message = text_message(role, _content_text(data.get("content")))
    if data.get("id"):
        message.message_id = str(data["id"])
    return message


# ============================================================================
# Run Input Normalization
# ============================================================================


@dataclass(frozen=True)
class InputStrategy:
    """A named way of extracting the inbound message from run input."""

    name: str
    extract: Callable[[dict[str, Any]], Message | None]


def _last_message(payload: dict[str, Any]) -> Message | None:
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        return None
    last = messages[-1]
    if isinstance(last, str):
        return text_message("user", last)
    if isinstance(last, dict):
        return from_langgraph_message(last)
    return None


def _text_field(key: str) -> Callable[[dict[str, Any]], Message | None]:
    def extract(payload: dict[str, Any]) -> Message | None:
        value = payload.get(key)
        if isinstance(value, str):
            return text_message("user", value)
        return None

    return extract


INPUT_STRATEGIES: tuple[InputStrategy, ...] = (
    InputStrategy("messages", _last_message),
    InputStrategy("message", _text_field("message")),
    InputStrategy("content", _text_field("content")),
    InputStrategy("text", _text_field("text")),
)


def normalize_run_input(run_input: Any) -> Message:
    """Turn free-form run input into one inbound message.

    Never fails for JSON-compatible input: a bare string is used as text,
    and any unrecognized value is sent as its JSON serialization.
    """
    if isinstance(run_input, dict):
        for strategy in INPUT_STRATEGIES:
            message = strategy.extract(run_input)
            if message is not None:
                return message
    if isinstance(run_input, str):
        return text_message("user", run_input)
    return text_message("user", json.dumps(run_input if run_input is not None else {}))
