"""Event-stream framing shared by the two streaming surfaces.

Run streams on the LangGraph side are sequences of named events
(an ``event:`` line followed by a ``data:`` line). A2A streams are bare
``data:`` frames, one JSON-RPC response each, framed in
:mod:`agent_kit.routes.a2a`.
"""

import json
from typing import Any

from robyn.robyn import Headers

_RUN_STREAM_HEADERS = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-store",
    "X-Accel-Buffering": "no",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Cache-Control",
}

_A2A_STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _headers_from(values: dict[str, str]) -> Headers:
    headers = Headers({})
    for name, value in values.items():
        headers.set(name, value)
    return headers


def sse_headers(
    thread_id: str | None = None,
    run_id: str | None = None,
    stateless: bool = False,
) -> Headers:
    """Headers for a run stream.

    A run on a thread gets ``Location`` (the stream URL) and
    ``Content-Location`` (the run resource). A stateless run is deleted or
    kept by its ``on_completion`` policy, so only ``Content-Location`` is set.
    """
    values = dict(_RUN_STREAM_HEADERS)
    if run_id and stateless:
        values["Content-Location"] = f"/runs/{run_id}"
    elif run_id and thread_id:
        run_path = f"/threads/{thread_id}/runs/{run_id}"
        values["Location"] = f"{run_path}/stream"
        values["Content-Location"] = run_path
    return _headers_from(values)


def a2a_sse_headers() -> Headers:
    return _headers_from(_A2A_STREAM_HEADERS)


def format_sse_event(event_type: str, data: Any) -> str:
    """Frame one named event; non-string payloads become compact JSON."""
    payload = data if isinstance(data, str) else json.dumps(data, separators=(",", ":"))
    return f"event: {event_type}\ndata: {payload}\n\n"
