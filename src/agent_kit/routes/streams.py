"""SSE streaming endpoints.

Implements LangGraph-compatible streaming endpoints:
- POST /threads/:thread_id/runs/stream - Create run, stream output
- POST /runs/stream - Stateless run with streaming
"""

import json
import logging
from typing import AsyncGenerator, AsyncIterator

from pydantic import ValidationError
from robyn import Request, Response, Robyn
from robyn.responses import SSEResponse

from agent_kit.langgraph.handlers import LangGraphError, LangGraphService, StreamPart
from agent_kit.routes.helpers import error_response, parse_json_body
from agent_kit.routes.runs import parse_run_create
from agent_kit.routes.sse import format_sse_event, sse_headers

logger = logging.getLogger(__name__)


async def encode_stream(parts: AsyncIterator[StreamPart]) -> AsyncGenerator[str, None]:
    """Format service stream parts as named SSE events."""
    async for event, data in parts:
        yield format_sse_event(event, data)


def register_stream_routes(app: Robyn, service: LangGraphService) -> None:
    """Register streaming routes with the Robyn app."""

    async def _stream(request: Request, thread_id: str | None) -> Response:
        try:
            create_data = parse_run_create(parse_json_body(request))
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        try:
            run, parts = service.stream_run(thread_id, create_data)
        except LangGraphError as e:
            return error_response(e.message, e.status_code)

        headers = sse_headers(
            thread_id=run.thread_id,
            run_id=run.run_id,
            stateless=thread_id is None,
        )
        return SSEResponse(
            content=encode_stream(parts),
            status_code=200,
            headers=headers,
        )

    @app.post("/threads/:thread_id/runs/stream")
    async def create_run_stream(request: Request) -> Response:
        """Create a run on a thread and stream its output.

        Request body: RunCreate
        Response: SSE stream (200) or error (404/409/422)
        """
        return await _stream(request, request.path_params.get("thread_id"))

    @app.post("/runs/stream")
    async def create_stateless_run_stream(request: Request) -> Response:
        """Create a run on a temporary thread and stream its output.

        Request body: RunCreate
        Response: SSE stream (200) or error (422)
        """
        return await _stream(request, None)
