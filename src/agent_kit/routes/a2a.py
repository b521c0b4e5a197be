"""A2A Protocol route handlers.

Endpoints:
- POST / - JSON-RPC 2.0 message handler (JSON or SSE)
- GET /.well-known/agent-card.json - Agent card discovery
- GET /.well-known/agent-card - Agent card discovery (no extension)
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError
from robyn import Request, Response
from robyn.responses import SSEResponse

from agent_kit.a2a.handlers import A2AMethodHandler
from agent_kit.a2a.schemas import (
    JsonRpcErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    create_error_response,
)
from agent_kit.routes.helpers import header_value, json_response
from agent_kit.routes.sse import a2a_sse_headers

if TYPE_CHECKING:
    from robyn import Robyn

logger = logging.getLogger(__name__)

AGENT_CARD_PATHS = ("/.well-known/agent-card.json", "/.well-known/agent-card")


def _rpc_response(response: JsonRpcResponse, status_code: int = 200) -> Response:
    return Response(
        status_code,
        {"Content-Type": "application/json"},
        json.dumps(response.model_dump()),
    )


def register_a2a_routes(app: "Robyn", handler: A2AMethodHandler) -> None:
    """Register A2A protocol routes on the Robyn application.

    Args:
        app: The Robyn application instance.
        handler: Method handler shared by every A2A request.
    """

    @app.post("/")
    async def post_a2a(request: Request) -> Response | SSEResponse:
        """Handle A2A JSON-RPC 2.0 messages.

        Streaming methods answer with ``text/event-stream`` unless they
        fail validation, in which case a plain JSON-RPC error is returned.

        Returns:
            - 200: JSON-RPC response (success or error) or SSE stream
            - 400: Body is not valid JSON or not a JSON-RPC request
        """
        try:
            body = request.body
            if isinstance(body, bytes):
                body = body.decode("utf-8")
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("A2A parse error: %s", e)
            return _rpc_response(
                create_error_response(
                    None, JsonRpcErrorCode.PARSE_ERROR, f"Parse error: {str(e)}"
                ),
                400,
            )

        if not isinstance(data, dict):
            return _rpc_response(
                create_error_response(
                    None,
                    JsonRpcErrorCode.INVALID_REQUEST,
                    "Request must be a JSON object",
                ),
                400,
            )

        try:
            rpc_request = JsonRpcRequest.model_validate(data)
        except ValidationError as e:
            logger.error("A2A invalid request: %s", e)
            request_id = data.get("id")
            return _rpc_response(
                create_error_response(
                    request_id if isinstance(request_id, (str, int)) else None,
                    JsonRpcErrorCode.INVALID_REQUEST,
                    f"Invalid request: {str(e)}",
                ),
                400,
            )

        version = header_value(request, "A2A-Version")

        if handler.is_streaming(rpc_request.method):
            stream = handler.open_stream(rpc_request, version)
            if isinstance(stream, JsonRpcResponse):
                return _rpc_response(stream)
            return SSEResponse(
                content=stream,
                status_code=200,
                headers=a2a_sse_headers(),
            )

        response = await handler.handle_request(rpc_request, version)
        return _rpc_response(response)

    async def get_agent_card(request: Request) -> Response:
        """Serve the agent card as raw JSON (no JSON-RPC envelope)."""
        return json_response(handler.agent_card.to_wire())

    for path in AGENT_CARD_PATHS:
        app.get(path)(get_agent_card)

    logger.info("A2A routes registered: POST /, GET %s", ", ".join(AGENT_CARD_PATHS))
