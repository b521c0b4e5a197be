"""Assistant endpoints.

The server exposes exactly one assistant, derived from the agent card:
- POST /assistants/search - Search assistants (always the singleton)
- GET /assistants/:assistant_id - Get by assistant id or graph id
"""

import json
import logging

from pydantic import ValidationError
from robyn import Request, Response, Robyn

from agent_kit.langgraph.handlers import LangGraphError, LangGraphService
from agent_kit.langgraph.schemas import AssistantSearchRequest
from agent_kit.routes.helpers import error_response, json_response, parse_json_body

logger = logging.getLogger(__name__)


def register_assistant_routes(app: Robyn, service: LangGraphService) -> None:
    """Register assistant routes with the Robyn app."""

    @app.post("/assistants/search")
    async def search_assistants(request: Request) -> Response:
        """Search assistants.

        Request body: AssistantSearchRequest
        Response: list[Assistant] (200)
        """
        try:
            body = parse_json_body(request)
            search = AssistantSearchRequest(**body)
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        return json_response(service.search_assistants(search))

    @app.get("/assistants/:assistant_id")
    async def get_assistant(request: Request) -> Response:
        """Get the assistant by id or graph id.

        Response: Assistant (200) or error (404)
        """
        assistant_id = request.path_params.get("assistant_id")
        try:
            return json_response(service.get_assistant(assistant_id))
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
