"""Threads API routes.

Implements LangGraph-compatible endpoints:
- POST /threads - Create a new thread
- POST /threads/search - Search threads
- GET /threads/:thread_id - Get a thread by ID
- DELETE /threads/:thread_id - Delete a thread
- GET /threads/:thread_id/state - Get thread state
"""

import json
import logging

from pydantic import ValidationError
from robyn import Request, Response, Robyn

from agent_kit.langgraph.handlers import LangGraphError, LangGraphService
from agent_kit.langgraph.schemas import ThreadCreate, ThreadSearchRequest
from agent_kit.routes.helpers import (
    empty_response,
    error_response,
    json_response,
    parse_json_body,
)

logger = logging.getLogger(__name__)


def register_thread_routes(app: Robyn, service: LangGraphService) -> None:
    """Register thread routes with the Robyn app."""

    @app.post("/threads")
    async def create_thread(request: Request) -> Response:
        """Create a new thread.

        Request body: ThreadCreate
        Response: Thread (201), existing Thread (200) with
        ``if_exists="do_nothing"``, or error (409/422)
        """
        try:
            body = parse_json_body(request)
            create_data = ThreadCreate(**body)
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        existed = bool(create_data.thread_id) and service.thread_exists(
            create_data.thread_id
        )
        try:
            thread = service.create_thread(create_data)
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
        return json_response(thread, 200 if existed else 201)

    @app.post("/threads/search")
    async def search_threads(request: Request) -> Response:
        """Search threads by metadata and status.

        Request body: ThreadSearchRequest
        Response: list[Thread] (200)
        """
        try:
            body = parse_json_body(request)
            search = ThreadSearchRequest(**body)
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        return json_response(service.search_threads(search))

    @app.get("/threads/:thread_id")
    async def get_thread(request: Request) -> Response:
        """Get a thread by ID.

        Response: Thread (200) or error (404)
        """
        thread_id = request.path_params.get("thread_id")
        try:
            return json_response(service.get_thread(thread_id))
        except LangGraphError as e:
            return error_response(e.message, e.status_code)

    @app.delete("/threads/:thread_id")
    async def delete_thread(request: Request) -> Response:
        """Delete a thread.

        Response: empty (204) or error (404)
        """
        thread_id = request.path_params.get("thread_id")
        try:
            service.delete_thread(thread_id)
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
        return empty_response(204)

    @app.get("/threads/:thread_id/state")
    async def get_thread_state(request: Request) -> Response:
        """Get a point-in-time snapshot of the thread's messages.

        Response: ThreadState (200) or error (404)
        """
        thread_id = request.path_params.get("thread_id")
        try:
            return json_response(service.get_thread_state(thread_id))
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
