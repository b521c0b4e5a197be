"""Runs API routes.

Implements LangGraph-compatible endpoints:
- POST /threads/:thread_id/runs - Create a background run
- GET /threads/:thread_id/runs - List runs of a thread
- GET /threads/:thread_id/runs/:run_id - Get a run
- POST /threads/:thread_id/runs/wait - Run and wait for the thread state
- POST /runs/wait - Stateless run, wait for the final state
"""

import json
import logging
from typing import Any

from pydantic import ValidationError
from robyn import Request, Response, Robyn

from agent_kit.langgraph.handlers import LangGraphError, LangGraphService
from agent_kit.langgraph.schemas import RunCreate
from agent_kit.routes.helpers import error_response, json_response, parse_json_body

logger = logging.getLogger(__name__)


def parse_run_create(body: Any) -> RunCreate:
    """Build a RunCreate from a request body.

    A body that is not a JSON object is taken as the run input itself;
    optional fields that are null or unknown fall back to their defaults.
    """
    if isinstance(body, dict):
        return RunCreate.model_validate(body)
    return RunCreate(input=body)


def register_run_routes(app: Robyn, service: LangGraphService) -> None:
    """Register run routes with the Robyn app."""

    @app.post("/threads/:thread_id/runs")
    async def create_run(request: Request) -> Response:
        """Create a run executed in the background.

        Request body: RunCreate
        Response: Run (201) or error (404/409/422)
        """
        thread_id = request.path_params.get("thread_id")
        try:
            create_data = parse_run_create(parse_json_body(request))
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        try:
            run = service.create_run(thread_id, create_data)
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
        return json_response(run, 201)

    @app.get("/threads/:thread_id/runs")
    async def list_runs(request: Request) -> Response:
        """List runs of a thread.

        Response: list[Run] (200) or error (404)
        """
        thread_id = request.path_params.get("thread_id")
        try:
            return json_response(service.list_runs(thread_id))
        except LangGraphError as e:
            return error_response(e.message, e.status_code)

    @app.get("/threads/:thread_id/runs/:run_id")
    async def get_run(request: Request) -> Response:
        """Get a run by ID.

        Response: Run (200) or error (404)
        """
        thread_id = request.path_params.get("thread_id")
        run_id = request.path_params.get("run_id")
        try:
            return json_response(service.get_run(thread_id, run_id))
        except LangGraphError as e:
            return error_response(e.message, e.status_code)

    async def _wait(request: Request, thread_id: str | None) -> Response:
        try:
            create_data = parse_run_create(parse_json_body(request))
        except json.JSONDecodeError:
            return error_response("Invalid JSON in request body", 422)
        except (TypeError, ValidationError) as e:
            return error_response(str(e), 422)

        try:
            state = await service.wait_run(thread_id, create_data)
        except LangGraphError as e:
            return error_response(e.message, e.status_code)
        return json_response(state)

    @app.post("/threads/:thread_id/runs/wait")
    async def wait_run(request: Request) -> Response:
        """Run on a thread and return the resulting thread state.

        Request body: RunCreate
        Response: ThreadState (200) or error (404/409/422)
        """
        return await _wait(request, request.path_params.get("thread_id"))

    @app.post("/runs/wait")
    async def wait_stateless_run(request: Request) -> Response:
        """Run on a temporary thread and return its final state.

        Request body: RunCreate
        Response: ThreadState (200) or error (404/422)
        """
        return await _wait(request, None)
