"""Server info and health endpoints (LangGraph surface).

- GET|POST /info - Server version information
- GET|POST /ok - Liveness check
"""

import logging

from robyn import Request, Response, Robyn

from agent_kit.langgraph.handlers import LangGraphService
from agent_kit.routes.helpers import json_response

logger = logging.getLogger(__name__)


def register_system_routes(app: Robyn, service: LangGraphService) -> None:
    """Register info and health routes with the Robyn app."""

    async def info(request: Request) -> Response:
        return json_response(service.info())

    async def ok(request: Request) -> Response:
        return json_response({"ok": True})

    for register in (app.get, app.post):
        register("/info")(info)
        register("/ok")(ok)
