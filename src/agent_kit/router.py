"""Dual-protocol request router.

One port serves both protocols. :func:`classify` decides, from method and
path alone, which surface a request belongs to; the Robyn middleware
registered by :func:`register_dual_router` answers CORS preflights and
unknown paths before any route handler runs.

Priority order:

1. ``OPTIONS`` on any path: CORS preflight
2. ``GET /.well-known/agent-card.json`` (or without extension): A2A
3. ``POST /``: A2A JSON-RPC, whatever the payload looks like
4. ``/info``, ``/ok`` and anything under ``/assistants``, ``/threads``,
   ``/runs`` or ``/store``: LangGraph
5. Anything else: 404
"""

import json
import logging
from enum import StrEnum

from robyn import Request, Response, Robyn

from agent_kit.config import CorsConfig
from agent_kit.routes.a2a import AGENT_CARD_PATHS
from agent_kit.routes.helpers import request_path

logger = logging.getLogger(__name__)

LANGGRAPH_EXACT_PATHS = frozenset({"/info", "/ok"})
LANGGRAPH_PREFIXES = ("/assistants", "/threads", "/runs", "/store")

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Api-Key, A2A-Version, Accept"


class Protocol(StrEnum):
    """Destination of an inbound request."""

    A2A = "a2a"
    LANGGRAPH = "langgraph"
    PREFLIGHT = "preflight"
    NOT_FOUND = "not_found"


def _normalize(path: str) -> str:
    path = path.split("?", 1)[0] or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def classify(method: str, path: str) -> Protocol:
    """Decide which protocol handles *method* on *path*."""
    method = method.upper()
    path = _normalize(path)

    if method == "OPTIONS":
        return Protocol.PREFLIGHT
    if path in AGENT_CARD_PATHS and method in ("GET", "HEAD"):
        return Protocol.A2A
    if path == "/" and method == "POST":
        return Protocol.A2A
    if path in LANGGRAPH_EXACT_PATHS:
        return Protocol.LANGGRAPH
    if any(path == prefix or path.startswith(prefix + "/") for prefix in LANGGRAPH_PREFIXES):
        return Protocol.LANGGRAPH
    return Protocol.NOT_FOUND


def cors_headers(cors: CorsConfig) -> dict[str, str]:
    """Headers of a synthesized preflight response."""
    return {
        "Access-Control-Allow-Origin": cors.allow_origin,
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Max-Age": "86400",
    }


async def route_request(request: Request, cors: CorsConfig) -> Request | Response:
    """Answer preflights and unknown paths; pass everything else through.

    Extracted as a standalone function so it can be tested without Robyn's
    ``@app.before_request()`` decorator.
    """
    method = getattr(request, "method", "GET")
    path = request_path(request)
    protocol = classify(method, path)

    if protocol is Protocol.PREFLIGHT:
        headers = cors_headers(cors) if cors.enabled else {}
        return Response(204, headers, "")
    if protocol is Protocol.NOT_FOUND:
        logger.debug("No route for %s %s", method, path)
        return Response(
            404,
            {"Content-Type": "application/json"},
            json.dumps({"error": "Not found"}),
        )
    return request


def register_dual_router(app: Robyn, cors: CorsConfig) -> None:
    """Install the router as a global before-request middleware."""

    @app.before_request()
    async def dual_router_middleware(request: Request) -> Request | Response:
        return await route_request(request, cors)

    if cors.enabled:
        app.add_response_header("Access-Control-Allow-Origin", cors.allow_origin)

    logger.info("Dual router registered: cors=%s", cors.enabled)
