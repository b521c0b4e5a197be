"""Request and response helpers used by every route module."""

import json
from typing import Any

from robyn import Request, Response

_JSON_HEADERS = {"Content-Type": "application/json"}


def _to_jsonable(data: Any) -> Any:
    if hasattr(data, "model_dump"):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_to_jsonable(item) for item in data]
    return data


def json_response(data: Any, status_code: int = 200) -> Response:
    """Serialize *data* into a JSON response.

    Pydantic models (alone or in a list) are dumped in JSON mode so that
    datetimes and enums come out as strings.
    """
    return Response(status_code, dict(_JSON_HEADERS), json.dumps(_to_jsonable(data)))


def error_response(message: str, status_code: int = 400) -> Response:
    """``{"error": message}`` with the given status."""
    return json_response({"error": message}, status_code)


def empty_response(status_code: int = 204) -> Response:
    return Response(status_code, {}, "")


def parse_json_body(request: Request) -> Any:
    """Decode the request body; an empty body reads as ``{}``.

    Raises:
        json.JSONDecodeError: If the body is present but not JSON.
    """
    raw = request.body
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw) if raw else {}


def request_path(request: Request) -> str:
    """Path of a request, without the query string."""
    url = getattr(request, "url", None)
    if url is None:
        return "/"
    if hasattr(url, "path"):
        return url.path
    return str(url).split("?")[0]


def header_value(request: Request, name: str) -> str | None:
    """Case-insensitive header lookup."""
    headers = request.headers
    for candidate in (name, name.lower(), name.title()):
        value = headers.get(candidate)
        if value:
            return value
    return None
