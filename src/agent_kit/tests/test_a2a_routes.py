"""Tests for the A2A HTTP routes."""

from unittest.mock import patch

import pytest

from agent_kit.routes.a2a import AGENT_CARD_PATHS, register_a2a_routes
from agent_kit.tests.conftest_routes import (
    MockRequest,
    RouteCapture,
    collect,
    parse_data_frames,
    response_json,
)


@pytest.fixture
def capture(a2a_handler) -> RouteCapture:
    capture = RouteCapture()
    register_a2a_routes(capture, a2a_handler)
    return capture


def rpc_body(method: str, params: dict | None = None, request_id="1") -> dict:
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return body


SEND_PARAMS = {"message": {"role": "user", "parts": [{"kind": "text", "text": "Hello"}]}}


class TestRegistration:
    def test_sse_response_may_be_a_function(self, a2a_handler):
        def sse_response(content, status_code=200, headers=None):
            return content

        capture = RouteCapture()
        with patch("agent_kit.routes.a2a.SSEResponse", sse_response):
            register_a2a_routes(capture, a2a_handler)
        assert ("POST", "/") in capture.list_routes()

    def test_routes(self, capture):
        routes = capture.list_routes()
        assert ("POST", "/") in routes
        for path in AGENT_CARD_PATHS:
            assert ("GET", path) in routes


class TestAgentCard:
    @pytest.mark.parametrize("path", AGENT_CARD_PATHS)
    async def test_card_served_raw(self, capture, path):
        handler = capture.get_handler("GET", path)
        response = await handler(MockRequest(url=path))
        card = response_json(response)
        assert response.status_code == 200
        assert card["name"] == "Test Agent"
        assert "jsonrpc" not in card
        assert card["capabilities"]["pushNotifications"] is False

    async def test_card_reflects_updates(self, capture, a2a_handler):
        a2a_handler.update_agent_card({"name": "Renamed"})
        handler = capture.get_handler("GET", AGENT_CARD_PATHS[0])
        assert response_json(await handler(MockRequest()))["name"] == "Renamed"


class TestJsonRpcEndpoint:
    async def test_message_send(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(MockRequest(body=rpc_body("message/send", SEND_PARAMS)))
        body = response_json(response)
        assert response.status_code == 200
        assert body["jsonrpc"] == "2.0"
        assert body["id"] == "1"
        assert body["result"]["status"]["state"] == "completed"

    async def test_parse_error(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(MockRequest(body="{not json"))
        body = response_json(response)
        assert response.status_code == 400
        assert body["error"]["code"] == -32700
        assert body["id"] is None

    async def test_non_object_body(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(MockRequest(body=[1, 2]))
        assert response.status_code == 400
        assert response_json(response)["error"]["code"] == -32600

    async def test_missing_method(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(MockRequest(body={"jsonrpc": "2.0", "id": 7}))
        body = response_json(response)
        assert response.status_code == 400
        assert body["error"]["code"] == -32600
        assert body["id"] == 7

    async def test_method_errors_are_http_200(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(MockRequest(body=rpc_body("tasks/get", {"id": "x"})))
        assert response.status_code == 200
        assert response_json(response)["error"]["code"] == -32001

    async def test_version_header(self, capture):
        handler = capture.get_handler("POST", "/")
        response = await handler(
            MockRequest(
                body=rpc_body("tasks/get", {"id": "x"}),
                headers={"A2A-Version": "9.1"},
            )
        )
        assert response_json(response)["error"]["code"] == -32004

    async def test_stream_answers_with_sse(self, capture):
        handler = capture.get_handler("POST", "/")
        with patch("agent_kit.routes.a2a.SSEResponse") as sse_response:
            await handler(MockRequest(body=rpc_body("message/stream", SEND_PARAMS)))

        kwargs = sse_response.call_args.kwargs
        assert kwargs["status_code"] == 200
        frames = parse_data_frames(await collect(kwargs["content"]))
        assert frames[0]["result"]["kind"] == "task"
        assert frames[-1]["result"]["final"] is True

    async def test_stream_validation_error_is_json(self, capture):
        handler = capture.get_handler("POST", "/")
        with patch("agent_kit.routes.a2a.SSEResponse") as sse_response:
            response = await handler(MockRequest(body=rpc_body("message/stream", {})))

        sse_response.assert_not_called()
        assert response_json(response)["error"]["code"] == -32602
