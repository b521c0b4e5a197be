"""Tests for application assembly and request logging."""

import logging

import pytest

from agent_kit.app import (
    _is_sensitive_key,
    _mask_sensitive,
    build_agent_card,
    create_app,
    log_request,
)
from agent_kit.config import AgentConfig, Config, CorsConfig, ServerConfig
from agent_kit.echo import ECHO_SKILL, echo_handler
from agent_kit.tests.conftest_routes import MockRequest, RouteCapture

EXPECTED_ROUTES = {
    ("POST", "/"),
    ("GET", "/.well-known/agent-card.json"),
    ("GET", "/.well-known/agent-card"),
    ("GET", "/info"),
    ("POST", "/info"),
    ("GET", "/ok"),
    ("POST", "/ok"),
    ("POST", "/assistants/search"),
    ("GET", "/assistants/:assistant_id"),
    ("POST", "/threads"),
    ("POST", "/threads/search"),
    ("GET", "/threads/:thread_id"),
    ("DELETE", "/threads/:thread_id"),
    ("GET", "/threads/:thread_id/state"),
    ("POST", "/threads/:thread_id/runs"),
    ("GET", "/threads/:thread_id/runs"),
    ("GET", "/threads/:thread_id/runs/:run_id"),
    ("POST", "/threads/:thread_id/runs/wait"),
    ("POST", "/runs/wait"),
    ("POST", "/threads/:thread_id/runs/stream"),
    ("POST", "/runs/stream"),
}


@pytest.fixture
def config() -> Config:
    return Config(
        server=ServerConfig(host="127.0.0.1", port=9999),
        cors=CorsConfig(enabled=True, allow_origin="*"),
        agent=AgentConfig(name="Configured Agent", url="http://agent.local"),
    )


class TestBuildAgentCard:
    def test_from_config(self):
        card = build_agent_card(AgentConfig(name="A", url="http://a"), skills=[ECHO_SKILL])
        assert card.name == "A"
        assert card.capabilities.streaming is True
        assert card.capabilities.push_notifications is False
        assert card.skills == [ECHO_SKILL]
        assert card.protocols[0].type == "jsonrpc"
        assert card.protocols[0].url == "http://a"


class TestCreateApp:
    def test_registers_every_route(self, config):
        capture = RouteCapture()
        create_app(echo_handler, config=config, app=capture)
        routes = capture.list_routes()
        assert set(routes) == EXPECTED_ROUTES
        assert len(routes) == len(EXPECTED_ROUTES)

    def test_middlewares(self, config):
        capture = RouteCapture()
        create_app(echo_handler, config=config, app=capture)
        # request logging, then the dual router
        assert len(capture.middlewares) == 2
        assert capture.response_headers["Access-Control-Allow-Origin"] == "*"

    def test_card_from_config(self, config):
        server = create_app(echo_handler, config=config, app=RouteCapture())
        assert server.agent_card.name == "Configured Agent"
        assert server.langgraph.assistant().name == "Configured Agent"

    def test_adapters_share_storage(self, config, agent_card):
        server = create_app(
            echo_handler, agent_card=agent_card, config=config, app=RouteCapture()
        )
        assert server.runner.store is server.storage.tasks
        assert server.agent_card is agent_card

    def test_update_agent_card_reaches_both_protocols(self, config):
        server = create_app(echo_handler, config=config, app=RouteCapture())
        server.update_agent_card({"name": "Renamed", "description": "New"})
        assert server.a2a.agent_card.name == "Renamed"
        assistant = server.langgraph.assistant()
        assert assistant.name == "Renamed"
        assert assistant.description == "New"

    def test_start_uses_config(self, config):
        capture = RouteCapture()
        server = create_app(echo_handler, config=config, app=capture)
        server.start()
        assert capture.started_with == {"host": "127.0.0.1", "port": 9999}

        server.start(host="0.0.0.0", port=1234)
        assert capture.started_with == {"host": "0.0.0.0", "port": 1234}

    def test_instances_are_independent(self, config):
        first = create_app(echo_handler, config=config, app=RouteCapture())
        second = create_app(echo_handler, config=config, app=RouteCapture())
        assert first.storage is not second.storage
        assert first.langgraph.assistant_id != second.langgraph.assistant_id


class TestSensitiveMasking:
    @pytest.mark.parametrize(
        "key", ["Authorization", "api_key", "X-Api-Key", "access_token", "db_password"]
    )
    def test_sensitive_keys(self, key):
        assert _is_sensitive_key(key)

    @pytest.mark.parametrize("key", ["input", "thread_id", "metadata"])
    def test_regular_keys(self, key):
        assert not _is_sensitive_key(key)

    def test_nested_masking(self):
        body = {
            "input": {"text": "hi"},
            "config": {"api_key": "sk-1", "items": [{"token": "t"}, {"name": "n"}]},
        }
        _mask_sensitive(body)
        assert body["input"] == {"text": "hi"}
        assert body["config"]["api_key"] == "***"
        assert body["config"]["items"] == [{"token": "***"}, {"name": "n"}]

    def test_depth_limit(self):
        deep = {"a": {"b": {"c": {"d": {"e": {"f": {"password": "p"}}}}}}}
        _mask_sensitive(deep)
        assert deep["a"]["b"]["c"]["d"]["e"]["f"]["password"] == "p"


class TestLogRequest:
    async def test_returns_request_untouched(self):
        request = MockRequest(body={"password": "p"}, method="POST", url="/threads")
        assert await log_request(request) is request

    async def test_debug_logging_masks_values(self, caplog):
        request = MockRequest(
            body={"input": "hello", "api_key": "sk-secret"},
            method="POST",
            url="/threads/0123456789abcdef/runs/wait",
        )
        with caplog.at_level(logging.DEBUG, logger="agent_kit.app"):
            await log_request(request)

        text = caplog.text
        assert "thread_id=0123456789abcdef" in text
        assert "hello" in text
        assert "sk-secret" not in text
        assert "***" in text

    async def test_non_json_body(self, caplog):
        request = MockRequest(body="plain words", method="POST", url="/")
        with caplog.at_level(logging.DEBUG, logger="agent_kit.app"):
            await log_request(request)
        assert "body (raw): plain words" in caplog.text

    async def test_large_body_truncated(self, caplog):
        request = MockRequest(body="x" * 5000, method="POST", url="/")
        with caplog.at_level(logging.DEBUG, logger="agent_kit.app"):
            await log_request(request)
        assert "<5000 bytes, truncated>" in caplog.text
