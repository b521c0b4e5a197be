"""Tests for the LangGraph REST routes, driven through ``RouteCapture``."""

import asyncio

import pytest

from agent_kit.routes.assistants import register_assistant_routes
from agent_kit.routes.runs import parse_run_create, register_run_routes
from agent_kit.routes.system import register_system_routes
from agent_kit.routes.threads import register_thread_routes
from agent_kit.tests.conftest_routes import MockRequest, RouteCapture, response_json


@pytest.fixture
def capture(service) -> RouteCapture:
    capture = RouteCapture()
    register_system_routes(capture, service)
    register_assistant_routes(capture, service)
    register_thread_routes(capture, service)
    register_run_routes(capture, service)
    return capture


async def call(capture: RouteCapture, method: str, path: str, **kwargs):
    handler = capture.get_handler(method, path)
    assert handler is not None, f"{method} {path} not registered"
    return await handler(MockRequest(method=method, url=path, **kwargs))


async def new_thread(capture: RouteCapture, **body) -> str:
    response = await call(capture, "POST", "/threads", body=body)
    assert response.status_code == 201
    return response_json(response)["thread_id"]


class TestSystemRoutes:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_ok(self, capture, method):
        response = await call(capture, method, "/ok")
        assert response_json(response) == {"ok": True}

    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_info(self, capture, method):
        info = response_json(await call(capture, method, "/info"))
        assert info["version"]
        assert "langgraph_api_version" in info


class TestAssistantRoutes:
    async def test_search_returns_singleton(self, capture, service):
        response = await call(capture, "POST", "/assistants/search", body={"limit": 5})
        body = response_json(response)
        assert response.status_code == 200
        assert [a["assistant_id"] for a in body] == [service.assistant_id]

    async def test_search_empty_body(self, capture):
        response = await call(capture, "POST", "/assistants/search")
        assert len(response_json(response)) == 1

    async def test_search_invalid(self, capture):
        response = await call(capture, "POST", "/assistants/search", body={"limit": 0})
        assert response.status_code == 422
        assert "error" in response_json(response)

    async def test_get(self, capture, service):
        response = await call(
            capture,
            "GET",
            "/assistants/:assistant_id",
            path_params={"assistant_id": "agent"},
        )
        assert response_json(response)["assistant_id"] == service.assistant_id

    async def test_get_unknown(self, capture):
        response = await call(
            capture,
            "GET",
            "/assistants/:assistant_id",
            path_params={"assistant_id": "nobody"},
        )
        assert response.status_code == 404
        assert response_json(response) == {"error": "Assistant nobody not found"}


class TestThreadRoutes:
    async def test_create_with_id(self, capture):
        response = await call(capture, "POST", "/threads", body={"thread_id": "t-1"})
        assert response.status_code == 201
        assert response_json(response)["thread_id"] == "t-1"

    async def test_create_conflict(self, capture):
        await new_thread(capture, thread_id="t-1")
        response = await call(capture, "POST", "/threads", body={"thread_id": "t-1"})
        assert response.status_code == 409

    async def test_create_do_nothing(self, capture):
        await new_thread(capture, thread_id="t-1", metadata={"v": 1})
        response = await call(
            capture,
            "POST",
            "/threads",
            body={"thread_id": "t-1", "metadata": {"v": 2}, "if_exists": "do_nothing"},
        )
        assert response.status_code == 200
        assert response_json(response)["metadata"] == {"v": 1}

    async def test_create_invalid_json(self, capture):
        response = await call(capture, "POST", "/threads", body="{broken")
        assert response.status_code == 422
        assert response_json(response) == {"error": "Invalid JSON in request body"}

    async def test_create_non_object(self, capture):
        response = await call(capture, "POST", "/threads", body=[1])
        assert response.status_code == 422

    async def test_get_and_delete(self, capture):
        thread_id = await new_thread(capture)
        path_params = {"thread_id": thread_id}

        response = await call(capture, "GET", "/threads/:thread_id", path_params=path_params)
        assert response_json(response)["status"] == "idle"

        response = await call(
            capture, "DELETE", "/threads/:thread_id", path_params=path_params
        )
        assert response.status_code == 204

        response = await call(capture, "GET", "/threads/:thread_id", path_params=path_params)
        assert response.status_code == 404

    async def test_search(self, capture):
        await new_thread(capture, metadata={"team": "a"})
        await new_thread(capture, metadata={"team": "b"})
        response = await call(
            capture, "POST", "/threads/search", body={"metadata": {"team": "b"}}
        )
        assert [t["metadata"] for t in response_json(response)] == [{"team": "b"}]

    async def test_state_unknown(self, capture):
        response = await call(
            capture,
            "GET",
            "/threads/:thread_id/state",
            path_params={"thread_id": "missing"},
        )
        assert response.status_code == 404


class TestRunRoutes:
    async def test_wait_on_thread(self, capture):
        thread_id = await new_thread(capture)
        response = await call(
            capture,
            "POST",
            "/threads/:thread_id/runs/wait",
            path_params={"thread_id": thread_id},
            body={"input": {"messages": [{"role": "user", "content": "hi"}]}},
        )
        state = response_json(response)
        assert response.status_code == 200
        last = state["values"]["messages"][-1]
        assert last["type"] == "ai"
        assert "Echo: hi" in last["content"]

        response = await call(
            capture,
            "GET",
            "/threads/:thread_id/state",
            path_params={"thread_id": thread_id},
        )
        assert response_json(response)["values"] == state["values"]

    async def test_wait_unknown_thread(self, capture):
        response = await call(
            capture,
            "POST",
            "/threads/:thread_id/runs/wait",
            path_params={"thread_id": "missing"},
            body={"input": "x"},
        )
        assert response.status_code == 404

    async def test_stateless_wait_accepts_any_json(self, capture):
        for body in ({"input": {"anything": True}}, "\"plain\"", [1, 2, 3]):
            response = await call(capture, "POST", "/runs/wait", body=body)
            assert response.status_code == 200
            assert response_json(response)["values"]["messages"][-1]["type"] == "ai"

    async def test_create_list_get(self, capture):
        thread_id = await new_thread(capture)
        response = await call(
            capture,
            "POST",
            "/threads/:thread_id/runs",
            path_params={"thread_id": thread_id},
            body={"input": {"text": "x"}, "metadata": {"source": "test"}},
        )
        assert response.status_code == 201
        run = response_json(response)
        assert run["thread_id"] == thread_id
        assert run["metadata"] == {"source": "test"}

        params = {"thread_id": thread_id, "run_id": run["run_id"]}
        for _ in range(100):
            fetched = response_json(
                await call(
                    capture, "GET", "/threads/:thread_id/runs/:run_id", path_params=params
                )
            )
            if fetched["status"] == "success":
                break
            await asyncio.sleep(0.01)
        assert fetched["status"] == "success"

        listed = response_json(
            await call(
                capture,
                "GET",
                "/threads/:thread_id/runs",
                path_params={"thread_id": thread_id},
            )
        )
        assert [r["run_id"] for r in listed] == [run["run_id"]]

    async def test_get_unknown_run(self, capture):
        thread_id = await new_thread(capture)
        response = await call(
            capture,
            "GET",
            "/threads/:thread_id/runs/:run_id",
            path_params={"thread_id": thread_id, "run_id": "nope"},
        )
        assert response.status_code == 404

    async def test_list_unknown_thread(self, capture):
        response = await call(
            capture,
            "GET",
            "/threads/:thread_id/runs",
            path_params={"thread_id": "missing"},
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "extra",
        [
            {"metadata": None},
            {"assistant_id": None, "multitask_strategy": None, "on_completion": None},
            {"on_completion": "forever", "multitask_strategy": "sometimes"},
            {"metadata": ["not", "a", "dict"]},
        ],
    )
    async def test_wait_tolerates_odd_optional_fields(self, capture, storage, extra):
        response = await call(
            capture,
            "POST",
            "/runs/wait",
            body={"input": {"message": "hi"}, **extra},
        )
        assert response.status_code == 200
        last = response_json(response)["values"]["messages"][-1]
        assert last["content"] == "Echo: hi"
        assert storage.threads.search() == []

    async def test_create_tolerates_null_metadata(self, capture):
        thread_id = await new_thread(capture)
        response = await call(
            capture,
            "POST",
            "/threads/:thread_id/runs",
            path_params={"thread_id": thread_id},
            body={"input": "hi", "metadata": None, "multitask_strategy": None},
        )
        assert response.status_code == 201
        run = response_json(response)
        assert run["metadata"] == {}
        assert run["multitask_strategy"] == "enqueue"


class TestParseRunCreate:
    def test_object_body(self):
        run = parse_run_create({"input": {"text": "x"}, "assistant_id": "agent"})
        assert run.input == {"text": "x"}
        assert run.assistant_id == "agent"

    def test_null_optional_fields_use_defaults(self):
        run = parse_run_create(
            {
                "input": {"message": "hi"},
                "metadata": None,
                "multitask_strategy": None,
                "on_completion": None,
            }
        )
        assert run.metadata == {}
        assert run.multitask_strategy == "enqueue"
        assert run.on_completion == "delete"

    def test_unknown_values_use_defaults(self):
        run = parse_run_create(
            {"input": "x", "on_completion": "forever", "multitask_strategy": 3}
        )
        assert run.on_completion == "delete"
        assert run.multitask_strategy == "enqueue"

    def test_known_values_kept(self):
        run = parse_run_create(
            {"input": "x", "on_completion": "keep", "multitask_strategy": "reject"}
        )
        assert run.on_completion == "keep"
        assert run.multitask_strategy == "reject"

    @pytest.mark.parametrize("body", ["text", 5, [1], None])
    def test_other_bodies_become_input(self, body):
        assert parse_run_create(body).input == body
