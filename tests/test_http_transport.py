"""
Tests for the HTTP transport.

The FastAPI app is driven in-process through httpx.ASGITransport while the
ToolApp run loop consumes the requests it queues.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
import pytest

from toolhost import (
    AppEnv,
    AppState,
    ConfigurationError,
    ExecutionFailure,
    HttpTransport,
    SchemaBuilder,
    ToolApp,
    TransportError,
    tool,
)
from toolhost.tools.calculator import TOOL as calculator


@contextlib.asynccontextmanager
async def serving(app: ToolApp, transport: HttpTransport) -> AsyncIterator[httpx.AsyncClient]:
    """Run the app over `transport` and yield a client bound to its API."""
    task = asyncio.create_task(app.run(transport))
    while app.state is AppState.BUILDING and not task.done():
        await asyncio.sleep(0)

    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=transport.api), base_url="http://test"
    )
    try:
        yield client
    finally:
        await client.aclose()
        app.stop()
        await asyncio.wait_for(task, timeout=2)


class TestHttpTransportSetup:
    """Tests for constructing the transport."""

    def test_needs_listen_address(self, env: AppEnv) -> None:
        with pytest.raises(ConfigurationError):
            HttpTransport(env)

    def test_accepts_port_or_socket(self) -> None:
        HttpTransport(AppEnv(name="calc", port=5997))
        HttpTransport(AppEnv(name="calc", sock_path="/tmp/toolhost-test.sock"))

    @pytest.mark.asyncio
    async def test_not_running(self, env: AppEnv) -> None:
        """Test that endpoints answer 503 before the app opens the transport."""
        transport = HttpTransport(env, listen=False)
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=transport.api), base_url="http://test"
        ) as client:
            response = await client.get("/health")

        assert response.status_code == 503


class TestIntrospection:
    """Tests for /health and /v1/tools."""

    @pytest.mark.asyncio
    async def test_health(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "healthy": True,
            "name": "test-app",
            "version": "1.2.3",
            "state": "running",
            "tools": ["calculator"],
        }

    @pytest.mark.asyncio
    async def test_list_tools(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.get("/v1/tools")

        assert response.status_code == 200
        [info] = response.json()
        assert info["name"] == "calculator"
        assert info["parameters"]["required"] == ["action", "a", "b"]
        assert info["requires_approval"] is False

    @pytest.mark.asyncio
    async def test_get_tool(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            found = await client.get("/v1/tools/calculator")
            missing = await client.get("/v1/tools/nope")

        assert found.status_code == 200
        assert found.json()["description"] == "Performs arithmetic calculations."
        assert missing.status_code == 404


class TestInvokeTool:
    """Tests for /v1/invoke-tool status mapping."""

    @pytest.mark.asyncio
    async def test_success(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post(
                "/v1/invoke-tool",
                json={
                    "tool_name": "calculator",
                    "arguments": {"action": "multiply", "a": 6, "b": 7},
                    "request_id": "req-42",
                },
            )

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["content"] == "6 multiply 7 = 42"
        assert data["request_id"] == "req-42"
        assert data["error_kind"] is None

    @pytest.mark.asyncio
    async def test_execution_error_is_200(self, env: AppEnv) -> None:
        """Test that a tool failure is not an HTTP failure."""
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post(
                "/v1/invoke-tool",
                json={"tool_name": "calculator", "arguments": {"action": "divide", "a": 1, "b": 0}},
            )

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is False
        assert data["error_kind"] == "execution"
        assert data["content"] == "divide by zero"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_404(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post(
                "/v1/invoke-tool", json={"tool_name": "nonexistent", "arguments": {}}
            )

        assert response.status_code == 404
        assert response.json()["error_kind"] == "unknown_tool"

    @pytest.mark.asyncio
    async def test_invalid_input_is_422(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            missing = await client.post(
                "/v1/invoke-tool",
                json={"tool_name": "calculator", "arguments": {"action": "add", "a": 2}},
            )
            malformed = await client.post(
                "/v1/invoke-tool",
                json={"tool_name": "calculator", "arguments": "add 2 and 3"},
            )

        assert missing.status_code == 422
        assert missing.json()["details"]["field"] == "b"
        assert malformed.status_code == 422
        assert malformed.json()["details"]["reason"] == "malformed_input"

    @pytest.mark.asyncio
    async def test_parallel_requests(self, env: AppEnv) -> None:
        """Test that concurrent HTTP calls each get their own answer."""

        @tool(
            name="slow_echo",
            description="Echo after a delay",
            schema=SchemaBuilder(["echo"])
            .string("message", "Text", required=True)
            .number("delay", "Seconds to wait")
            .build(),
        )
        async def slow_echo(arguments: dict[str, Any]) -> str:
            await asyncio.sleep(arguments.get("delay", 0))
            return arguments["message"]

        app = ToolApp(env).register_tool(slow_echo)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            responses = await asyncio.gather(
                *(
                    client.post(
                        "/v1/invoke-tool",
                        json={
                            "tool_name": "slow_echo",
                            "arguments": {"action": "echo", "message": f"m{i}", "delay": 0.01 * (4 - i)},
                        },
                    )
                    for i in range(4)
                )
            )

        assert [r.json()["content"] for r in responses] == ["m0", "m1", "m2", "m3"]

    @pytest.mark.asyncio
    async def test_shutdown_is_503(self) -> None:
        """Test that a request cut off by shutdown gets a 503."""
        env = AppEnv(name="test-app", shutdown_grace=0.05)
        started = asyncio.Event()

        @tool(name="hang", description="Never returns", schema=SchemaBuilder(["run"]).build())
        async def hang(arguments: dict[str, Any]) -> str:
            started.set()
            await asyncio.Event().wait()
            return "unreachable"

        app = ToolApp(env).register_tool(hang)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            pending = asyncio.create_task(
                client.post(
                    "/v1/invoke-tool", json={"tool_name": "hang", "arguments": {"action": "run"}}
                )
            )
            await asyncio.wait_for(started.wait(), timeout=2)
            app.stop()
            response = await asyncio.wait_for(pending, timeout=2)

        assert response.status_code == 503
        assert response.json()["content"] == "App is shutting down"
        assert response.json()["details"] == {"reason": "shutdown"}

    @pytest.mark.asyncio
    async def test_tool_failure_text_does_not_imply_shutdown(self, env: AppEnv) -> None:
        """Test that a tool failing with the shutdown wording is still a 200."""

        @tool(name="mimic", description="Fails oddly", schema=SchemaBuilder(["run"]).build())
        def mimic(arguments: dict[str, Any]) -> str:
            raise ExecutionFailure("App is shutting down")

        app = ToolApp(env).register_tool(mimic)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post(
                "/v1/invoke-tool", json={"tool_name": "mimic", "arguments": {"action": "run"}}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["error_kind"] == "execution"
        assert body["content"] == "App is shutting down"
        assert body["details"] is None


class TestConfigure:
    """Tests for /v1/configure."""

    @pytest.mark.asyncio
    async def test_settings_reach_callback(self, env: AppEnv) -> None:
        received: list[dict[str, str]] = []
        app = ToolApp(env).register_tool(calculator)
        app.on_configure(received.append)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post(
                "/v1/configure", json={"settings": {"api_key": "secret", "units": "metric"}}
            )

        assert response.status_code == 200
        assert response.json() == {"configured": True}
        assert received == [{"api_key": "secret", "units": "metric"}]

    @pytest.mark.asyncio
    async def test_without_callback(self, env: AppEnv) -> None:
        app = ToolApp(env).register_tool(calculator)

        async with serving(app, HttpTransport(env, listen=False)) as client:
            response = await client.post("/v1/configure", json={"settings": {}})

        assert response.status_code == 200


class TestListening:
    """Tests that start a real uvicorn server."""

    @pytest.mark.asyncio
    async def test_serves_over_unix_socket(self, tmp_path: Path) -> None:
        sock_path = tmp_path / "app.sock"
        sock_path.write_text("stale")
        env = AppEnv(name="test-app", sock_path=str(sock_path), shutdown_grace=0.5)
        app = ToolApp(env).register_tool(calculator)
        task = asyncio.create_task(app.run(HttpTransport(env)))

        async with httpx.AsyncClient(
            transport=httpx.AsyncHTTPTransport(uds=str(sock_path)), base_url="http://app"
        ) as client:
            for _ in range(100):
                try:
                    health = await client.get("/health")
                    break
                except httpx.TransportError:
                    await asyncio.sleep(0.05)
            else:
                pytest.fail("server did not start")

            response = await client.post(
                "/v1/invoke-tool",
                json={"tool_name": "calculator", "arguments": {"action": "subtract", "a": 5, "b": 8}},
            )

        app.stop()
        await asyncio.wait_for(task, timeout=5)

        assert health.json()["name"] == "test-app"
        assert response.json()["content"] == "5 subtract 8 = -3"
        assert not sock_path.exists()

    @pytest.mark.asyncio
    async def test_bind_failure_is_transport_error(self) -> None:
        """Test that a port already in use stops the app with TransportError."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]

            env = AppEnv(name="test-app", host="127.0.0.1", port=port)
            app = ToolApp(env).register_tool(calculator)

            with pytest.raises(TransportError):
                await asyncio.wait_for(app.run(HttpTransport(env)), timeout=5)

        assert app.state is AppState.STOPPED
