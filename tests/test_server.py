import asyncio

import pytest
from fastmcp.exceptions import ToolError
from mcp.types import TextContent

from cloudbot.mcp import server


@pytest.fixture
def installed(monkeypatch, tool_context):
    monkeypatch.setitem(server._tool_contexts, server._SESSION_KEY_DEFAULT, tool_context)
    return tool_context


def test_run_tool_returns_content_blocks(installed) -> None:
    content = asyncio.run(
        server._run_tool("browserbase_navigate", None, url="https://example.com", session_id=None)
    )

    assert isinstance(content[0], TextContent)
    assert "Navigated to https://example.com" in content[0].text


def test_invalid_arguments_raise_tool_error(installed) -> None:
    with pytest.raises(ToolError, match="Invalid arguments"):
        asyncio.run(server._run_tool("browserbase_take_screenshot", None, element="Logo"))


def test_error_results_raise_tool_error(installed) -> None:
    with pytest.raises(ToolError, match=r"\[browserbase_snapshot\] Error"):
        asyncio.run(server._run_tool("browserbase_snapshot", None, session_id="ghost"))


def test_client_id_is_read_from_context() -> None:
    class Ctx:
        client_id = "client-7"

    assert server._client_id_from_context(None) is None
    assert server._client_id_from_context(Ctx()) == "client-7"


def test_http_app_can_be_mounted_elsewhere() -> None:
    from cloudbot.app import app, create_app

    assert callable(app)
    assert callable(create_app("/browser"))
