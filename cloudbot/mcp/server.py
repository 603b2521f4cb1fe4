"""FastMCP server exposing remote Browserbase sessions as tools."""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from pydantic import ValidationError

from cloudbot.browser.provider import BrowserbaseClient, BrowserbaseProvisioner
from cloudbot.browser.session import SessionRegistry
from cloudbot.config import ServerConfig, load_config
from cloudbot.mcp.context import ContentBlock, Services, ToolContext
from cloudbot.mcp.tools import TOOL_SPECS, parse_tool_call

logger = logging.getLogger(__name__)

_SESSION_KEY_DEFAULT = "__default__"
_config: Optional[ServerConfig] = None
_services: Optional[Services] = None
_provisioner: Optional[BrowserbaseProvisioner] = None
_tool_contexts: Dict[str, ToolContext] = {}


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    try:
        yield
    finally:
        await _shutdown()


mcp = FastMCP(name="cloudbot-browser", lifespan=_lifespan)


async def configure_server(config: ServerConfig) -> None:
    """Install ``config`` and close every existing session."""
    global _config
    await _shutdown()
    _config = config


def _get_services() -> Services:
    """Return the shared services, building them from config on first use."""
    global _config, _services, _provisioner
    if _services is None:
        if _config is None:
            _config = load_config()
        client = BrowserbaseClient(_config)
        _provisioner = BrowserbaseProvisioner(client, _config)
        _services = Services(registry=SessionRegistry(_provisioner), client=client)
    return _services


def _get_tool_context(client_id: Optional[str]) -> ToolContext:
    """Return the ToolContext for the given client, creating it if needed."""
    key = client_id or _SESSION_KEY_DEFAULT
    tool_context = _tool_contexts.get(key)
    if tool_context is None:
        tool_context = ToolContext(_get_services())
        _tool_contexts[key] = tool_context
    return tool_context


async def _shutdown() -> None:
    """Close all sessions and release Playwright."""
    global _services, _provisioner
    services, provisioner = _services, _provisioner
    _services = None
    _provisioner = None
    _tool_contexts.clear()
    if services is not None:
        try:
            await services.registry.close_all()
        except Exception as exc:
            logger.warning("Error closing sessions during shutdown: %s", exc)
    if provisioner is not None:
        try:
            await provisioner.aclose()
        except Exception as exc:
            logger.warning("Error stopping Playwright: %s", exc)


def _client_id_from_context(ctx: Optional[Context]) -> Optional[str]:
    return getattr(ctx, "client_id", None) if ctx is not None else None


async def _run_tool(
    name: str,
    ctx: Optional[Context],
    **arguments: Any,
) -> List[ContentBlock]:
    try:
        args = parse_tool_call(name, arguments)
    except ValidationError as exc:
        raise ToolError(f"[{name}] Error: Invalid arguments: {exc}") from exc
    tool_context = _get_tool_context(_client_id_from_context(ctx))
    result = await tool_context.run(TOOL_SPECS[name], args)
    if result.is_error:
        raise ToolError(result.text)
    return result.content


# ---------------------------------------------------------------------- #
# Session tools
# ---------------------------------------------------------------------- #


@mcp.tool
async def browserbase_session_create(
    session_id: Optional[str] = None,
    context_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Create a browser session (or reuse the default one) and make it active."""
    return await _run_tool(
        "browserbase_session_create", ctx, session_id=session_id, context_id=context_id
    )


@mcp.tool
async def browserbase_session_close(
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Close a browser session; defaults to the current one."""
    return await _run_tool("browserbase_session_close", ctx, session_id=session_id)


@mcp.tool
async def browserbase_session_list(ctx: Optional[Context] = None) -> List[ContentBlock]:
    """List open browser sessions with their remote ids and ages."""
    return await _run_tool("browserbase_session_list", ctx)


# ---------------------------------------------------------------------- #
# Page tools
# ---------------------------------------------------------------------- #


@mcp.tool
async def browserbase_navigate(
    url: str,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Navigate to ``url`` and return the page state with a fresh snapshot."""
    return await _run_tool("browserbase_navigate", ctx, url=url, session_id=session_id)


@mcp.tool
async def browserbase_navigate_back(
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Go back to the previous page."""
    return await _run_tool("browserbase_navigate_back", ctx, session_id=session_id)


@mcp.tool
async def browserbase_navigate_forward(
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Go forward to the next page."""
    return await _run_tool("browserbase_navigate_forward", ctx, session_id=session_id)


@mcp.tool
async def browserbase_snapshot(
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Capture an accessibility snapshot; its refs address elements for other tools."""
    return await _run_tool("browserbase_snapshot", ctx, session_id=session_id)


@mcp.tool
async def browserbase_take_screenshot(
    raw: bool = False,
    element: Optional[str] = None,
    ref: Optional[str] = None,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Screenshot the page, or one element when ``element`` and ``ref`` are given."""
    return await _run_tool(
        "browserbase_take_screenshot",
        ctx,
        raw=raw,
        element=element,
        ref=ref,
        session_id=session_id,
    )


@mcp.tool
async def browserbase_press_key(
    key: str,
    element: Optional[str] = None,
    ref: Optional[str] = None,
    selector: Optional[str] = None,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Press ``key`` on the element at ``ref`` or ``selector``, or on the page."""
    return await _run_tool(
        "browserbase_press_key",
        ctx,
        key=key,
        element=element,
        ref=ref,
        selector=selector,
        session_id=session_id,
    )


@mcp.tool
async def browserbase_get_text(
    selector: Optional[str] = None,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Return the visible text of ``selector`` (the whole body by default)."""
    return await _run_tool(
        "browserbase_get_text", ctx, selector=selector, session_id=session_id
    )


@mcp.tool
async def browserbase_wait(
    time: float,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Wait ``time`` seconds (at most 30)."""
    return await _run_tool("browserbase_wait", ctx, time=time, session_id=session_id)


@mcp.tool
async def browserbase_resize(
    width: int,
    height: int,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Resize the browser viewport."""
    return await _run_tool(
        "browserbase_resize", ctx, width=width, height=height, session_id=session_id
    )


# ---------------------------------------------------------------------- #
# Ref-based interaction tools
# ---------------------------------------------------------------------- #


@mcp.tool
async def browserbase_click(
    element: str,
    ref: str,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Click the element identified by ``ref`` from the latest snapshot."""
    return await _run_tool(
        "browserbase_click", ctx, element=element, ref=ref, session_id=session_id
    )


@mcp.tool
async def browserbase_hover(
    element: str,
    ref: str,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Hover over the element identified by ``ref``."""
    return await _run_tool(
        "browserbase_hover", ctx, element=element, ref=ref, session_id=session_id
    )


@mcp.tool
async def browserbase_drag(
    start_element: str,
    start_ref: str,
    end_element: str,
    end_ref: str,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Drag the element at ``start_ref`` onto the element at ``end_ref``."""
    return await _run_tool(
        "browserbase_drag",
        ctx,
        start_element=start_element,
        start_ref=start_ref,
        end_element=end_element,
        end_ref=end_ref,
        session_id=session_id,
    )


@mcp.tool
async def browserbase_type(
    element: str,
    ref: str,
    text: str,
    submit: bool = False,
    slowly: bool = False,
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Type ``text`` into an editable element, optionally pressing Enter."""
    return await _run_tool(
        "browserbase_type",
        ctx,
        element=element,
        ref=ref,
        text=text,
        submit=submit,
        slowly=slowly,
        session_id=session_id,
    )


@mcp.tool
async def browserbase_select_option(
    element: str,
    ref: str,
    values: List[str],
    session_id: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Select one or more options in a dropdown."""
    return await _run_tool(
        "browserbase_select_option",
        ctx,
        element=element,
        ref=ref,
        values=values,
        session_id=session_id,
    )


# ---------------------------------------------------------------------- #
# Browserbase context tools
# ---------------------------------------------------------------------- #


@mcp.tool
async def browserbase_context_create(
    name: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Create a persisted Browserbase context, optionally remembered by ``name``."""
    return await _run_tool("browserbase_context_create", ctx, name=name)


@mcp.tool
async def browserbase_context_delete(
    context_id: Optional[str] = None,
    name: Optional[str] = None,
    ctx: Optional[Context] = None,
) -> List[ContentBlock]:
    """Delete a Browserbase context by id or by the name it was created with."""
    return await _run_tool(
        "browserbase_context_delete", ctx, context_id=context_id, name=name
    )


# ---------------------------------------------------------------------- #
# Resources
# ---------------------------------------------------------------------- #


@mcp.resource("screenshot://index", mime_type="application/json")
def screenshot_index() -> str:
    """List published screenshots."""
    shots = _get_services().screenshots.list()
    return json.dumps(
        [{"uri": shot.uri, "name": shot.name, "mimeType": shot.mime_type} for shot in shots]
    )


@mcp.resource("screenshot://{name}")
def screenshot_resource(name: str) -> bytes:
    """Return the bytes of a published screenshot."""
    shot = _get_services().screenshots.read(name)
    if shot is None:
        raise ValueError(f"Resource not found: screenshot://{name}")
    return shot.data()


def main() -> None:
    """Run the Cloudbot MCP server using configuration from the environment."""
    logging.basicConfig(
        level=os.environ.get("CLOUDBOT_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run()


__all__ = [
    "mcp",
    "configure_server",
    "browserbase_session_create",
    "browserbase_session_close",
    "browserbase_session_list",
    "browserbase_navigate",
    "browserbase_navigate_back",
    "browserbase_navigate_forward",
    "browserbase_snapshot",
    "browserbase_take_screenshot",
    "browserbase_press_key",
    "browserbase_get_text",
    "browserbase_wait",
    "browserbase_resize",
    "browserbase_click",
    "browserbase_hover",
    "browserbase_drag",
    "browserbase_type",
    "browserbase_select_option",
    "browserbase_context_create",
    "browserbase_context_delete",
    "main",
]
