"""Tool argument models and handlers.

Each tool has a pydantic model carrying a ``tool`` literal, so the full set
forms a discriminated union (``ToolCall``) that is validated once at the
dispatch boundary.  Handlers receive the typed model and a ``ToolContext``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from mcp.types import ImageContent
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from ..errors import CloudbotError, ConfigError
from .context import ActionOutcome, ToolContext, ToolSpec

logger = logging.getLogger(__name__)

CLICK_TIMEOUT_MS = 15000
NAVIGATION_TIMEOUT_MS = 60000
KEY_TIMEOUT_MS = 5000
TEXT_TIMEOUT_MS = 10000
TYPE_DELAY_MS = 100
MAX_WAIT_S = 30.0
JPEG_QUALITY = 50


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: Optional[str] = Field(
        default=None,
        description="Session to run against; defaults to the caller's current session.",
    )


class RefTarget(ToolArgs):
    element: str = Field(description="Human-readable description of the element.")
    ref: str = Field(description="Exact element ref from the page snapshot.")


# ---------------------------------------------------------------------- #
# Argument models
# ---------------------------------------------------------------------- #


class SessionCreateArgs(ToolArgs):
    tool: Literal["browserbase_session_create"] = "browserbase_session_create"
    context_id: Optional[str] = None


class SessionCloseArgs(ToolArgs):
    tool: Literal["browserbase_session_close"] = "browserbase_session_close"


class SessionListArgs(ToolArgs):
    tool: Literal["browserbase_session_list"] = "browserbase_session_list"


class NavigateArgs(ToolArgs):
    tool: Literal["browserbase_navigate"] = "browserbase_navigate"
    url: str = Field(min_length=1)


class NavigateBackArgs(ToolArgs):
    tool: Literal["browserbase_navigate_back"] = "browserbase_navigate_back"


class NavigateForwardArgs(ToolArgs):
    tool: Literal["browserbase_navigate_forward"] = "browserbase_navigate_forward"


class SnapshotArgs(ToolArgs):
    tool: Literal["browserbase_snapshot"] = "browserbase_snapshot"


class ClickArgs(RefTarget):
    tool: Literal["browserbase_click"] = "browserbase_click"


class HoverArgs(RefTarget):
    tool: Literal["browserbase_hover"] = "browserbase_hover"


class DragArgs(ToolArgs):
    tool: Literal["browserbase_drag"] = "browserbase_drag"
    start_element: str
    start_ref: str
    end_element: str
    end_ref: str


class TypeArgs(RefTarget):
    tool: Literal["browserbase_type"] = "browserbase_type"
    text: str
    submit: bool = False
    slowly: bool = False


class SelectOptionArgs(RefTarget):
    tool: Literal["browserbase_select_option"] = "browserbase_select_option"
    values: List[str] = Field(min_length=1)


class ScreenshotArgs(ToolArgs):
    tool: Literal["browserbase_take_screenshot"] = "browserbase_take_screenshot"
    raw: bool = False
    element: Optional[str] = None
    ref: Optional[str] = None

    @model_validator(mode="after")
    def _element_and_ref_together(self) -> "ScreenshotArgs":
        if bool(self.element) != bool(self.ref):
            raise ValueError("Both element and ref must be provided, or neither.")
        return self


class PressKeyArgs(ToolArgs):
    tool: Literal["browserbase_press_key"] = "browserbase_press_key"
    key: str = Field(min_length=1)
    element: Optional[str] = None
    ref: Optional[str] = None
    selector: Optional[str] = None

    @model_validator(mode="after")
    def _one_target(self) -> "PressKeyArgs":
        if self.ref and self.selector:
            raise ValueError("Provide either ref or selector, not both.")
        return self


class GetTextArgs(ToolArgs):
    tool: Literal["browserbase_get_text"] = "browserbase_get_text"
    selector: Optional[str] = None


class WaitArgs(ToolArgs):
    tool: Literal["browserbase_wait"] = "browserbase_wait"
    time: float = Field(ge=0)


class ResizeArgs(ToolArgs):
    tool: Literal["browserbase_resize"] = "browserbase_resize"
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class ContextCreateArgs(ToolArgs):
    tool: Literal["browserbase_context_create"] = "browserbase_context_create"
    name: Optional[str] = None


class ContextDeleteArgs(ToolArgs):
    tool: Literal["browserbase_context_delete"] = "browserbase_context_delete"
    context_id: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _needs_target(self) -> "ContextDeleteArgs":
        if not self.context_id and not self.name:
            raise ValueError("Provide either context_id or name.")
        return self


ToolCall = Annotated[
    Union[
        SessionCreateArgs,
        SessionCloseArgs,
        SessionListArgs,
        NavigateArgs,
        NavigateBackArgs,
        NavigateForwardArgs,
        SnapshotArgs,
        ClickArgs,
        HoverArgs,
        DragArgs,
        TypeArgs,
        SelectOptionArgs,
        ScreenshotArgs,
        PressKeyArgs,
        GetTextArgs,
        WaitArgs,
        ResizeArgs,
        ContextCreateArgs,
        ContextDeleteArgs,
    ],
    Field(discriminator="tool"),
]

_TOOL_CALL_ADAPTER: TypeAdapter[Any] = TypeAdapter(ToolCall)


def parse_tool_call(name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolArgs:
    """Validate ``arguments`` for tool ``name`` into its typed model."""
    payload = {k: v for k, v in (arguments or {}).items() if v is not None}
    payload["tool"] = name
    return _TOOL_CALL_ADAPTER.validate_python(payload)


# ---------------------------------------------------------------------- #
# Session handlers
# ---------------------------------------------------------------------- #


async def _session_create(ctx: ToolContext, args: SessionCreateArgs) -> ActionOutcome:
    registry = ctx.registry
    target = args.session_id or registry.default_session_id
    if target == registry.default_session_id and not args.context_id:
        record = await registry.ensure_default_session()
        verb = "Default"
    else:
        record = await registry.create_session(target, context_id=args.context_id)
        verb = "Created"
    ctx.current_session_id = record.session_id
    ctx.forget_snapshot(record.session_id)
    lines = [
        f"{verb} Browserbase session {record.session_id} "
        f"(remote id {record.remote_session_id}) is now active."
    ]
    debug_url = await registry.provisioner.debug_url(record.remote_session_id)
    if debug_url:
        lines.append(f"Live view: {debug_url}")
    return ActionOutcome("\n".join(lines))


async def _session_close(ctx: ToolContext, args: SessionCloseArgs) -> ActionOutcome:
    registry = ctx.registry
    target = args.session_id or ctx.current_session_id
    closed = await registry.close_session(target)
    ctx.forget_snapshot(target)
    ctx.current_session_id = registry.default_session_id
    if not closed:
        return ActionOutcome(f"No open session found for {target}; nothing to close.")
    return ActionOutcome(f"Closed session {target}. Active session reset to the default.")


async def _session_list(ctx: ToolContext, args: SessionListArgs) -> ActionOutcome:
    registry = ctx.registry
    records = registry.list_sessions()
    if not records:
        return ActionOutcome("No open sessions.")
    lines = [f"Open sessions ({len(records)}):"]
    for record in records:
        marker = " [current]" if record.session_id == ctx.current_session_id else ""
        lines.append(
            f"- {record.session_id}{marker}: remote {record.remote_session_id}, "
            f"age {registry.age_seconds(record):.0f}s"
        )
    return ActionOutcome("\n".join(lines))


# ---------------------------------------------------------------------- #
# Page handlers
# ---------------------------------------------------------------------- #


async def _navigate(ctx: ToolContext, args: NavigateArgs) -> ActionOutcome:
    page = await ctx.active_page()
    await page.goto(args.url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
    return ActionOutcome(f"Navigated to {args.url}", capture_snapshot=True)


async def _navigate_back(ctx: ToolContext, args: NavigateBackArgs) -> ActionOutcome:
    page = await ctx.active_page()
    await page.go_back(wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
    return ActionOutcome("Navigated back", capture_snapshot=True)


async def _navigate_forward(ctx: ToolContext, args: NavigateForwardArgs) -> ActionOutcome:
    page = await ctx.active_page()
    await page.go_forward(wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
    return ActionOutcome("Navigated forward", capture_snapshot=True)


async def _snapshot(ctx: ToolContext, args: SnapshotArgs) -> ActionOutcome:
    snapshot = await ctx.capture_snapshot()
    if snapshot is None:
        raise CloudbotError("Could not capture a snapshot of the current page.")
    return ActionOutcome(
        f"Captured snapshot (generation {snapshot.generation}).", snapshot=snapshot
    )


async def _press_key(ctx: ToolContext, args: PressKeyArgs) -> ActionOutcome:
    if args.ref:
        async def press(page, locator, _snapshot):
            await locator.press(args.key, timeout=KEY_TIMEOUT_MS)

        await ctx.execute_ref_action(args.tool, args.ref, press, element=args.element)
        label = args.element or args.ref
        return ActionOutcome(f"Pressed key '{args.key}' on \"{label}\"", capture_snapshot=True)

    page = await ctx.active_page()
    if args.selector:
        locator = page.locator(args.selector)
        await locator.wait_for(state="visible", timeout=KEY_TIMEOUT_MS)
        await locator.press(args.key, timeout=KEY_TIMEOUT_MS)
        return ActionOutcome(
            f"Pressed key '{args.key}' on element matching selector {args.selector}",
            capture_snapshot=True,
        )
    await page.keyboard.press(args.key)
    return ActionOutcome(f"Pressed key '{args.key}'", capture_snapshot=True)


async def _get_text(ctx: ToolContext, args: GetTextArgs) -> ActionOutcome:
    page = await ctx.active_page()
    selector = args.selector or "body"
    text = await page.locator(selector).first.inner_text(timeout=TEXT_TIMEOUT_MS)
    return ActionOutcome(text.strip())


async def _wait(ctx: ToolContext, args: WaitArgs) -> ActionOutcome:
    seconds = min(args.time, MAX_WAIT_S)
    await ctx.sleep(seconds)
    return ActionOutcome(f"Waited for {seconds:g} second(s)")


async def _resize(ctx: ToolContext, args: ResizeArgs) -> ActionOutcome:
    page = await ctx.active_page()
    await page.set_viewport_size({"width": args.width, "height": args.height})
    return ActionOutcome(
        f"Resized viewport to {args.width}x{args.height}", capture_snapshot=True
    )


async def _take_screenshot(ctx: ToolContext, args: ScreenshotArgs) -> ActionOutcome:
    image_type = "png" if args.raw else "jpeg"
    options: Dict[str, Any] = {"type": image_type}
    if image_type == "jpeg":
        options["quality"] = JPEG_QUALITY

    async def capture(page, locator, _snapshot):
        if locator is not None:
            return await locator.screenshot(**options)
        return await page.screenshot(**options)

    data = await ctx.execute_ref_action(
        "browserbase_take_screenshot",
        args.ref,
        capture,
        element=args.element,
        requires_ref=False,
    )
    encoded = base64.b64encode(data).decode("ascii")
    mime_type = f"image/{image_type}"
    name = ctx.services.screenshots.new_name()
    uri = ctx.services.screenshots.publish(name, mime_type, encoded)
    target = args.element or "the current page"
    return ActionOutcome(
        f"Took screenshot of {target}, published as {uri}",
        images=[ImageContent(type="image", data=encoded, mimeType=mime_type)],
    )


# ---------------------------------------------------------------------- #
# Ref-based interaction handlers
# ---------------------------------------------------------------------- #


async def _click(ctx: ToolContext, args: ClickArgs) -> ActionOutcome:
    async def click(page, locator, _snapshot):
        await locator.click(timeout=CLICK_TIMEOUT_MS)

    await ctx.execute_ref_action(args.tool, args.ref, click, element=args.element)
    return ActionOutcome(f"Clicked \"{args.element}\"", capture_snapshot=True)


async def _hover(ctx: ToolContext, args: HoverArgs) -> ActionOutcome:
    async def hover(page, locator, _snapshot):
        await locator.hover(timeout=CLICK_TIMEOUT_MS)

    await ctx.execute_ref_action(args.tool, args.ref, hover, element=args.element)
    return ActionOutcome(f"Hovered over \"{args.element}\"", capture_snapshot=True)


async def _drag(ctx: ToolContext, args: DragArgs) -> ActionOutcome:
    async def drag(page, locator, snapshot):
        target = snapshot.resolve(args.end_ref)
        await locator.drag_to(target, timeout=CLICK_TIMEOUT_MS)

    await ctx.execute_ref_action(args.tool, args.start_ref, drag, element=args.start_element)
    return ActionOutcome(
        f"Dragged \"{args.start_element}\" to \"{args.end_element}\"", capture_snapshot=True
    )


async def _type(ctx: ToolContext, args: TypeArgs) -> ActionOutcome:
    async def type_text(page, locator, _snapshot):
        if not await locator.is_editable():
            raise CloudbotError(
                f"Element '{args.element}' (ref: {args.ref}) was visible but not editable."
            )
        if args.slowly:
            await locator.press_sequentially(args.text, delay=TYPE_DELAY_MS)
        else:
            await locator.fill(args.text)
        if args.submit:
            await locator.press("Enter")

    await ctx.execute_ref_action(args.tool, args.ref, type_text, element=args.element)
    suffix = " and submitted" if args.submit else ""
    return ActionOutcome(
        f"Typed \"{args.text}\" into \"{args.element}\"{suffix}", capture_snapshot=True
    )


async def _select_option(ctx: ToolContext, args: SelectOptionArgs) -> ActionOutcome:
    async def select(page, locator, _snapshot):
        return await locator.select_option(args.values, timeout=CLICK_TIMEOUT_MS)

    selected = await ctx.execute_ref_action(args.tool, args.ref, select, element=args.element)
    return ActionOutcome(
        f"Selected {', '.join(selected or args.values)} in \"{args.element}\"",
        capture_snapshot=True,
    )


# ---------------------------------------------------------------------- #
# Browserbase context handlers
# ---------------------------------------------------------------------- #


async def _context_create(ctx: ToolContext, args: ContextCreateArgs) -> ActionOutcome:
    client = _require_client(ctx)
    context_id = await asyncio.to_thread(client.create_context)
    if args.name:
        ctx.services.context_names[args.name] = context_id
    label = f" named '{args.name}'" if args.name else ""
    return ActionOutcome(f"Created Browserbase context{label} with id {context_id}")


async def _context_delete(ctx: ToolContext, args: ContextDeleteArgs) -> ActionOutcome:
    client = _require_client(ctx)
    names = ctx.services.context_names
    context_id = args.context_id
    if not context_id:
        context_id = names.get(args.name or "")
        if not context_id:
            raise CloudbotError(f"No context found with name '{args.name}'.")
    await asyncio.to_thread(client.delete_context, context_id)
    for name, value in list(names.items()):
        if value == context_id:
            del names[name]
    return ActionOutcome(f"Deleted Browserbase context {context_id}")


def _require_client(ctx: ToolContext):
    client = ctx.services.client
    if client is None:
        raise ConfigError("Browserbase API client is not configured.")
    return client


TOOL_SPECS: Dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "browserbase_session_create",
            "Create or reuse a browser session and make it active.",
            SessionCreateArgs,
            _session_create,
            needs_session=False,
        ),
        ToolSpec(
            "browserbase_session_close",
            "Close a browser session and reset to the default session.",
            SessionCloseArgs,
            _session_close,
            needs_session=False,
        ),
        ToolSpec(
            "browserbase_session_list",
            "List open browser sessions.",
            SessionListArgs,
            _session_list,
            needs_session=False,
        ),
        ToolSpec("browserbase_navigate", "Navigate to a URL.", NavigateArgs, _navigate),
        ToolSpec("browserbase_navigate_back", "Go back in history.", NavigateBackArgs, _navigate_back),
        ToolSpec(
            "browserbase_navigate_forward",
            "Go forward in history.",
            NavigateForwardArgs,
            _navigate_forward,
        ),
        ToolSpec(
            "browserbase_snapshot",
            "Capture an accessibility snapshot of the current page.",
            SnapshotArgs,
            _snapshot,
        ),
        ToolSpec("browserbase_click", "Click an element by ref.", ClickArgs, _click),
        ToolSpec("browserbase_hover", "Hover over an element by ref.", HoverArgs, _hover),
        ToolSpec("browserbase_drag", "Drag one element onto another.", DragArgs, _drag),
        ToolSpec("browserbase_type", "Type text into an editable element.", TypeArgs, _type),
        ToolSpec(
            "browserbase_select_option",
            "Select options in a dropdown.",
            SelectOptionArgs,
            _select_option,
        ),
        ToolSpec(
            "browserbase_take_screenshot",
            "Take a screenshot of the page or an element.",
            ScreenshotArgs,
            _take_screenshot,
        ),
        ToolSpec("browserbase_press_key", "Press a keyboard key.", PressKeyArgs, _press_key),
        ToolSpec("browserbase_get_text", "Read visible text from the page.", GetTextArgs, _get_text),
        ToolSpec("browserbase_wait", "Wait for a number of seconds.", WaitArgs, _wait),
        ToolSpec("browserbase_resize", "Resize the browser viewport.", ResizeArgs, _resize),
        ToolSpec(
            "browserbase_context_create",
            "Create a persisted Browserbase context.",
            ContextCreateArgs,
            _context_create,
            needs_session=False,
        ),
        ToolSpec(
            "browserbase_context_delete",
            "Delete a persisted Browserbase context.",
            ContextDeleteArgs,
            _context_delete,
            needs_session=False,
        ),
    )
}


__all__ = [
    "TOOL_SPECS",
    "ToolArgs",
    "ToolCall",
    "parse_tool_call",
]
