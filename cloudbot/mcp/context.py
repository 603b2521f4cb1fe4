"""Per-caller execution context for Cloudbot tools.

A ``ToolContext`` tracks which session a caller is working against and the
most recent snapshot taken for each session.  ``run`` is the single entry
point the MCP layer uses: it switches sessions when asked, validates the
session, invokes the tool handler and assembles the textual result (page URL,
title and fresh snapshot) the caller needs to plan its next step.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Type,
    Union,
)

from mcp.types import ImageContent, TextContent
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from ..browser.session import SessionRegistry
from ..browser.snapshot import Snapshot, build_snapshot
from ..errors import (
    ActionExhaustedError,
    RefValidationError,
    SessionNotAvailableError,
    VisibilityTimeoutError,
)
from .resources import ScreenshotStore
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry

if TYPE_CHECKING:
    from ..browser.provider import BrowserbaseClient

logger = logging.getLogger(__name__)

SETTLE_DELAY_S = 0.1
POST_ACTION_DELAY_S = 0.5

ContentBlock = Union[TextContent, ImageContent]
RefAction = Callable[[Page, Any, Optional[Snapshot]], Awaitable[Any]]


@dataclass
class ActionOutcome:
    """What a tool handler hands back to ``ToolContext.run``."""

    text: str
    images: List[ImageContent] = field(default_factory=list)
    capture_snapshot: bool = False
    snapshot: Optional[Snapshot] = None


@dataclass
class ToolResult:
    content: List[ContentBlock]
    is_error: bool = False

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextContent))


Handler = Callable[["ToolContext", Any], Awaitable[ActionOutcome]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: Type[BaseModel]
    handler: Handler
    needs_session: bool = True


@dataclass
class Services:
    """Process-wide collaborators shared by every ``ToolContext``."""

    registry: SessionRegistry
    screenshots: ScreenshotStore = field(default_factory=ScreenshotStore)
    client: Optional["BrowserbaseClient"] = None
    context_names: Dict[str, str] = field(default_factory=dict)


class ToolContext:
    """Session pointer, snapshots and run loop for one caller."""

    def __init__(
        self,
        services: Services,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.services = services
        self.policy = policy
        self._sleep = sleep
        self.current_session_id = services.registry.default_session_id
        self._snapshots: Dict[str, Snapshot] = {}
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> SessionRegistry:
        return self.services.registry

    async def sleep(self, seconds: float) -> None:
        await self._sleep(seconds)

    # ------------------------------------------------------------------ #
    # Sessions and snapshots
    # ------------------------------------------------------------------ #

    async def active_page(self) -> Page:
        """Return the live page of the current session.

        Raises ``SessionNotAvailableError`` when a named session is gone.
        """
        record = await self.registry.get_session(self.current_session_id)
        if record is None:
            raise SessionNotAvailableError(self.current_session_id)
        return record.page

    def latest_snapshot(self, session_id: Optional[str] = None) -> Optional[Snapshot]:
        return self._snapshots.get(session_id or self.current_session_id)

    def forget_snapshot(self, session_id: Optional[str] = None) -> None:
        self._snapshots.pop(session_id or self.current_session_id, None)

    def snapshot_or_raise(self) -> Snapshot:
        snapshot = self.latest_snapshot()
        if snapshot is None:
            raise RefValidationError(
                f"No snapshot available for the current session "
                f"({self.current_session_id}). Capture a snapshot first."
            )
        return snapshot

    async def capture_snapshot(self, page: Optional[Page] = None) -> Optional[Snapshot]:
        """Take a new snapshot of the active page and make it the latest.

        ``page`` skips the session lookup when the caller already holds it.
        Returns None, and drops the previous snapshot, if capture fails.
        """
        session_id = self.current_session_id
        await self._sleep(SETTLE_DELAY_S)
        try:
            if page is None:
                page = await self.active_page()
            self._generation += 1
            snapshot = await build_snapshot(page, generation=self._generation)
        except Exception as exc:
            logger.warning("Snapshot capture failed for session %s: %s", session_id, exc)
            self._snapshots.pop(session_id, None)
            return None
        self._snapshots[session_id] = snapshot
        return snapshot

    # ------------------------------------------------------------------ #
    # Retrying ref actions
    # ------------------------------------------------------------------ #

    async def execute_ref_action(
        self,
        tool: str,
        ref: Optional[str],
        action: RefAction,
        *,
        element: Optional[str] = None,
        requires_ref: bool = True,
    ) -> Any:
        """Run ``action`` against the element ``ref`` names, retrying on failure.

        Every attempt re-fetches the page and, when a ref is involved, takes a
        fresh snapshot and waits for the element to be visible before acting.
        Raises ``ActionExhaustedError`` once the attempts are used up.
        """
        timeout_ms = self.policy.visibility_timeout_ms

        async def attempt(number: int) -> Any:
            page = await self.active_page()
            if requires_ref and not ref:
                raise RefValidationError(f"{tool} requires a ref.", retryable=False)
            if not ref:
                return await action(page, None, None)

            if await self.capture_snapshot(page) is None:
                raise RefValidationError(
                    f"Could not capture a snapshot to resolve ref '{ref}'."
                )
            snapshot = self.snapshot_or_raise()
            locator = snapshot.resolve(ref)
            logger.debug(
                "%s attempt %d using ref %s (generation %d)",
                tool,
                number,
                ref,
                snapshot.generation,
            )
            try:
                await locator.wait_for(state="visible", timeout=timeout_ms)
            except PlaywrightTimeoutError as exc:
                label = f"'{element}' " if element else ""
                raise VisibilityTimeoutError(
                    f"Element {label}(ref: {ref}) not visible within {timeout_ms} ms."
                ) from exc
            return await action(page, locator, snapshot)

        return await with_retry(
            attempt,
            self.policy,
            tool=tool,
            is_retryable=_is_retryable,
            sleep=self._sleep,
        )

    # ------------------------------------------------------------------ #
    # Tool execution
    # ------------------------------------------------------------------ #

    async def run(self, spec: ToolSpec, args: Any) -> ToolResult:
        """Execute ``spec`` with validated ``args``; never raises."""
        async with self._lock:
            return await self._run(spec, args)

    async def _run(self, spec: ToolSpec, args: Any) -> ToolResult:
        tool = spec.name
        _log_call(tool, args)
        previous = self.current_session_id
        requested = getattr(args, "session_id", None)
        if requested and requested != self.current_session_id:
            self.current_session_id = requested
            self.forget_snapshot(requested)

        if spec.needs_session:
            try:
                await self.active_page()
            except Exception as exc:
                failed = self.current_session_id
                self.current_session_id = previous
                return self._error(
                    tool, f"Error retrieving or validating session {failed}: {exc}"
                )

        try:
            outcome = await spec.handler(self, args)
        except Exception as exc:
            if isinstance(exc, ActionExhaustedError):
                logger.warning("%s exhausted: %s", tool, exc)
            else:
                logger.exception("%s failed", tool)
            if tool != "browserbase_session_create":
                self.current_session_id = previous
            return self._error(tool, f"Execution failed: {exc}")

        snapshot = outcome.snapshot
        if snapshot is None and outcome.capture_snapshot:
            await self._sleep(POST_ACTION_DELAY_S)
            snapshot = await self.capture_snapshot()

        text = await self._assemble(tool, outcome.text, snapshot)
        result = ToolResult(content=[TextContent(type="text", text=text), *outcome.images])
        _log_result(tool, result)
        return result

    async def _assemble(self, tool: str, text: str, snapshot: Optional[Snapshot]) -> str:
        parts = [text or f"{tool} action completed."]
        page = self._reportable_page()
        if page is None:
            parts.append("- [Page unavailable after action]")
        else:
            try:
                title = await page.title()
            except Exception:
                title = "[Error retrieving title]"
            parts.append(f"- Page URL: {page.url}\n- Page Title: {title}")
        if snapshot is not None:
            parts.append(snapshot.text())
        else:
            parts.append("- [No relevant snapshot available after action]")
        return "\n\n".join(parts)

    def _reportable_page(self) -> Optional[Page]:
        record = self.registry.peek(self.current_session_id)
        if record is None or record.page.is_closed():
            return None
        return record.page

    def _error(self, tool: str, message: str) -> ToolResult:
        result = ToolResult(
            content=[TextContent(type="text", text=f"[{tool}] Error: {message}")],
            is_error=True,
        )
        _log_result(tool, result)
        return result


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RefValidationError):
        return exc.retryable
    return not isinstance(exc, SessionNotAvailableError)


def _log_call(tool: str, args: Any) -> None:
    payload = args.model_dump(exclude_none=True) if isinstance(args, BaseModel) else args
    logger.info("%s call: %s", tool, payload)


def _log_result(tool: str, result: ToolResult) -> None:
    summary: Dict[str, Any] = {"is_error": result.is_error, "text": f"<{len(result.text)} chars>"}
    images = [block for block in result.content if isinstance(block, ImageContent)]
    if images:
        summary["images"] = [f"<{len(block.data)} chars>" for block in images]
    logger.info("%s result: %s", tool, summary)


__all__ = [
    "ActionOutcome",
    "Services",
    "ToolContext",
    "ToolResult",
    "ToolSpec",
]
