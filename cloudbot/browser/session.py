"""Session records and the registry that keeps them live.

The registry owns the map from caller-chosen session id to ``SessionRecord``
along with the default and active id pointers.  Every access that matters
re-validates the record (connectivity flags plus a title probe); the default
session is transparently rebuilt when it goes stale, named sessions are
dropped instead.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from playwright.async_api import Browser, Page

from ..errors import ConnectivityError, ProbeError, SessionCreationError
from .provider import ProvisionedBrowser

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_S = 5.0

# Probe failures matching these are treated as a dead connection.
_DISCONNECT_SIGNATURE = re.compile(
    r"target closed|target page, context or browser has been closed|"
    r"browser has been closed|browser closed|connection refused|"
    r"connection closed|page closed|page has been closed|disconnected|timeout",
    re.IGNORECASE,
)


class Provisioner(Protocol):
    async def provision(
        self, session_id: str, *, context_id: Optional[str] = None
    ) -> ProvisionedBrowser: ...

    async def release(self, remote_session_id: str) -> None: ...

    async def debug_url(self, remote_session_id: str) -> Optional[str]: ...


@dataclass
class SessionRecord:
    """A live browser connection and its primary page."""

    session_id: str
    remote_session_id: str
    browser: Browser
    page: Page
    created_at: float = field(default_factory=time.time)
    context_id: Optional[str] = None


def default_session_id() -> str:
    return f"cloudbot_session_main_{int(time.time() * 1000)}"


def is_disconnect_error(exc: BaseException) -> bool:
    """Return True when ``exc`` looks like a closed or unreachable browser."""
    if isinstance(exc, (asyncio.TimeoutError, ProbeError)):
        return True
    return bool(_DISCONNECT_SIGNATURE.search(str(exc)))


class SessionRegistry:
    """Map of session ids to live ``SessionRecord`` objects."""

    def __init__(
        self,
        provisioner: Provisioner,
        *,
        default_id: Optional[str] = None,
        probe_timeout_s: float = DEFAULT_PROBE_TIMEOUT_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provisioner = provisioner
        self._default_id = default_id or default_session_id()
        self._active_id = self._default_id
        self._sessions: Dict[str, SessionRecord] = {}
        self._probe_timeout_s = probe_timeout_s
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def default_session_id(self) -> str:
        return self._default_id

    @property
    def active_session_id(self) -> str:
        return self._active_id

    @property
    def provisioner(self) -> Provisioner:
        return self._provisioner

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def list_sessions(self) -> List[SessionRecord]:
        return list(self._sessions.values())

    def peek(self, session_id: str) -> Optional[SessionRecord]:
        """Return the stored record for ``session_id`` without validating it."""
        return self._sessions.get(session_id)

    def set_active_session_id(self, session_id: str) -> None:
        """Point the active id at ``session_id`` if it is known."""
        if session_id == self._default_id or session_id in self._sessions:
            self._active_id = session_id
            return
        logger.warning(
            "Ignoring request to activate unknown session %s; active remains %s",
            session_id,
            self._active_id,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle helpers
    # ------------------------------------------------------------------ #

    async def get_session(self, session_id: Optional[str] = None) -> Optional[SessionRecord]:
        """Return a live record for ``session_id`` (the default when omitted).

        The default session is created or rebuilt as needed and a
        ``SessionCreationError`` is raised if that fails twice.  For any
        other id ``None`` is returned when the session is absent or stale.
        """
        target = session_id or self._default_id
        if target == self._default_id:
            return await self.ensure_default_session()

        async with self._lock:
            record = self._sessions.get(target)
            if record is None:
                logger.debug("Session %s not found", target)
                return None
            if not await self._is_live(record):
                logger.warning("Session %s is stale; removing it", target)
                await self._discard(record)
                return None
            self._active_id = target
            return record

    async def ensure_default_session(self) -> SessionRecord:
        """Return the default session, creating or rebuilding it if needed."""
        async with self._lock:
            session_id = self._default_id
            record = self._sessions.get(session_id)
            if record is not None:
                if await self._is_live(record):
                    self._active_id = session_id
                    logger.debug("Reusing default session %s", session_id)
                    return record
                logger.warning("Default session %s is stale; recreating", session_id)
                await self._discard(record)

            try:
                return await self._create(session_id)
            except Exception as first:
                logger.warning(
                    "Creating default session %s failed (%s); retrying once",
                    session_id,
                    first,
                )
            try:
                return await self._create(session_id)
            except Exception as exc:
                raise SessionCreationError(
                    f"Failed to ensure default session {session_id} after "
                    f"initial error and retry: {exc}"
                ) from exc

    async def create_session(
        self,
        session_id: str,
        *,
        context_id: Optional[str] = None,
    ) -> SessionRecord:
        """Create ``session_id``, replacing any record stored under it."""
        async with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                logger.info("Replacing existing session %s", session_id)
                await self._discard(existing)
            return await self._create(session_id, context_id=context_id)

    async def close_session(self, session_id: str, *, release: bool = True) -> bool:
        """Close and forget ``session_id``.  Returns False if it was unknown."""
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return False
            await self._discard(record)
        if release:
            await self._provisioner.release(record.remote_session_id)
        logger.info("Closed session %s", session_id)
        return True

    async def close_all(self) -> None:
        """Close every session, clear the map and reset the active id."""
        async with self._lock:
            records = list(self._sessions.values())
            self._sessions.clear()
            self._active_id = self._default_id
        for record in records:
            await _close_quietly(record)
        logger.info("Closed %d session(s)", len(records))

    def age_seconds(self, record: SessionRecord) -> float:
        return max(0.0, self._clock() - record.created_at)

    async def check_live(self, record: SessionRecord) -> None:
        """Check the connectivity flags, then probe the page title.

        Raises ``ConnectivityError`` when a flag shows the browser or page is
        gone and ``ProbeError`` when the probe fails with a disconnect
        signature.  Other probe errors propagate unchanged.
        """
        if not record.browser.is_connected():
            raise ConnectivityError(f"Browser for session {record.session_id} is disconnected.")
        if record.page.is_closed():
            raise ConnectivityError(f"Page for session {record.session_id} is closed.")
        try:
            await asyncio.wait_for(record.page.title(), timeout=self._probe_timeout_s)
        except Exception as exc:
            if is_disconnect_error(exc):
                raise ProbeError(
                    f"Liveness probe failed for session {record.session_id}: {exc}"
                ) from exc
            raise

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _create(
        self,
        session_id: str,
        *,
        context_id: Optional[str] = None,
    ) -> SessionRecord:
        logger.info("Creating session %s", session_id)
        try:
            provisioned = await self._provisioner.provision(session_id, context_id=context_id)
        except Exception as exc:
            raise SessionCreationError(
                f"Failed to create/connect session {session_id}: {exc}"
            ) from exc
        record = SessionRecord(
            session_id=session_id,
            remote_session_id=provisioned.remote_session_id,
            browser=provisioned.browser,
            page=provisioned.page,
            created_at=self._clock(),
            context_id=context_id,
        )
        provisioned.browser.on("disconnected", lambda _browser: self._on_disconnected(record))
        self._sessions[session_id] = record
        self._active_id = session_id
        logger.info(
            "Session %s ready (remote %s)", session_id, record.remote_session_id
        )
        return record

    async def _is_live(self, record: SessionRecord) -> bool:
        try:
            await self.check_live(record)
        except ConnectivityError as exc:
            logger.info("%s", exc)
            return False
        return True

    async def _discard(self, record: SessionRecord) -> None:
        self._forget(record)
        await _close_quietly(record)

    def _forget(self, record: SessionRecord) -> None:
        if self._sessions.get(record.session_id) is record:
            del self._sessions[record.session_id]
        if self._active_id == record.session_id and record.session_id not in self._sessions:
            self._active_id = self._default_id

    def _on_disconnected(self, record: SessionRecord) -> None:
        if self._sessions.get(record.session_id) is not record:
            return
        logger.warning("Session %s disconnected", record.session_id)
        self._forget(record)


async def _close_quietly(record: SessionRecord) -> None:
    try:
        await record.browser.close()
    except Exception as exc:
        logger.debug("Error closing browser for %s: %s", record.session_id, exc)


__all__ = [
    "SessionRecord",
    "SessionRegistry",
    "Provisioner",
    "default_session_id",
    "is_disconnect_error",
]
