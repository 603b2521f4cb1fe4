"""Remote browser provisioning through the Browserbase REST API.

``BrowserbaseClient`` wraps the handful of HTTP endpoints Cloudbot needs
(sessions and persisted contexts) using ``requests``.  The calls are blocking,
so the async ``BrowserbaseProvisioner`` runs them through
``asyncio.to_thread`` before attaching Playwright to the remote browser over
CDP.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from playwright.async_api import Browser, Page, Playwright, async_playwright

from ..config import ServerConfig, viewport
from ..errors import ProvisioningError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteSession:
    """Identifiers returned by the provisioning service for a new session."""

    id: str
    connect_url: str


@dataclass
class ProvisionedBrowser:
    remote_session_id: str
    browser: Browser
    page: Page


class BrowserbaseClient:
    """Blocking client for the Browserbase session and context endpoints."""

    def __init__(self, config: ServerConfig, *, http: Optional[requests.Session] = None) -> None:
        self._config = config
        self._http = http or requests.Session()

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def create_session(self, *, context_id: Optional[str] = None) -> RemoteSession:
        """Create a remote browser session and return its CDP connect URL."""
        self._config.require_credentials()
        payload = self._session_payload(context_id=context_id)
        data = self._request("POST", "/sessions", json=payload)
        try:
            session = RemoteSession(id=data["id"], connect_url=data["connectUrl"])
        except (KeyError, TypeError) as exc:
            raise ProvisioningError(f"Unexpected session payload: {data!r}") from exc
        logger.info("Created remote session %s", session.id)
        return session

    def release_session(self, remote_session_id: str) -> None:
        """Ask the service to end ``remote_session_id``."""
        self._request(
            "POST",
            f"/sessions/{remote_session_id}",
            json={"projectId": self._config.project_id, "status": "REQUEST_RELEASE"},
        )
        logger.info("Released remote session %s", remote_session_id)

    def debug_url(self, remote_session_id: str) -> Optional[str]:
        """Return the live debugger URL for ``remote_session_id`` if exposed."""
        data = self._request("GET", f"/sessions/{remote_session_id}/debug")
        if isinstance(data, dict):
            return data.get("debuggerFullscreenUrl") or data.get("debuggerUrl")
        return None

    # ------------------------------------------------------------------ #
    # Contexts
    # ------------------------------------------------------------------ #

    def create_context(self) -> str:
        """Create a persisted browser context and return its id."""
        self._config.require_credentials()
        data = self._request("POST", "/contexts", json={"projectId": self._config.project_id})
        context_id = data.get("id") if isinstance(data, dict) else None
        if not context_id:
            raise ProvisioningError(f"Unexpected context payload: {data!r}")
        logger.info("Created remote context %s", context_id)
        return context_id

    def delete_context(self, context_id: str) -> None:
        self._config.require_credentials()
        self._request("DELETE", f"/contexts/{context_id}", expected=(204,))
        logger.info("Deleted remote context %s", context_id)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _session_payload(self, *, context_id: Optional[str]) -> Dict[str, Any]:
        config = self._config
        browser_settings: Dict[str, Any] = {"viewport": dict(viewport(config))}
        if config.advanced_stealth:
            browser_settings["advancedStealth"] = True
        effective_context = context_id or config.context_id
        if effective_context:
            browser_settings["context"] = {
                "id": effective_context,
                "persist": config.persist_context,
            }
        payload: Dict[str, Any] = {
            "projectId": config.project_id,
            "browserSettings": browser_settings,
        }
        if config.proxies:
            payload["proxies"] = True
        if config.keep_alive:
            payload["keepAlive"] = True
        return payload

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        expected: tuple[int, ...] = (200, 201),
    ) -> Any:
        url = self._config.api_base.rstrip("/") + path
        try:
            response = self._http.request(
                method,
                url,
                headers={
                    "Content-Type": "application/json",
                    "X-BB-API-Key": self._config.api_key or "",
                },
                json=json,
                timeout=self._config.request_timeout_s,
            )
        except requests.RequestException as exc:
            raise ProvisioningError(f"{method} {path} failed: {exc}") from exc
        if response.status_code not in expected:
            raise ProvisioningError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text}",
                status=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()


class BrowserbaseProvisioner:
    """Create remote sessions and attach Playwright to them over CDP."""

    def __init__(self, client: BrowserbaseClient, config: ServerConfig) -> None:
        self._client = client
        self._config = config
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> BrowserbaseClient:
        return self._client

    async def provision(
        self,
        session_id: str,
        *,
        context_id: Optional[str] = None,
    ) -> ProvisionedBrowser:
        """Return a connected browser and its primary page for ``session_id``."""
        playwright = await self._ensure_playwright()
        remote = await asyncio.to_thread(self._client.create_session, context_id=context_id)
        logger.info("Connecting session %s to remote %s", session_id, remote.id)
        try:
            browser = await playwright.chromium.connect_over_cdp(remote.connect_url)
        except Exception:
            await self.release(remote.id)
            raise
        try:
            context = browser.contexts[0] if browser.contexts else await browser.new_context()
            if self._config.cookies:
                await context.add_cookies([dict(cookie) for cookie in self._config.cookies])
            page = context.pages[0] if context.pages else await context.new_page()
            await page.set_viewport_size(dict(viewport(self._config)))
        except Exception:
            try:
                await browser.close()
            except Exception as exc:
                logger.warning("Error closing browser for session %s: %s", session_id, exc)
            await self.release(remote.id)
            raise
        return ProvisionedBrowser(remote_session_id=remote.id, browser=browser, page=page)

    async def release(self, remote_session_id: str) -> None:
        """Best-effort release of the remote session."""
        try:
            await asyncio.to_thread(self._client.release_session, remote_session_id)
        except Exception as exc:
            logger.warning("Could not release remote session %s: %s", remote_session_id, exc)

    async def debug_url(self, remote_session_id: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._client.debug_url, remote_session_id)
        except Exception as exc:
            logger.debug("No debugger URL for %s: %s", remote_session_id, exc)
            return None

    async def aclose(self) -> None:
        """Stop the Playwright driver."""
        async with self._lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def _ensure_playwright(self) -> Playwright:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright


__all__ = [
    "BrowserbaseClient",
    "BrowserbaseProvisioner",
    "ProvisionedBrowser",
    "RemoteSession",
]
