"""Configuration for the Cloudbot server.

Settings are read from the process environment after ``load_dotenv`` has had
a chance to populate it from a local ``.env`` file.  The resulting
``ServerConfig`` is immutable; the MCP layer swaps in a fresh instance via
``configure_server`` when it needs different settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_API_BASE = "https://api.browserbase.com/v1"
DEFAULT_VIEWPORT_WIDTH = 1024
DEFAULT_VIEWPORT_HEIGHT = 768

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ServerConfig:
    """Describe how remote browser sessions are provisioned."""

    api_key: Optional[str] = None
    project_id: Optional[str] = None
    proxies: bool = False
    advanced_stealth: bool = False
    keep_alive: bool = False
    context_id: Optional[str] = None
    persist_context: bool = True
    viewport_width: int = DEFAULT_VIEWPORT_WIDTH
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    cookies: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    api_base: str = DEFAULT_API_BASE
    request_timeout_s: float = 30.0

    def require_credentials(self) -> None:
        """Raise ``ConfigError`` unless both API credentials are present."""
        missing = [
            name
            for name, value in (
                ("BROWSERBASE_API_KEY", self.api_key),
                ("BROWSERBASE_PROJECT_ID", self.project_id),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}.")

    def with_overrides(self, **changes: Any) -> "ServerConfig":
        return replace(self, **changes)


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    dotenv_path: Optional[str] = None,
) -> ServerConfig:
    """Build a ``ServerConfig`` from ``env`` (``os.environ`` by default)."""
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    return ServerConfig(
        api_key=_get_str(env, "BROWSERBASE_API_KEY"),
        project_id=_get_str(env, "BROWSERBASE_PROJECT_ID"),
        proxies=_get_bool(env, "BROWSERBASE_PROXIES", False),
        advanced_stealth=_get_bool(env, "BROWSERBASE_ADVANCED_STEALTH", False),
        keep_alive=_get_bool(env, "BROWSERBASE_KEEP_ALIVE", False),
        context_id=_get_str(env, "BROWSERBASE_CONTEXT_ID"),
        persist_context=_get_bool(env, "BROWSERBASE_PERSIST_CONTEXT", True),
        viewport_width=_get_int(env, "BROWSER_WIDTH", DEFAULT_VIEWPORT_WIDTH),
        viewport_height=_get_int(env, "BROWSER_HEIGHT", DEFAULT_VIEWPORT_HEIGHT),
        cookies=_get_cookies(env, "BROWSERBASE_COOKIES"),
        api_base=_get_str(env, "BROWSERBASE_API_BASE") or DEFAULT_API_BASE,
    )


def _get_str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get_str(env, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}.")


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get_str(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}.")
    return value


def _get_cookies(env: Mapping[str, str], name: str) -> Tuple[Mapping[str, Any], ...]:
    raw = _get_str(env, name)
    if raw is None:
        return ()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{name} must be a JSON array of cookies.") from exc
    if not isinstance(parsed, list) or not all(isinstance(item, dict) for item in parsed):
        raise ConfigError(f"{name} must be a JSON array of cookie objects.")
    return tuple(parsed)


def viewport(config: ServerConfig) -> Mapping[str, int]:
    return {"width": config.viewport_width, "height": config.viewport_height}


__all__ = ["ServerConfig", "load_config", "viewport", "DEFAULT_API_BASE"]
