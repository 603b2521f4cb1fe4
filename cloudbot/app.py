"""ASGI application for serving Cloudbot over streamable HTTP."""

from __future__ import annotations

import os
from typing import Any, Optional

from cloudbot.mcp import mcp


def create_app(path: Optional[str] = None) -> Any:
    """Build the HTTP app; ``CLOUDBOT_HTTP_PATH`` overrides the mount path."""
    mount = path or os.environ.get("CLOUDBOT_HTTP_PATH") or None
    return mcp.http_app(path=mount)


app = create_app()

__all__ = ["app", "create_app"]
