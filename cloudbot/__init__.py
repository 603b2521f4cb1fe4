"""Cloudbot: remote Browserbase sessions packaged with an MCP server."""

from .app import app
from .browser import SessionRegistry, Snapshot, build_snapshot
from .config import ServerConfig, load_config
from .mcp import configure_server, mcp

__all__ = [
    "SessionRegistry",
    "Snapshot",
    "build_snapshot",
    "ServerConfig",
    "load_config",
    "mcp",
    "configure_server",
    "app",
]
