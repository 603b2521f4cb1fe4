"""MCP surface for Cloudbot."""

from .server import configure_server, mcp

__all__ = ["mcp", "configure_server"]
