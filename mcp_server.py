"""Top-level FastMCP server entrypoint for Cloudbot.

Hosts that inspect a module path like ``mcp_server:mcp`` can import this thin
wrapper, which re-exports the configured server from the package.
"""

from cloudbot.mcp.server import configure_server, main, mcp  # noqa: F401

__all__ = ["mcp", "configure_server", "main"]

if __name__ == "__main__":
    main()
