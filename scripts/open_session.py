"""CLI helper to open a remote session and print its snapshot."""

from __future__ import annotations

import argparse
import asyncio
import logging

from cloudbot.browser.provider import BrowserbaseClient, BrowserbaseProvisioner
from cloudbot.browser.session import SessionRegistry
from cloudbot.config import load_config
from cloudbot.mcp.context import Services, ToolContext
from cloudbot.mcp.tools import TOOL_SPECS, parse_tool_call


async def _run(url: str | None, keep: bool) -> None:
    config = load_config()
    client = BrowserbaseClient(config)
    provisioner = BrowserbaseProvisioner(client, config)
    registry = SessionRegistry(provisioner)
    tool_context = ToolContext(Services(registry=registry, client=client))
    try:
        calls = [("browserbase_session_create", {})]
        if url:
            calls.append(("browserbase_navigate", {"url": url}))
        else:
            calls.append(("browserbase_snapshot", {}))
        for name, arguments in calls:
            result = await tool_context.run(TOOL_SPECS[name], parse_tool_call(name, arguments))
            print(result.text)
            if result.is_error:
                break
        if keep:
            await asyncio.to_thread(input, "Session is open. Press Enter to close it...")
    finally:
        await registry.close_all()
        await provisioner.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Open a Browserbase session, optionally navigate, and print the page snapshot.",
    )
    parser.add_argument("url", nargs="?", help="URL to open (e.g. https://example.com)")
    parser.add_argument(
        "--keep",
        action="store_true",
        help="Keep the session open until Enter is pressed (useful with the live view URL).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    asyncio.run(_run(args.url, args.keep))


if __name__ == "__main__":
    main()
