"""MCP stdio server exposing the iMessage query tools."""

from __future__ import annotations

import logging
import os
import sys

from mcp.server.fastmcp import FastMCP

from imessage_context.imessage.tools import MessageTools

logger = logging.getLogger(__name__)

SERVER_NAME = "imessage-context"


def create_server(tools: MessageTools | None = None) -> FastMCP:
    """Register the five query operations on a FastMCP server."""
    tools = tools or MessageTools()
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool()
    def search_and_read(
        query: str,
        include_groups: bool = True,
        limit: int = 30,
        days_back: int = 30,
        format: str = "compact",
    ) -> str:
        """Search contacts/groups by name, phone, email or group name and read their recent messages.

        format: "minimal" (one line per message), "compact" or "full".
        """
        return tools.search_and_read(query, include_groups, limit, days_back, format)

    @mcp.tool()
    def search_contacts(query: str) -> str:
        """List raw iMessage/SMS/RCS handles matching a phone number, email or name."""
        return tools.search_contacts(query)

    @mcp.tool()
    def read_conversation(
        identifier: str,
        limit: int = 30,
        days_back: int = 30,
        include_sent: bool = True,
        format: str = "minimal",
    ) -> str:
        """Read one conversation. identifier is a phone, email, name, or "group:<id>"."""
        return tools.read_conversation(identifier, limit, days_back, include_sent, format)

    @mcp.tool()
    def get_conversation_stats(identifier: str, days_back: int = 60) -> str:
        """Message counts (sent/received, per day or per participant) without message text."""
        return tools.get_conversation_stats(identifier, days_back)

    @mcp.tool()
    def analyze_message_sentiment(
        identifier: str,
        keywords: list[str] | None = None,
        days_back: int = 60,
        group_by_date: bool = True,
    ) -> str:
        """Find incoming messages containing hostile keywords (or the keywords given)."""
        return tools.analyze_message_sentiment(identifier, keywords, days_back, group_by_date)

    return mcp


def main() -> None:
    # stdout carries the MCP stdio protocol; logs go to stderr
    logging.basicConfig(
        stream=sys.stderr,
        level=os.environ.get("IMESSAGE_CONTEXT_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info(f"Starting {SERVER_NAME} over stdio")
    create_server().run()


if __name__ == "__main__":
    main()
