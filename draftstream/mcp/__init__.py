"""Model Context Protocol (MCP) integration for DraftStream.

This package provides:
- A minimal asyncio stdio MCP client (newline-delimited JSON-RPC)
- A connection manager that owns one long-lived tool server connection
- Helpers to launch the Notion MCP server as a subprocess
"""
