"""DraftStream: chat messages in, structured Notion pages out.

Inbound chat messages are routed to a named workflow; each workflow drives a
bounded tool-calling LLM loop against a Notion MCP server, and a fallback
cascade keeps the raw message when automated structuring fails.
"""

__version__ = "0.1.0"
