"""MCP server for agent-assisted payment card capture over Twilio Pay."""

__version__ = "0.1.0"
