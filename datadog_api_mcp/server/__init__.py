"""MCP server: tool handlers and transports."""
