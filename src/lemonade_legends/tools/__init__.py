"""MCP tool implementations: plain async functions taking their dependencies."""
