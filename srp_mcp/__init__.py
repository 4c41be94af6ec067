"""SRP-MCP: structured notes and tasks for AI agents over MCP."""

__version__ = "1.0.0"
