"""agentgate: a non-interactive agent loop with command hooks around every tool call."""

__version__ = "0.1.0"
