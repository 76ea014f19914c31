"""agent-bridge: protocol bridge between a host UI, persisted session logs and the Claude agent SDK."""

__version__ = "0.1.0"
