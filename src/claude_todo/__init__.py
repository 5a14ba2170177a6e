"""Persistent task queue that runs AI coding tasks through the Claude CLI."""

__version__ = "0.1.0"
