"""Echoes of the Silenced: a chat-voted narrative game service."""

__version__ = "0.1.0"
