"""HTTP and WebSocket surface of the chat service."""

from parley.server.app import create_app

__all__ = ["create_app"]
