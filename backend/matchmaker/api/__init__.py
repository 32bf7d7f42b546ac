"""HTTP and WebSocket surface."""

from .server import create_app

__all__ = ["create_app"]
