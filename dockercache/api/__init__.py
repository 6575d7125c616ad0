"""Read-only HTTP query surface over the cache."""

from .app import create_app

__all__ = ["create_app"]
