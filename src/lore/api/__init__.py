"""lore HTTP API."""

from lore.api.app import create_app

__all__ = ["create_app"]
