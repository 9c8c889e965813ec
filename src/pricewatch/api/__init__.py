"""Read-only status API."""

from pricewatch.api.app import create_app

__all__ = ["create_app"]
