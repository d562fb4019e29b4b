"""HTTP API for MarketCart."""

from marketcart.api.dependencies import Container

__all__ = ["Container"]
