"""MarketCart - multi-seller cart, checkout and order lifecycle service."""

__version__ = "0.1.0"
