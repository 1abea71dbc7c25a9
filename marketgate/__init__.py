"""marketgate: market-data gateway with live, sample and synthetic sources."""

__version__ = "0.3.0"
