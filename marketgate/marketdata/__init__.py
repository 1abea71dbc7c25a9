"""Market data interfaces for marketgate."""

from .gateway import MarketDataGateway, SourcedData
from .kinds import Kind

__all__ = ["Kind", "MarketDataGateway", "SourcedData"]
