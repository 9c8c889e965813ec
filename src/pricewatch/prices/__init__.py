"""Price lookup: the source protocol and its Steam Community Market adapter.

    item name → PriceSource.lookup → PriceQuote → RefreshScheduler

Adding a new price source means writing one class with an async
``lookup(item_name)`` that returns a ``PriceQuote`` and raises
``RateLimitError`` / ``SourceUnavailableError``. The scheduler needs no
changes.
"""

from pricewatch.prices.models import PriceQuote
from pricewatch.prices.provider import PriceSource
from pricewatch.prices.steam import SteamMarketPriceSource, parse_price, parse_volume

__all__ = [
    "PriceQuote",
    "PriceSource",
    "SteamMarketPriceSource",
    "parse_price",
    "parse_volume",
]
