"""Price source protocol — the only thing the scheduler knows about prices.

    item name → PriceSource.lookup → PriceQuote

Failure is expressed with exceptions rather than sentinel results:

- ``RateLimitError``: the source is throttling us. The caller cools down
  and retries the same item.
- ``SourceUnavailableError``: anything else (non-2xx, malformed payload,
  network error). The caller skips the item.

A quote whose ``lowest_price`` is None is treated by the scheduler exactly
like ``SourceUnavailableError``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pricewatch.prices.models import PriceQuote


@runtime_checkable
class PriceSource(Protocol):
    """Resolves an item name to its current market price."""

    async def lookup(self, item_name: str) -> PriceQuote:
        """Fetch a quote for one item.

        Raises
        ------
        RateLimitError
            The source signalled that requests arrive too fast.
        SourceUnavailableError
            The source could not produce a usable answer.
        """
        ...
