"""Price quote model returned by every price source."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator


class PriceQuote(BaseModel):
    """Best-effort market price for one item.

    Either price may be missing: the market may have no active listings,
    or the source may report a value we refuse to trust.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    lowest_price: Decimal | None = None
    median_price: Decimal | None = None
    volume: int | None = None
    currency: int | None = None
    source: str = "unknown"
    fetched_at: datetime | None = None

    @field_validator("lowest_price", "median_price")
    @classmethod
    def price_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError(f"prices must be > 0, got {v}")
        return v

    @property
    def best_price(self) -> Decimal | None:
        """The price a refresh should record: the lowest listing."""
        return self.lowest_price
