"""Steam Community Market price source — direct HTTP implementation.

Uses the unauthenticated ``/market/priceoverview/`` endpoint via httpx.
The endpoint is aggressively throttled (HTTP 429 after a few dozen requests
per minute), so requests also pass through a per-minute token bucket.

Prices come back as localized display strings ("0,73€", "$1,234.56") and
are parsed into Decimals by ``parse_price``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import httpx
from aiolimiter import AsyncLimiter

from pricewatch.core.config import PriceSourceConfig
from pricewatch.core.exceptions import RateLimitError, SourceUnavailableError
from pricewatch.prices.models import PriceQuote

logger = logging.getLogger(__name__)

_PRICE_PATH = "/market/priceoverview/"
_ACCEPT = "application/json,text/plain,*/*"

_NON_NUMERIC = re.compile(r"[^\d,.\-]")
_NON_DIGIT = re.compile(r"\D")

# The market occasionally reports exactly 0.25 for items with no real
# listings; that value is never a genuine price.
_SENTINEL_PRICES = frozenset({Decimal("0.25")})


def parse_price(raw: str | None) -> Decimal | None:
    """Convert a localized price string into a Decimal.

    Handles both decimal separators: "0,73€" -> 0.73, "1.234,56€" -> 1234.56,
    "$1,234.56" -> 1234.56, "12,--€" -> 12.00. Returns None for empty,
    unparsable, non-positive or sentinel values.
    """
    if not raw:
        return None
    # whole euro amounts are shown as "12,--€"
    s = _NON_NUMERIC.sub("", str(raw).replace("--", "00"))
    if not s:
        return None

    if "," in s and s.rfind(",") > s.rfind("."):
        # Comma is the decimal separator, dots group thousands
        s = s.replace(".", "").replace(",", ".")
    else:
        s = s.replace(",", "")

    try:
        value = Decimal(s)
    except InvalidOperation:
        return None

    if not value.is_finite() or value <= 0 or value in _SENTINEL_PRICES:
        return None
    return value


def parse_volume(raw: str | None) -> int | None:
    """Parse the "volume" field ("1,234") into an int."""
    if not raw:
        return None
    digits = _NON_DIGIT.sub("", str(raw))
    return int(digits) if digits else None


class SteamMarketPriceSource:
    """Looks up item prices on the Steam Community Market.

    Parameters
    ----------
    config : PriceSourceConfig
        Endpoint, currency, appid, timeout and request budget.
    client : httpx.AsyncClient | None
        Pre-built client (useful for testing). The source only closes
        clients it created itself.
    """

    def __init__(
        self,
        config: PriceSourceConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._limiter = AsyncLimiter(
            max_rate=config.max_requests_per_minute, time_period=60.0
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": config.user_agent, "Accept": _ACCEPT},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> SteamMarketPriceSource:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()

    async def lookup(self, item_name: str) -> PriceQuote:
        """Fetch the lowest and median listing price for one market item.

        Raises:
            RateLimitError: HTTP 429 from the market.
            SourceUnavailableError: Network error, non-200 status, bad JSON,
                or a payload without ``"success": true``.
        """
        if not item_name.strip():
            raise SourceUnavailableError(
                "Empty item name",
                context={"item_name": item_name, "reason": "empty_name"},
            )

        url = f"{self._config.base_url}{_PRICE_PATH}"
        params = {
            "currency": str(self._config.currency),
            "appid": str(self._config.appid),
            "market_hash_name": item_name,
        }

        await self._limiter.acquire()
        try:
            response = await self._client.get(url, params=params)
        except httpx.RequestError as e:
            raise SourceUnavailableError(
                f"Request to price source failed for {item_name!r}: {e}",
                context={"item_name": item_name, "reason": "network", "error": str(e)},
            ) from e

        if response.status_code == 429:
            raise RateLimitError(
                f"Price source throttled lookup of {item_name!r}",
                context={
                    "item_name": item_name,
                    "retry_after": _retry_after(response),
                },
            )

        if response.status_code != 200:
            raise SourceUnavailableError(
                f"HTTP {response.status_code} from price source for {item_name!r}",
                context={
                    "item_name": item_name,
                    "reason": "http_status",
                    "status_code": response.status_code,
                },
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailableError(
                f"Malformed JSON from price source for {item_name!r}",
                context={"item_name": item_name, "reason": "bad_json"},
            ) from e

        if not isinstance(data, dict) or data.get("success") is not True:
            raise SourceUnavailableError(
                f"Price source reported no data for {item_name!r}",
                context={"item_name": item_name, "reason": "unsuccessful"},
            )

        quote = PriceQuote(
            name=item_name,
            lowest_price=parse_price(data.get("lowest_price")),
            median_price=parse_price(data.get("median_price")),
            volume=parse_volume(data.get("volume")),
            currency=self._config.currency,
            source="steam_market",
            fetched_at=datetime.now(timezone.utc),
        )
        logger.debug(
            "Quote for %s: lowest=%s median=%s",
            item_name,
            quote.lowest_price,
            quote.median_price,
        )
        return quote


def _retry_after(response: httpx.Response) -> int | None:
    """Read Retry-After as seconds, ignoring the HTTP-date form."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
