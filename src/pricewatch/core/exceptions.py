"""Custom exception hierarchy for pricewatch."""

from typing import Any


class PricewatchError(Exception):
    """Base exception for all pricewatch errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(PricewatchError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class PriceSourceError(PricewatchError):
    """The price source could not produce a price for an item.

    Context keys:
        item_name: str — the lookup key that failed
    """


class RateLimitError(PriceSourceError):
    """The price source is throttling us (HTTP 429 or similar).

    Policy: cool down and retry the same item, a bounded number of times
    (handled by RefreshScheduler).

    Context keys:
        retry_after: int | None — seconds to wait, if the source said so
    """


class SourceUnavailableError(PriceSourceError):
    """Hard failure: non-2xx status, malformed payload, or network error.

    Policy: log and skip the item. Do not abort the cycle.

    Context keys:
        reason: str — why the lookup failed
        status_code: int | None — HTTP status code if applicable
    """


class StorageError(PricewatchError):
    """Persistent store operation failed.

    Policy: a read failure at cycle start aborts that cycle only.

    Context keys:
        operation: str — "get", "set", "migrate", etc.
        key: str — the store key involved
    """


class StoreWriteError(StorageError):
    """A write to the persistent store failed.

    Policy: log and continue in memory. The next write may succeed.
    """


class SyncError(PricewatchError):
    """Remote mirror upsert or fetch failed.

    Policy: log and flag in the status report. The next cycle's publish
    is the retry.

    Context keys:
        installation_id: str — the mirror key
        status_code: int | None — HTTP status code if applicable
    """
