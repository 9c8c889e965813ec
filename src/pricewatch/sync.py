"""Best-effort mirror of the local state to a remote store.

The publisher never retries on its own: a failed publish is logged and
flagged, and the next refresh cycle's publish is the retry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from pricewatch.core.config import SyncConfig
from pricewatch.core.exceptions import StorageError, SyncError
from pricewatch.core.models import PortfolioState

if TYPE_CHECKING:
    from pricewatch.storage.repository import PortfolioRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@runtime_checkable
class SyncRemote(Protocol):
    """Remote durable store keyed by installation id."""

    async def upsert(self, installation_id: str, blob: dict[str, Any]) -> None: ...
    async def fetch(self, installation_id: str) -> dict[str, Any] | None: ...


class HttpSyncRemote:
    """Stores state blobs at ``{endpoint}/installations/{installation_id}``.

    PUT replaces the blob, GET returns it, 404 means nothing stored yet.
    """

    def __init__(self, config: SyncConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.endpoint:
            raise SyncError("sync.endpoint is not configured")
        self._endpoint = config.endpoint.rstrip("/")
        headers = {"Accept": "application/json"}
        if config.api_token:
            headers["Authorization"] = f"Bearer {config.api_token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(config.request_timeout),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, installation_id: str) -> str:
        return f"{self._endpoint}/installations/{installation_id}"

    async def upsert(self, installation_id: str, blob: dict[str, Any]) -> None:
        url = self._url(installation_id)
        try:
            response = await self._client.put(url, json=blob)
        except httpx.RequestError as e:
            raise SyncError(
                f"Sync upload failed: {e}",
                context={"installation_id": installation_id, "url": url},
            ) from e
        if response.status_code not in (200, 201, 204):
            raise SyncError(
                f"Sync upload returned HTTP {response.status_code}",
                context={
                    "installation_id": installation_id,
                    "status_code": response.status_code,
                },
            )

    async def fetch(self, installation_id: str) -> dict[str, Any] | None:
        url = self._url(installation_id)
        try:
            response = await self._client.get(url)
        except httpx.RequestError as e:
            raise SyncError(
                f"Sync download failed: {e}",
                context={"installation_id": installation_id, "url": url},
            ) from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise SyncError(
                f"Sync download returned HTTP {response.status_code}",
                context={
                    "installation_id": installation_id,
                    "status_code": response.status_code,
                },
            )
        try:
            data = response.json()
        except ValueError as e:
            raise SyncError(
                "Sync download returned malformed JSON",
                context={"installation_id": installation_id},
            ) from e
        if not isinstance(data, dict):
            raise SyncError(
                f"Sync download returned {type(data).__name__}, expected an object",
                context={"installation_id": installation_id},
            )
        return data


class SyncPublisher:
    """Publishes the full portfolio state after each refresh cycle."""

    def __init__(
        self,
        remote: SyncRemote,
        installation_id: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._remote = remote
        self._installation_id = installation_id
        self._clock = clock
        self.last_ok: bool | None = None
        self.last_attempt_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def installation_id(self) -> str:
        return self._installation_id

    async def publish(self, state: PortfolioState) -> bool:
        """Upload one state blob. Returns False instead of raising on failure."""
        self.last_attempt_at = self._clock()
        try:
            await self._remote.upsert(self._installation_id, state.to_blob())
        except SyncError as e:
            logger.warning("Sync publish failed: %s", e)
            self.last_ok = False
            self.last_error = str(e)
            return False
        self.last_ok = True
        self.last_error = None
        logger.info("Published state for installation %s", self._installation_id)
        return True

    async def publish_current(self, repository: PortfolioRepository) -> bool:
        """Read the current state from the store and publish it."""
        try:
            state = await repository.load_state()
        except StorageError as e:
            logger.warning("Sync skipped, could not read local state: %s", e)
            self.last_attempt_at = self._clock()
            self.last_ok = False
            self.last_error = str(e)
            return False
        return await self.publish(state)

    async def fetch(self) -> PortfolioState | None:
        """Download the mirrored state for this installation.

        Returns:
            The stored state, or None if the remote has nothing yet.

        Raises:
            SyncError: The remote could not be reached or returned garbage.
        """
        blob = await self._remote.fetch(self._installation_id)
        if blob is None:
            return None
        try:
            return PortfolioState.from_blob(blob)
        except ValidationError as e:
            raise SyncError(
                "Remote state is malformed",
                context={"installation_id": self._installation_id},
            ) from e
