from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..core.config import DEFAULT_FEED_URL
from ..core.exceptions import PermanentError, TransientError
from ..core.logging_utils import log_event
from .models import LaunchParseError, LaunchRecord

logger = logging.getLogger(__name__)

USER_AGENT = "launchwatch (+https://github.com/launchwatch/launchwatch)"


class LaunchFeedError(Exception):
    """Upstream launch feed failure."""


class LaunchFeedTransientError(LaunchFeedError, TransientError):
    """Network failure, rate limit or server error from the feed."""


class LaunchFeedPermanentError(LaunchFeedError, PermanentError):
    """The feed rejected the request or returned something unusable."""


class LaunchFeedClient:
    def __init__(
        self,
        *,
        feed_url: str = DEFAULT_FEED_URL,
        limit: int = 100,
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._feed_url = feed_url
        self._limit = limit
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LaunchFeedClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def fetch_upcoming(self) -> list[LaunchRecord]:
        """Fetch up to ``limit`` upcoming launches, following ``next`` pages."""
        records: list[LaunchRecord] = []
        url: Optional[str] = self._feed_url
        params: Optional[dict[str, Any]] = {"limit": self._limit, "mode": "detailed"}
        while url and len(records) < self._limit:
            payload = await self._get_page(url, params)
            params = None
            for raw in payload.get("results") or []:
                try:
                    records.append(LaunchRecord.from_api(raw))
                except LaunchParseError as exc:
                    log_event(
                        logger,
                        logging.WARNING,
                        "launches.feed.record_skipped",
                        launch_id=raw.get("id") if isinstance(raw, dict) else None,
                        exc=exc,
                    )
            next_url = payload.get("next")
            url = next_url if isinstance(next_url, str) and next_url else None
        return records[: self._limit]

    async def _get_page(
        self, url: str, params: Optional[dict[str, Any]]
    ) -> dict[str, Any]:
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code == 429 or 500 <= status_code < 600:
                raise LaunchFeedTransientError(
                    f"Launch feed unavailable: status={status_code}"
                ) from exc
            raise LaunchFeedPermanentError(
                f"Launch feed rejected request: status={status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LaunchFeedTransientError(f"Launch feed network error: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise LaunchFeedPermanentError("Launch feed returned non-JSON body") from exc
        if not isinstance(payload, dict):
            raise LaunchFeedPermanentError("Launch feed body must be a JSON object")
        return payload
