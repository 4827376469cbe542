"""HTTP client for the ThingSpeak channel API."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from floodwatch.schemas.telemetry import ChannelFeed

logger = logging.getLogger(__name__)


class ThingSpeakError(Exception):
    """Raised when the provider cannot be reached or answers with garbage."""


class ThingSpeakClient:
    """Async client for channel feeds, single-field feeds and channel status."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Channels endpoint (e.g., https://api.thingspeak.com/channels)
            api_key: Default read API key sent with every request
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def _get_json(self, path: str, api_key: str | None = None, **params: Any) -> Any:
        """GET a provider path and decode the JSON body.

        Args:
            path: Path below the channels endpoint (e.g., /12345/feeds.json)
            api_key: Overrides the default API key
            **params: Extra query parameters; ``None`` values are dropped

        Returns:
            Decoded JSON body

        Raises:
            ThingSpeakError: On network errors, timeouts, non-2xx answers or invalid JSON
        """
        url = f"{self.base_url}{path}"
        query = {key: value for key, value in params.items() if value is not None}
        key = api_key if api_key is not None else self.api_key
        if key:
            query["api_key"] = key
        try:
            response = await self._client.get(url, params=query)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            raise ThingSpeakError(f"Timed out requesting {path}") from exc
        except httpx.HTTPStatusError as exc:
            raise ThingSpeakError(
                f"Provider answered {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ThingSpeakError(f"Request to {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ThingSpeakError(f"Provider sent invalid JSON for {path}") from exc

    def _parse_feed(self, payload: Any, path: str) -> ChannelFeed:
        if not isinstance(payload, dict):
            raise ThingSpeakError(f"Unexpected payload for {path}")
        try:
            return ChannelFeed.model_validate(payload)
        except ValidationError as exc:
            raise ThingSpeakError(f"Malformed feed for {path}") from exc

    async def get_feeds(
        self, channel_id: str, results: int | None = None, api_key: str | None = None
    ) -> ChannelFeed:
        """Fetch the most recent entries of a channel, oldest first."""
        path = f"/{channel_id}/feeds.json"
        payload = await self._get_json(path, api_key=api_key, results=results)
        feed = self._parse_feed(payload, path)
        logger.debug("Channel %s returned %d entries", channel_id, len(feed.feeds))
        return feed

    async def get_field(
        self, channel_id: str, field: int, results: int | None = None, api_key: str | None = None
    ) -> ChannelFeed:
        """Fetch the most recent values of a single field."""
        path = f"/{channel_id}/fields/{field}.json"
        payload = await self._get_json(path, api_key=api_key, results=results)
        return self._parse_feed(payload, path)

    async def get_status(self, channel_id: str, api_key: str | None = None) -> dict[str, Any]:
        """Fetch the status updates of a channel."""
        path = f"/{channel_id}/status.json"
        payload = await self._get_json(path, api_key=api_key)
        if not isinstance(payload, dict):
            raise ThingSpeakError(f"Unexpected payload for {path}")
        return payload
