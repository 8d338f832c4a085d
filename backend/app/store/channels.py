from __future__ import annotations

from typing import Any, Dict, List, Optional

from app.store.base import StoreClient, StoreResponseError, page_params


def channel_id_from_location(location: Optional[str]) -> str:
    """Extract the new channel id from a ``Location: /channels/<id>`` header."""
    if not location:
        raise StoreResponseError("channel creation returned no Location header")
    # trailing path segment, works for relative and absolute locations
    channel_id = location.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    if not channel_id or channel_id == "channels":
        raise StoreResponseError(f"cannot read channel id from Location {location!r}")
    return channel_id


class ChannelsClient(StoreClient):
    async def get_channels(
        self,
        offset: int,
        limit: int,
        type_: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Page of channels: ``{"total", "offset", "limit", "channels": [...]}``"""
        response = await self._request(
            "GET", "/channels", params=page_params(offset, limit, type_, metadata)
        )
        return self._json(response)

    async def add_channel(self, channel: Dict[str, Any]) -> str:
        response = await self._request("POST", "/channels", json=channel)
        return channel_id_from_location(response.headers.get("location"))

    async def delete_channel(self, channel_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}")

    async def connect_things(self, channel_ids: List[str], thing_ids: List[str]) -> None:
        await self._request(
            "POST",
            "/connect",
            json={"channel_ids": channel_ids, "thing_ids": thing_ids},
        )
