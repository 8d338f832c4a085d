from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger

from app.store.base import StoreClient, StoreResponseError, page_params


class ThingsClient(StoreClient):
    async def get_thing(self, thing_id: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/things/{thing_id}")
        return self._json(response)

    async def get_things(
        self,
        offset: int,
        limit: int,
        type_: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Page of things: ``{"total", "offset", "limit", "things": [...]}``"""
        response = await self._request(
            "GET", "/things", params=page_params(offset, limit, type_, metadata)
        )
        return self._json(response)

    async def add_things(self, things: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Batch create; returns the created things with their assigned ids."""
        response = await self._request("POST", "/things/bulk", json=things)
        body = self._json(response) or {}
        created = body.get("things")
        if created is None:
            raise StoreResponseError("bulk thing creation returned no 'things' list")
        logger.debug("Created {} thing(s)", len(created))
        return created

    async def edit_thing(self, thing: Dict[str, Any]) -> Dict[str, Any]:
        """Full replace of name and metadata."""
        thing_id = thing["id"]
        payload = {k: v for k, v in thing.items() if k != "id"}
        response = await self._request("PUT", f"/things/{thing_id}", json=payload)
        return self._json(response) or thing

    async def delete_thing(self, thing_id: str) -> None:
        await self._request("DELETE", f"/things/{thing_id}")
