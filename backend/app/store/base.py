from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger


class StoreResponseError(ValueError):
    """The store answered 2xx but the response is missing something we rely on."""


def metadata_filter(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    """Encode a metadata-equality filter the way the store expects it (JSON text)."""
    if metadata is None:
        return None
    return json.dumps(metadata)


def page_params(
    offset: int,
    limit: int,
    type_: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"offset": offset, "limit": limit}
    if type_:
        params["type"] = type_
    encoded = metadata_filter(metadata)
    if encoded is not None:
        params["metadata"] = encoded
    return params


class StoreClient:
    """
    Thin async wrapper over the management API of the resource store.

    All calls raise ``httpx.HTTPStatusError`` on non-2xx answers and
    ``httpx.RequestError`` on transport failures; both are logged here and
    propagated unchanged.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        logger.debug("Store request: {} {}", method, url)
        try:
            response = await self.http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Store {} {} failed: {} {}",
                method,
                path,
                exc.response.status_code,
                exc.response.reason_phrase,
            )
            raise
        except httpx.RequestError as exc:
            logger.error("Store {} {} unreachable: {}", method, path, exc)
            raise
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        return response.json() if response.content else None
