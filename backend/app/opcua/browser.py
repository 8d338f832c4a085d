from __future__ import annotations

from typing import Any, Dict, Tuple

import httpx
from loguru import logger


def describe_failure(exc: Exception) -> Tuple[int, str]:
    """
    Status code and status text of a failed gateway call.

    Transport failures never produced a response, they are reported as
    status ``0`` / ``"Unknown Error"``.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code, exc.response.reason_phrase
    return 0, "Unknown Error"


def format_failure(exc: Exception) -> str:
    status, status_text = describe_failure(exc)
    return f"Error: {status} - {status_text}"


class BrowseClient:
    """Client for the discovery gateway's single browse endpoint."""

    def __init__(self, http: httpx.AsyncClient, browse_url: str) -> None:
        self.http = http
        self.browse_url = browse_url

    async def browse(self, server_uri: str, namespace: str, identifier: str) -> Any:
        params: Dict[str, str] = {
            "server": server_uri,
            "namespace": namespace,
            "identifier": identifier,
        }
        logger.debug("Browsing {} ns={} id={}", server_uri, namespace, identifier)
        response = await self.http.get(self.browse_url, params=params)
        response.raise_for_status()
        return response.json() if response.content else None
