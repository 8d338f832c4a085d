"""
Shared fixtures: an in-memory resource store and discovery gateway served
through ``httpx.MockTransport``, plus a fully wired ``OpcuaService``.
"""

import itertools
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from app.opcua.browser import BrowseClient
from app.services.notification_service import LoggingNotificationSink
from app.services.opcua_service import OpcuaService
from app.store.channels import ChannelsClient
from app.store.things import ThingsClient

THINGS_URL = "http://store.test"
BROWSE_URL = "http://gateway.test/browse"

SERVER_URI = "opc.tcp://srv1"


def _json_response(data: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    return httpx.Response(status_code=status_code, json=data, headers=headers)


def _matches(resource: Dict[str, Any], type_: Optional[str], metadata: Optional[str]) -> bool:
    meta = resource.get("metadata") or {}
    if type_ and meta.get("type") != type_:
        return False
    if metadata:
        wanted = json.loads(metadata)
        opcua = meta.get("opcua") or {}
        return all(opcua.get(k) == v for k, v in wanted.items())
    return True


class FakeStore:
    """Things/channels management API plus the browse gateway, in memory."""

    def __init__(self) -> None:
        self.things: Dict[str, Dict[str, Any]] = {}
        self.channels: Dict[str, Dict[str, Any]] = {}
        self.connections: List[Tuple[List[str], List[str]]] = []
        self.calls: List[Tuple[str, str]] = []
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], int] = {}
        self.browse_result: Any = {"nodes": [{"nodeID": "ns=2;i=10", "name": "Temp"}]}
        self.browse_status = 200
        self.browse_exc: Optional[Exception] = None
        # number of created things left out of the bulk-create response
        self.bulk_drop = 0
        # added to the reported channel total without listing any channel
        self.phantom_channels = 0
        self._ids = itertools.count(1)

    # Test helpers ----------------------------------------------------------
    def fail_on(self, method: str, path_prefix: str, status_code: int = 500) -> None:
        self.failures[(method, path_prefix)] = status_code

    def count(self, method: str, path_prefix: str = "") -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(path_prefix))

    def mutating_calls(self) -> List[Tuple[str, str]]:
        return [(m, p) for m, p in self.calls if m != "GET"]

    def seed_channel(self, server_uri: str, channel_id: str = "chan-existing") -> str:
        self.channels[channel_id] = {
            "id": channel_id,
            "name": "OPC-UA-Server",
            "metadata": {"type": "opcua", "opcua": {"serverURI": server_uri}},
        }
        return channel_id

    def seed_node(self, node_id: str, server_uri: str, channel_id: str, node_ref: str = "ns=2;i=1") -> Dict[str, Any]:
        node = {
            "id": node_id,
            "name": f"Node {node_id}",
            "metadata": {
                "type": "opcua",
                "opcua": {"nodeID": node_ref, "serverURI": server_uri},
                "channelID": channel_id,
            },
        }
        self.things[node_id] = node
        return node

    # Transport -------------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        self.requests.append(request)

        for (m, prefix), code in self.failures.items():
            if m == method and path.startswith(prefix):
                return _json_response({"error": "injected failure"}, status_code=code)

        if request.url.host == "gateway.test":
            return self._browse(request)

        parts = path.strip("/").split("/")
        if parts[0] == "things":
            return self._things(request, parts[1:])
        if parts[0] == "channels":
            return self._channels(request, parts[1:])
        if parts == ["connect"] and method == "POST":
            body = json.loads(request.content)
            self.connections.append((body["channel_ids"], body["thing_ids"]))
            return httpx.Response(201)
        return _json_response({"error": "not found"}, status_code=404)

    def _page(self, request: httpx.Request, collection: Dict[str, Dict[str, Any]], key: str) -> httpx.Response:
        params = request.url.params
        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", 10))
        items = [r for r in collection.values() if _matches(r, params.get("type"), params.get("metadata"))]
        total = len(items) + (self.phantom_channels if key == "channels" else 0)
        return _json_response(
            {"total": total, "offset": offset, "limit": limit, key: items[offset:offset + limit]}
        )

    def _things(self, request: httpx.Request, rest: List[str]) -> httpx.Response:
        method = request.method
        if not rest:
            if method == "GET":
                return self._page(request, self.things, "things")
        elif rest == ["bulk"] and method == "POST":
            created = []
            for thing in json.loads(request.content):
                thing_id = f"thing-{next(self._ids)}"
                stored = dict(thing, id=thing_id)
                self.things[thing_id] = stored
                created.append(stored)
            if self.bulk_drop:
                created = created[:-self.bulk_drop]
            return _json_response({"things": created}, status_code=201)
        elif len(rest) == 1:
            thing_id = rest[0]
            if thing_id not in self.things:
                return _json_response({"error": "thing not found"}, status_code=404)
            if method == "GET":
                return _json_response(self.things[thing_id])
            if method == "PUT":
                body = json.loads(request.content)
                self.things[thing_id] = dict(body, id=thing_id)
                return httpx.Response(200)
            if method == "DELETE":
                del self.things[thing_id]
                return httpx.Response(204)
        return _json_response({"error": "unsupported"}, status_code=405)

    def _channels(self, request: httpx.Request, rest: List[str]) -> httpx.Response:
        method = request.method
        if not rest:
            if method == "GET":
                return self._page(request, self.channels, "channels")
            if method == "POST":
                channel_id = f"chan-{next(self._ids)}"
                self.channels[channel_id] = dict(json.loads(request.content), id=channel_id)
                return httpx.Response(201, headers={"Location": f"/channels/{channel_id}"})
        elif len(rest) == 1 and method == "DELETE":
            if rest[0] not in self.channels:
                return _json_response({"error": "channel not found"}, status_code=404)
            del self.channels[rest[0]]
            return httpx.Response(204)
        return _json_response({"error": "unsupported"}, status_code=405)

    def _browse(self, request: httpx.Request) -> httpx.Response:
        if self.browse_exc is not None:
            raise self.browse_exc
        if self.browse_status != 200:
            return _json_response({"error": "gateway failure"}, status_code=self.browse_status)
        return _json_response(self.browse_result)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def http_client(store: FakeStore) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(store.handler))


@pytest.fixture
def sink() -> LoggingNotificationSink:
    return LoggingNotificationSink(history_size=20)


def build_service(http_client: httpx.AsyncClient, sink: LoggingNotificationSink, **kwargs: Any) -> OpcuaService:
    return OpcuaService(
        things=ThingsClient(http_client, THINGS_URL),
        channels=ChannelsClient(http_client, THINGS_URL),
        browser=BrowseClient(http_client, BROWSE_URL),
        notifications=sink,
        **kwargs,
    )


@pytest.fixture
def service(http_client: httpx.AsyncClient, sink: LoggingNotificationSink) -> OpcuaService:
    return build_service(http_client, sink)


@pytest.fixture
def service_factory(http_client: httpx.AsyncClient, sink: LoggingNotificationSink):
    def _factory(**kwargs: Any) -> OpcuaService:
        return build_service(http_client, sink, **kwargs)

    return _factory
