"""
OPC-UA node provisioning.

Nodes are things tagged ``metadata.type == "opcua"``; all nodes of one OPC-UA
server are connected to a single server grouping channel. The store offers no
transactions, so every multi-step operation here is a best-effort saga:

* add_nodes      resolve (or create) the grouping, batch-create the nodes,
                 connect them; on connect failure the created nodes are
                 deleted again and the error is raised.
* delete_node    delete the node, then in the background delete the grouping
                 if no node of that server is left.

Cleanup never raises. Its failures are logged so orphans can be traced.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Dict, List, Optional, Sequence, Set, Union

import httpx
from loguru import logger

from app.opcua.browser import BrowseClient, format_failure
from app.opcua.constants import (
    MSG_BROWSE_FAILED,
    MSG_BROWSE_FINISHED,
    MSG_NODE_DELETED,
    MSG_NODE_EDITED,
    MSG_NODES_CREATED,
    TYPE_OPCUA,
)
from pydantic import BaseModel

from app.schemas.opcua import (
    Node,
    NodeEdit,
    NodeIn,
    NodeMetadata,
    NodeOpcua,
    NodeRef,
    ServerGrouping,
)
from app.services.notification_service import NotificationSink
from app.store.base import StoreResponseError
from app.store.channels import ChannelsClient
from app.store.things import ThingsClient


def server_filter(server_uri: str) -> Dict[str, str]:
    return {"serverURI": server_uri}


class OpcuaService:
    def __init__(
        self,
        things: ThingsClient,
        channels: ChannelsClient,
        browser: BrowseClient,
        notifications: NotificationSink,
        serialize_provisioning: bool = False,
    ) -> None:
        self.things = things
        self.channels = channels
        self.browser = browser
        self.notifications = notifications
        self.serialize_provisioning = serialize_provisioning
        self._background: Set[asyncio.Task] = set()
        self._server_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # Lookup ----------------------------------------------------------------
    async def get_node(self, node_id: str) -> Dict[str, Any]:
        return await self.things.get_thing(node_id)

    async def get_nodes(self, offset: int, limit: int) -> Dict[str, Any]:
        return await self.things.get_things(offset, limit, TYPE_OPCUA)

    # Provisioning ----------------------------------------------------------
    async def add_nodes(
        self,
        server_uri: str,
        nodes: Sequence[Union[NodeIn, Dict[str, Any]]],
    ) -> List[Node]:
        """
        Create ``nodes`` under the grouping of ``server_uri`` and connect them.

        The grouping lookup and its creation are not atomic: two concurrent
        calls for a new server can both create a grouping unless
        ``serialize_provisioning`` is enabled (in-process only).
        """
        descriptors = [NodeIn.model_validate(n) for n in nodes]
        if not descriptors:
            raise ValueError("at least one node is required")

        if not self.serialize_provisioning:
            return await self._provision(server_uri, descriptors)
        lock = self._server_locks.setdefault(server_uri, asyncio.Lock())
        self._lock_users[server_uri] = self._lock_users.get(server_uri, 0) + 1
        try:
            async with lock:
                return await self._provision(server_uri, descriptors)
        finally:
            self._lock_users[server_uri] -= 1
            if not self._lock_users[server_uri]:
                del self._lock_users[server_uri]
                del self._server_locks[server_uri]

    async def _provision(self, server_uri: str, descriptors: List[NodeIn]) -> List[Node]:
        channel_id = await self._resolve_channel(server_uri)
        return await self._add_and_connect(channel_id, server_uri, descriptors)

    async def _resolve_channel(self, server_uri: str) -> str:
        page = await self.channels.get_channels(0, 1, TYPE_OPCUA, server_filter(server_uri))
        channels = page.get("channels") or []
        if page.get("total", 0) and not channels:
            logger.warning("Store reports groupings for {} but returned none", server_uri)
        if not channels:
            grouping = ServerGrouping.for_server(server_uri)
            channel_id = await self.channels.add_channel(grouping.to_request())
            logger.info("Created server grouping {} for {}", channel_id, server_uri)
            return channel_id

        channel_id = channels[0]["id"]
        logger.debug("Reusing server grouping {} for {}", channel_id, server_uri)
        return channel_id

    async def _add_and_connect(
        self,
        channel_id: str,
        server_uri: str,
        descriptors: List[NodeIn],
    ) -> List[Node]:
        requests = [
            Node(
                name=d.name,
                metadata=NodeMetadata(
                    opcua=NodeOpcua(nodeID=d.nodeID, serverURI=d.serverURI or server_uri),
                    channelID=channel_id,
                ),
            )
            for d in descriptors
        ]
        created = await self.things.add_things([r.to_request() for r in requests])
        node_ids = [thing["id"] for thing in created]
        if len(node_ids) != len(requests):
            logger.error(
                "Store created {} of {} node(s) for grouping {}, removing them",
                len(node_ids),
                len(requests),
                channel_id,
            )
            await self._delete_nodes_best_effort(node_ids)
            raise StoreResponseError(
                f"bulk thing creation returned {len(node_ids)} thing(s) for {len(requests)} request(s)"
            )

        try:
            await self.channels.connect_things([channel_id], node_ids)
        except Exception:
            logger.error(
                "Connecting {} node(s) to grouping {} failed, removing them",
                len(node_ids),
                channel_id,
            )
            await self._delete_nodes_best_effort(node_ids)
            raise

        self.notifications.success(MSG_NODES_CREATED, "")
        logger.info("Provisioned {} node(s) on {} (grouping {})", len(node_ids), server_uri, channel_id)
        return [req.model_copy(update={"id": node_id}) for req, node_id in zip(requests, node_ids)]

    async def _delete_nodes_best_effort(self, node_ids: List[str]) -> List[str]:
        """Delete every node individually. Returns the ids that could not be deleted."""
        results = await asyncio.gather(
            *(self.things.delete_thing(node_id) for node_id in node_ids),
            return_exceptions=True,
        )
        failed = []
        for node_id, result in zip(node_ids, results):
            if isinstance(result, Exception):
                logger.error("Compensation: could not delete node {}: {}", node_id, result)
                failed.append(node_id)
        return failed

    # Edit ------------------------------------------------------------------
    async def edit_node(self, node: Union[NodeEdit, Dict[str, Any]]) -> Node:
        """
        Replace the node's name and metadata.

        ``channelID`` is only written when the caller passes it; otherwise the
        store's full-replace semantics drop the grouping link.
        """
        edit = NodeEdit.model_validate(node)
        if edit.channelID is None:
            logger.warning("Editing node {} without channelID, grouping link is not kept", edit.id)

        request = Node(
            id=edit.id,
            name=edit.name,
            metadata=NodeMetadata(
                opcua=NodeOpcua(serverURI=edit.serverURI, nodeID=edit.nodeID),
                channelID=edit.channelID,
            ),
        )
        await self.things.edit_thing(request.to_request())
        self.notifications.success(MSG_NODE_EDITED, "")
        return request

    # Deletion --------------------------------------------------------------
    async def delete_node(self, node: Union[Node, NodeRef, Dict[str, Any]]) -> None:
        """Only ``id``, ``metadata.opcua.serverURI`` and ``metadata.channelID`` are read."""
        if isinstance(node, BaseModel):
            node = node.model_dump()
        node = NodeRef.model_validate(node)
        if not node.id:
            raise ValueError("node id is required")

        await self.things.delete_thing(node.id)
        self._spawn(
            self._cleanup_server_grouping(node.metadata.opcua.serverURI, node.metadata.channelID),
            name=f"opcua-grouping-cleanup-{node.id}",
        )
        self.notifications.success(MSG_NODE_DELETED, "")

    async def _cleanup_server_grouping(self, server_uri: str, channel_id: Optional[str]) -> bool:
        """Delete the grouping of ``server_uri`` if no node references it. Never raises."""
        try:
            page = await self.things.get_things(0, 1, TYPE_OPCUA, server_filter(server_uri))
            if page.get("total", 0) != 0:
                return False
            if not channel_id:
                logger.warning("Last node of {} removed but it carried no channelID", server_uri)
                return False
            await self.channels.delete_channel(channel_id)
            logger.info("Removed empty server grouping {} for {}", channel_id, server_uri)
            return True
        except Exception as exc:
            logger.error("Grouping cleanup for {} failed: {}", server_uri, exc)
            return False

    # Discovery -------------------------------------------------------------
    async def browse_server_nodes(self, server_uri: str, namespace: str, identifier: str) -> Any:
        try:
            result = await self.browser.browse(server_uri, namespace, identifier)
        except (httpx.HTTPError, ValueError) as exc:
            self.notifications.error(MSG_BROWSE_FAILED, format_failure(exc))
            raise
        self.notifications.success(MSG_BROWSE_FINISHED, "")
        return result

    # Background tasks ------------------------------------------------------
    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for all fire-and-forget work (e.g. grouping cleanup) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
