from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import get_notification_sink, get_opcua_service
from app.core.config import get_settings
from app.schemas.opcua import AddNodesIn, Node, NodeEdit, NodeEditIn
from app.services.notification_service import LoggingNotificationSink
from app.services.opcua_service import OpcuaService


router = APIRouter(prefix="/opcua", tags=["opcua"])

settings = get_settings()


@router.get("/nodes")
async def list_nodes(
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    service: OpcuaService = Depends(get_opcua_service),
):
    """Page of OPC-UA nodes as returned by the resource store."""
    return await service.get_nodes(offset, limit)


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, service: OpcuaService = Depends(get_opcua_service)):
    return await service.get_node(node_id)


@router.post("/nodes", response_model=List[Node], status_code=status.HTTP_201_CREATED)
async def add_nodes(payload: AddNodesIn, service: OpcuaService = Depends(get_opcua_service)):
    """Create nodes under the server grouping of ``serverURI`` (created if missing)."""
    return await service.add_nodes(payload.serverURI, payload.nodes)


@router.put("/nodes/{node_id}", response_model=Node)
async def edit_node(
    node_id: str,
    payload: NodeEditIn,
    service: OpcuaService = Depends(get_opcua_service),
):
    edit = NodeEdit(id=node_id, **payload.model_dump())
    return await service.edit_node(edit)


@router.delete("/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(node_id: str, service: OpcuaService = Depends(get_opcua_service)):
    # The grouping cleanup needs the node's serverURI and channelID.
    node = await service.get_node(node_id)
    await service.delete_node(node)


@router.get("/browse")
async def browse(
    server: str,
    namespace: str,
    identifier: str,
    service: OpcuaService = Depends(get_opcua_service),
) -> Any:
    """Proxy a browse request to the discovery gateway."""
    return await service.browse_server_nodes(server, namespace, identifier)


@router.get("/notifications")
async def list_notifications(
    limit: Optional[int] = Query(None, ge=1),
    sink: LoggingNotificationSink = Depends(get_notification_sink),
) -> List[Dict[str, Any]]:
    return [n.to_dict() for n in sink.recent(limit)]
