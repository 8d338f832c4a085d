from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.opcua.constants import OPCUA_SERVER_NAME, TYPE_OPCUA

# Field names follow the store's wire format (serverURI, nodeID, channelID).


class NodeOpcua(BaseModel):
    serverURI: str
    nodeID: str


class ServerOpcua(BaseModel):
    serverURI: str


class NodeMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = TYPE_OPCUA
    opcua: NodeOpcua
    channelID: Optional[str] = None


class ServerMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = TYPE_OPCUA
    opcua: ServerOpcua


class Node(BaseModel):
    """An OPC-UA node as stored in the resource store (a tagged thing)."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: str
    metadata: NodeMetadata

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NodeRefOpcua(BaseModel):
    model_config = ConfigDict(extra="allow")

    serverURI: str


class NodeRefMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    opcua: NodeRefOpcua
    channelID: Optional[str] = None


class NodeRef(BaseModel):
    """The parts of a stored node that deletion reads."""

    model_config = ConfigDict(extra="allow")

    id: str
    metadata: NodeRefMetadata


class ServerGrouping(BaseModel):
    """Channel grouping every node that shares one serverURI."""

    id: Optional[str] = None
    name: str = OPCUA_SERVER_NAME
    metadata: ServerMetadata

    @classmethod
    def for_server(cls, server_uri: str) -> "ServerGrouping":
        return cls(metadata=ServerMetadata(opcua=ServerOpcua(serverURI=server_uri)))

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NodeIn(BaseModel):
    name: str
    nodeID: str
    serverURI: Optional[str] = None


class AddNodesIn(BaseModel):
    serverURI: str
    nodes: List[NodeIn] = Field(min_length=1)


class NodeEdit(BaseModel):
    id: str
    name: str
    serverURI: str
    nodeID: str
    # Only written back when supplied; edit is a full metadata replace.
    channelID: Optional[str] = None


class NodeEditIn(BaseModel):
    name: str
    serverURI: str
    nodeID: str
    channelID: Optional[str] = None
