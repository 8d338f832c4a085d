"""Metadata discriminators shared by OPC-UA nodes and server groupings."""

# Value of metadata["type"] on every OPC-UA thing and channel.
TYPE_OPCUA = "opcua"

# Display name given to a server grouping channel.
OPCUA_SERVER_NAME = "OPC-UA-Server"

MSG_NODES_CREATED = "OPC-UA Nodes successfully created"
MSG_NODE_EDITED = "OPC-UA Node successfully edited"
MSG_NODE_DELETED = "OPC-UA Node successfully deleted"
MSG_BROWSE_FINISHED = "OPC-UA browsing finished"
MSG_BROWSE_FAILED = "Failed to Browse"
