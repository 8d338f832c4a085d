from fastapi import HTTPException, Request, status

from app.services.notification_service import LoggingNotificationSink
from app.services.opcua_service import OpcuaService


def get_opcua_service(request: Request) -> OpcuaService:
    service = getattr(request.app.state, "opcua_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OPC-UA service is not initialised",
        )
    return service


def get_notification_sink(request: Request) -> LoggingNotificationSink:
    sink = getattr(request.app.state, "notification_sink", None)
    if sink is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification sink is not initialised",
        )
    return sink
