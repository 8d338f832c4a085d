import sys
from datetime import datetime

import httpx
from loguru import logger

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers import opcua
from app.core.config import get_settings
from app.opcua.browser import BrowseClient, describe_failure
from app.services.notification_service import LoggingNotificationSink
from app.services.opcua_service import OpcuaService
from app.store.base import StoreResponseError
from app.store.channels import ChannelsClient
from app.store.things import ThingsClient

settings = get_settings()

logger.remove()
logger.add(sys.stderr, level=settings.log_level)

app = FastAPI(
    title=settings.project_name,
    version="1.0.0",
    debug=settings.debug,
    openapi_url="/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(httpx.HTTPStatusError)
async def upstream_status_handler(request: Request, exc: httpx.HTTPStatusError):
    """Pass the resource store / gateway status through to the caller"""
    code, reason = describe_failure(exc)
    return JSONResponse(
        status_code=code,
        content={
            "detail": f"Upstream request failed: {code} - {reason}",
            "upstream_url": str(exc.request.url),
            "path": str(request.url.path),
        },
    )


@app.exception_handler(httpx.RequestError)
async def upstream_unreachable_handler(request: Request, exc: httpx.RequestError):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "detail": f"Upstream service unreachable: {exc}",
            "path": str(request.url.path),
        },
    )


@app.exception_handler(StoreResponseError)
async def store_response_handler(request: Request, exc: StoreResponseError):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "path": str(request.url.path)},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "path": str(request.url.path)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Provide helpful validation error messages"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation error",
            "message": "The request data is invalid. Please check your input.",
            "errors": exc.errors(),
            "path": str(request.url.path)
        }
    )


app.include_router(opcua.router)


@app.get("/")
async def root():
    return {
        "service": settings.project_name,
        "version": "1.0.0",
        "status": "running",
        "timestamp": datetime.utcnow().isoformat(),
        "endpoints": {
            "nodes": "/opcua/nodes",
            "browse": "/opcua/browse",
            "notifications": "/opcua/notifications",
            "api_docs": "/docs",
        },
    }


@app.on_event("startup")
async def startup_event():
    http = httpx.AsyncClient(timeout=settings.http_timeout_s)
    sink = LoggingNotificationSink(history_size=settings.notification_history_size)
    app.state.http_client = http
    app.state.notification_sink = sink
    app.state.opcua_service = OpcuaService(
        things=ThingsClient(http, settings.things_url),
        channels=ChannelsClient(http, settings.things_url),
        browser=BrowseClient(http, settings.browse_url),
        notifications=sink,
        serialize_provisioning=settings.serialize_provisioning,
    )
    logger.info("Resource store: {}", settings.things_url)
    logger.info("Discovery gateway: {}", settings.browse_url)
    if settings.serialize_provisioning:
        logger.info("Provisioning is serialized per serverURI")


@app.on_event("shutdown")
async def shutdown_event():
    service = getattr(app.state, "opcua_service", None)
    if service is not None:
        # let pending grouping cleanups finish before the client goes away
        await service.drain()
    http = getattr(app.state, "http_client", None)
    if http is not None:
        await http.aclose()
    logger.info("OPC-UA provisioning service stopped")
