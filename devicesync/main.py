"""DeviceSync Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from devicesync.config import settings
from devicesync.database import init_db
from devicesync.utils.errors import AppError, Internal, ValidationFailed
from devicesync.ws.registry import ConnectionRegistry

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database, connection registry and maintenance on startup."""
    init_db()

    registry = ConnectionRegistry(
        heartbeat_interval=settings.heartbeat_interval_seconds,
        connection_timeout=settings.connection_timeout_seconds,
    )
    app.state.registry = registry
    registry.start_heartbeat()

    from devicesync.services.maintenance import maintenance_worker
    if settings.maintenance_enabled:
        maintenance_worker.start()

    yield

    maintenance_worker.stop()
    await registry.shutdown()


app = FastAPI(
    title="DeviceSync",
    description="Multi-device registration and data synchronization service",
    version=VERSION,
    lifespan=lifespan,
)

# CORS - clients are web, mobile and headset apps on arbitrary origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error envelope ---

def _error_response(error: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": jsonable_encoder(error.to_dict())},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, Internal):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error_response(ValidationFailed("Request validation failed", details))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(Internal("Internal server error"))


# --- Register API routers ---
from devicesync.api.connections import router as connections_router  # noqa: E402
from devicesync.api.devices import router as devices_router  # noqa: E402
from devicesync.api.sync import router as sync_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(devices_router, prefix=API_PREFIX)
app.include_router(sync_router, prefix=API_PREFIX)
app.include_router(connections_router, prefix=API_PREFIX)


# --- WebSocket endpoint ---
from devicesync.ws.sync import websocket_sync  # noqa: E402


@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket, token: str = Query(default="")):
    await websocket_sync(ws, token or None)


@app.get("/")
def root():
    """Health check / server info."""
    return {
        "name": settings.service_name,
        "version": VERSION,
        "status": "running",
    }


@app.get("/api/v1/health")
def health():
    return {"status": "ok"}
