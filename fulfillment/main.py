"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from redis.exceptions import RedisError

from fulfillment import __version__
from fulfillment.config import get_settings
from fulfillment.errors import OrderServiceError
from fulfillment.services.broadcaster import RedisEventRelay, RoomBroadcaster, get_broadcaster
from fulfillment.state.manager import get_state_manager
from fulfillment.utils.logging import bind_request_context, get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("application_starting", environment=settings.environment)

    state_manager = await get_state_manager()
    broadcaster = get_broadcaster()

    relay = None
    if settings.broadcast_backend == "redis":
        relay = RedisEventRelay(state_manager, settings.broadcast_channel)
        broadcaster.use_relay(relay)
        await relay.start()

    yield

    logger.info("application_shutting_down")
    if relay is not None:
        await relay.stop()
    await state_manager.disconnect()


app = FastAPI(
    title="Order Fulfillment Service",
    description="Order lifecycle state machine with realtime fan-out",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with its request ID."""
    request_id = request.headers.get("x-request-id") or uuid4().hex
    bind_request_context(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Error handling


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            code=exc.code,
            error=exc.message,
            details=exc.details,
        )
        body = {"success": False, "error": "Internal server error", "code": exc.code}
        if not settings.is_production:
            body["message"] = exc.message
        return JSONResponse(status_code=exc.status_code, content=body)

    logger.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    logger.info("request_rejected", path=request.url.path, code="validation_error")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation failed",
            "code": "validation_error",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", path=request.url.path, exc_info=exc)
    body = {"success": False, "error": "Internal server error"}
    if not settings.is_production:
        body["message"] = str(exc)
    return JSONResponse(status_code=500, content=body)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    state_manager = await get_state_manager()
    try:
        redis_ok = await state_manager.ping()
    except RedisError:
        redis_ok = False

    return {
        "status": "healthy" if redis_ok else "degraded",
        "service": "order-fulfillment",
        "redis": "ok" if redis_ok else "unavailable",
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "Order Fulfillment API",
        "docs": "/docs",
        "health": "/health",
    }


# Import and include routers
from fulfillment.api.routes import router
from fulfillment.api.websocket import handle_realtime_connection

app.include_router(router, prefix=settings.api_prefix, tags=["orders"])


# WebSocket endpoint
@app.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
) -> None:
    """WebSocket endpoint for realtime order events."""
    await handle_realtime_connection(websocket, broadcaster)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fulfillment.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.environment == "development" and settings.api_workers == 1,
    )
