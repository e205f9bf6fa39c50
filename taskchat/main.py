"""FastAPI application entry point."""

import asyncio
import json
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import check_database_connection, engine
from .routers import comments_router, tasks_router
from .services.reminder_service import DueReminderService
from .websocket import ConnectionManager, MessageType, build_message, route_incoming_message

# Configure logging to show errors
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    connection_manager = ConnectionManager()
    app.state.connection_manager = connection_manager

    logger.info("Checking database connectivity...")
    if await check_database_connection():
        logger.info("Database reachable")
    else:
        logger.warning("Database unreachable at startup; requests will fail until it is up")

    reminder_service = DueReminderService(connection_manager)
    app.state.reminder_service = reminder_service
    if settings.due_reminder_enabled:
        await reminder_service.start()

    yield

    # Shutdown
    logger.info("Stopping due reminder service...")
    await reminder_service.stop()

    logger.info(f"Closing {connection_manager.total_connections} WebSocket session(s)...")
    await connection_manager.close_all()

    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="TaskChat API",
    description="Task allocation between chat contacts with real-time notifications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception handlers: every error is rendered in the response envelope
# ============================================================================


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTPException as {"success": false, "message": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as 400 with a per-field error list."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({
            "field": ".".join(location) or "request",
            "message": error.get("msg", "Invalid value"),
        })
    logger.debug(f"Validation failed on {request.method} {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(
        f"Database pool exhausted on {request.method} {request.url}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": "Service temporarily unavailable. Please retry."},
        headers={"Retry-After": "5"},
    )


# Global exception handler to log errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}:")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


# Include API routers
app.include_router(tasks_router)
app.include_router(comments_router)


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    connection_manager: Optional[ConnectionManager] = getattr(
        request.app.state, "connection_manager", None
    )
    reminder_service: Optional[DueReminderService] = getattr(
        request.app.state, "reminder_service", None
    )
    return {
        "status": "healthy",
        "websocket": {
            "connections": connection_manager.total_connections if connection_manager else 0,
            "rooms": connection_manager.total_rooms if connection_manager else 0,
            "online_users": len(connection_manager.presence) if connection_manager else 0,
        },
        "scheduler": {
            "running": reminder_service.is_running if reminder_service else False,
        },
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: Optional[str] = None):
    """
    WebSocket endpoint for real-time task notifications.

    Identity comes from the ``user_id`` query parameter set by the chat
    client. A connection without it is accepted but stays unbound: it
    receives online-user broadcasts and task-room traffic only.

    Usage:
        ws://localhost:5001/ws?user_id=<user id>

    Binary, malformed, oversized or rate-limited frames are logged and dropped;
    nothing is sent back for them.
    """
    connection_manager: ConnectionManager = websocket.app.state.connection_manager
    session = await connection_manager.connect(websocket, user_id)

    # Rate limiting state
    message_timestamps: list[float] = []
    loop = asyncio.get_running_loop()

    async def server_ping_task():
        """Background task to send periodic pings through the session queue."""
        try:
            while True:
                await asyncio.sleep(settings.ws_ping_interval)
                session.send(build_message(MessageType.PING, {}))
        except asyncio.CancelledError:
            pass

    # Start server-initiated ping task
    ping_task = asyncio.create_task(server_ping_task())
    client_closed = False

    try:
        while True:
            # Receive with timeout to detect stale connections
            try:
                frame = await asyncio.wait_for(
                    websocket.receive(),
                    timeout=settings.ws_receive_timeout,
                )
            except asyncio.TimeoutError:
                # No message received within timeout - send ping to verify
                session.send(build_message(MessageType.PING, {}))
                try:
                    frame = await asyncio.wait_for(
                        websocket.receive(),
                        timeout=10,
                    )
                except asyncio.TimeoutError:
                    logger.info(f"Connection timeout for session {session.session_id}")
                    break

            if frame["type"] == "websocket.disconnect":
                client_closed = True
                logger.info(f"WebSocket disconnect for session {session.session_id} (user={session.user_id})")
                break

            raw_message = frame.get("text")
            if raw_message is None:
                logger.warning(f"Dropping non-text frame from session {session.session_id}")
                continue

            # Rate limiting check
            current_time = loop.time()
            message_timestamps[:] = [
                t for t in message_timestamps
                if current_time - t < settings.ws_rate_limit_window
            ]

            if len(message_timestamps) >= settings.ws_rate_limit_messages:
                logger.warning(f"Rate limit exceeded for session {session.session_id} (user={session.user_id})")
                continue

            message_timestamps.append(current_time)

            # Validate message size
            if len(raw_message) > settings.ws_max_message_size:
                logger.warning(
                    f"Message too large from session {session.session_id}: "
                    f"{len(raw_message)} bytes (max: {settings.ws_max_message_size})"
                )
                continue

            # Parse JSON
            try:
                data = json.loads(raw_message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from session {session.session_id}")
                continue

            await route_incoming_message(session, data, connection_manager)

    except WebSocketDisconnect:
        client_closed = True
        logger.info(f"WebSocket disconnect for session {session.session_id} (user={session.user_id})")
    except Exception as e:
        logger.error(f"WebSocket exception for session {session.session_id}: {e}", exc_info=True)
    finally:
        # Cancel ping task and cleanup
        ping_task.cancel()
        try:
            await ping_task
        except asyncio.CancelledError:
            pass
        await connection_manager.disconnect(session)
        if not client_closed:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Closing session {session.session_id} failed: {e}")


def main():
    """Run the API with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
