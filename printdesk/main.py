"""
printdesk/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Builds and validates the menu grammar before serving traffic
- Wires store, engine and session handler
- Registers API routes (webhook) and health probes
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from printdesk.core.config import settings, validate_settings
from printdesk.core.errors import add_exception_handlers
from printdesk.core.logging import setup_logging, get_logger
from printdesk.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health, get_users_collection
from printdesk.db.indexes import create_indexes
from printdesk.flow.dispatcher import DialogueSessionHandler
from printdesk.flow.engine import ConversationEngine
from printdesk.flow.menu import build_menu_grammar
from printdesk.services.messenger_service import messenger_service
from printdesk.services.profile_service import profile_service
from printdesk.services.store import ConversationStore, InMemoryConversationStore, MongoConversationStore
from printdesk.api import webhook
from printdesk.utils.constants import APP_NAME, APP_VERSION

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


async def build_store(initial_state: str) -> ConversationStore:
    """Creates the configured conversation store backend."""
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory conversation store (state is lost on restart)")
        return InMemoryConversationStore(initial_state)

    logger.info("Connecting to MongoDB...")
    await connect_to_mongo()
    users = get_users_collection()
    await create_indexes(users)
    return MongoConversationStore(users, initial_state)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(f"🚀 Starting {APP_NAME}...")

    try:
        validate_settings()
        logger.info("✅ Configuration validated")

        # Rejects an inconsistent menu before any traffic is served
        grammar = build_menu_grammar()
        logger.info(f"✅ Menu grammar loaded: {grammar!r}")

        store = await build_store(grammar.initial_state)

        app.state.grammar = grammar
        app.state.store = store
        app.state.transport = messenger_service
        app.state.session_handler = DialogueSessionHandler(
            store=store,
            engine=ConversationEngine(grammar),
            profile_resolver=profile_service
        )

        if not messenger_service.is_configured():
            logger.warning("⚠️ MESSENGER_PAGE_ACCESS_TOKEN not set, replies will fail")

        logger.info(f"🎉 {APP_NAME} started (environment={settings.ENVIRONMENT})")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    logger.info(f"🛑 Shutting down {APP_NAME}...")

    try:
        await close_mongo_connection()
        logger.info(f"👋 {APP_NAME} shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title=f"{APP_NAME} - Printing Help Desk Bot",
    description="Messenger menu bot for the printing help desk",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

add_exception_handlers(app)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    # Messenger expects an answer well within 20 seconds
    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path} ({process_time:.2f}s)"
        )

    return response


app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.
    Checks the store backend and the session handler wiring.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": APP_VERSION,
        "checks": {}
    }

    if settings.STORE_BACKEND == "mongo":
        db_healthy = await check_database_health()
        health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
        if not db_healthy:
            health_status["status"] = "degraded"
    else:
        health_status["checks"]["database"] = "memory"

    if getattr(request.app.state, "session_handler", None) is None:
        health_status["checks"]["session_handler"] = "not_initialized"
        health_status["status"] = "unhealthy"
    else:
        health_status["checks"]["session_handler"] = "ready"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request):
    """
    Readiness probe - indicates if app is ready to receive traffic.
    """
    if getattr(request.app.state, "session_handler", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "starting"}
        )

    if settings.STORE_BACKEND == "mongo" and not await check_database_health():
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "database_unavailable"}
        )

    return {"status": "ready"}


@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "printdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
