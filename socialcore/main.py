from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from socialcore.config import settings
from socialcore.db.session import init_db, close_db
from socialcore.exceptions import SocialCoreError
from socialcore.api import follow, blocks, interactions, messages, notifications
from socialcore.services.redis_service import RedisService
from socialcore.utils.rate_limit import limiter
from socialcore.websocket.broadcaster import Broadcaster
from socialcore.websocket.manager import ConnectionManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    logger.info("Starting up...")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.broadcaster.close()
    if app.state.cache is not None:
        await app.state.cache.close()
    await close_db()


async def social_core_error_handler(request: Request, exc: SocialCoreError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


def create_app(cache: Optional[RedisService] = None) -> FastAPI:
    """Application factory; owns the connection registry and the broadcaster"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Social relationships and notification fan-out built with FastAPI",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )

    connection_manager = ConnectionManager()
    broadcaster = Broadcaster()
    broadcaster.initialize(connection_manager)

    app.state.connection_manager = connection_manager
    app.state.broadcaster = broadcaster
    app.state.cache = cache if cache is not None else (None if settings.is_testing else RedisService())

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(SocialCoreError, social_core_error_handler)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    prefix = settings.API_V1_PREFIX
    app.include_router(follow.router, prefix=f"{prefix}/follow", tags=["Follow"])
    app.include_router(blocks.router, prefix=f"{prefix}/privacy", tags=["Privacy"])
    app.include_router(interactions.router, prefix=f"{prefix}/interactions", tags=["Interactions"])
    app.include_router(messages.router, prefix=f"{prefix}/messages", tags=["Messages"])
    app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["Notifications"])

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "message": "Welcome to Social Core API",
            "version": settings.VERSION,
            "docs": "/api/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        connected = await connection_manager.get_connected_users_count()
        connections = await connection_manager.get_total_connections_count()
        return {
            "status": "healthy",
            "connected_users": connected,
            "connections": connections,
            "timestamp": datetime.now().isoformat()
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "socialcore.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
