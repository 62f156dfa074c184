"""
Magic Code Server - FastAPI Server
Main application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from app.core.config import settings
from app.core.database import init_db
from app.core.logging import setup_logging
from app.api import codes_router, users_router, monitor_router
from app.services.wiring import MagicCodeServices, build_services

logger = logging.getLogger(__name__)


def create_app(
    services: Optional[MagicCodeServices] = None,
    auto_start: Optional[bool] = None
) -> FastAPI:
    """Build the application; tests pass their own services"""
    if auto_start is None:
        auto_start = settings.EMAIL_MONITOR_AUTO_START

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle events"""
        # Startup
        setup_logging()
        logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
        app.state.services = services or build_services()
        init_db(app.state.services.engine)
        logger.info("Database initialized")

        if auto_start:
            await app.state.services.supervisor.start_all()
        app.state.services.sweeper.start()
        yield
        # Shutdown
        logger.info("Shutting down...")
        await app.state.services.supervisor.shutdown()
        await app.state.services.sweeper.stop()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Watches users' Gmail inboxes and serves the latest magic codes",
        lifespan=lifespan
    )

    # Cookies from the web app and extension need credentialed CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "Cookie"],
        expose_headers=["Set-Cookie"],
        max_age=86400,
    )

    app.include_router(codes_router)
    app.include_router(users_router)
    app.include_router(monitor_router)

    @app.get("/", response_class=PlainTextResponse)
    def root():
        """Health check endpoint"""
        return "Magic Code Server Running"

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": settings.APP_VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.DEBUG
    )
