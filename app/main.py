"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import audit, availability, calendar, health, hybrid_bookings, lessons
from app.core.database import dispose_db, init_db
from app.core.errors import register_error_handlers
from app.core.settings import settings

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting lesson scheduling application...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Notifications are delivered by app.workers.notification_worker in its own process
    yield

    await dispose_db()
    logger.info("Application stopped")


# Create FastAPI app
app = FastAPI(
    title="Lesson Scheduling & Hybrid Booking",
    description="Weekly lessons, teacher/room availability and hybrid individual-session bookings",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include API routers
app.include_router(health.router, prefix="/api")
app.include_router(availability.router, prefix="/api")
app.include_router(lessons.router, prefix="/api")
app.include_router(hybrid_bookings.router, prefix="/api")
app.include_router(calendar.router, prefix="/api")
app.include_router(audit.router, prefix="/api")


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.env == "dev",
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
