"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

from app.api.notifications import router as notifications_router
from app.api.preferences import router as preferences_router
from app.api.scheduled_notifications import router as scheduled_router
from app.config import get_settings
from app.db.session import engine

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate production settings and create tables on startup."""
    if settings.is_production:
        settings.validate()

    from app.models import (  # noqa: F401
        DeliveryLog,
        NotificationPreference,
        NotificationRecord,
        NotificationTemplate,
        ScheduledNotification,
        User,
    )
    SQLModel.metadata.create_all(engine)
    logger.info("Notification service started", extra={"env": settings.APP_ENV})
    yield


app = FastAPI(
    title="School Notification Service API",
    description="Multi-channel notification dispatch, scheduling and in-app delivery",
    version="1.0.0",
    lifespan=lifespan,
)

# The SSE stream needs Last-Event-ID from browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted({o for o in (settings.FRONTEND_URL, "http://localhost:3000", "http://localhost:5173") if o}),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Last-Event-ID"],
)

app.include_router(notifications_router)
app.include_router(scheduled_router)
app.include_router(preferences_router)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "healthy", "environment": settings.APP_ENV}
