import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import sihha.models  # noqa: F401  registers every table on Base.metadata
from sihha.config import settings
from sihha.core.error_handling import register_error_handlers
from sihha.database import Base, SessionLocal, engine
from sihha.routers import admin, auth_api, consultations, doctors, live, medical_records, messages, rooms, triage
from sihha.services.user_service import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables and make sure the built-in admin account exists.
    """
    logger.info("Starting Sihha chat backend...")

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        UserService(db).ensure_admin_account()
    finally:
        db.close()

    if not settings.is_livekit_configured():
        logger.warning("LiveKit is not configured; live calls will answer 503")
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set; triage will answer 503")

    logger.info("Sihha chat backend ready")
    yield
    logger.info("Shutting down Sihha chat backend")


app = FastAPI(
    title="Sihha Chat API",
    description="Patient / doctor consultation chat with live voice sessions",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

app.include_router(auth_api.router)
app.include_router(doctors.router)
app.include_router(rooms.router)
app.include_router(medical_records.router)
app.include_router(messages.router)
app.include_router(live.router)
app.include_router(consultations.router)
app.include_router(admin.router)
app.include_router(triage.router)


@app.get("/api/health")
async def health_check():
    return {
        "ok": True,
        "service": "sihha-chat",
        "environment": settings.ENVIRONMENT,
        "livekitConfigured": settings.is_livekit_configured(),
    }
