"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from partito.config import settings
from partito.database import Base, engine

# Import routers
from partito.routers import events, rsvps, share, site

# Import all models so Base.metadata knows about them
from partito.models.event import Event                # noqa: F401
from partito.models.rsvp import Rsvp                  # noqa: F401
from partito.models.event_update import EventUpdate   # noqa: F401
from partito.models.rate_limit import RateLimit       # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Partito",
    description="No-login event pages and RSVPs: hosts manage with an edit link, guests respond without an account",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(rsvps.router, prefix="/api", tags=["RSVPs"])
app.include_router(site.router, prefix="/api", tags=["Site"])
app.include_router(share.router, tags=["Share"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
