"""
FastAPI application main file.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from vip_platform.core.config import settings
from vip_platform.routers import general, affiliate, wager_races, sync, wager_overrides, websocket
from vip_platform.db.session import init_db

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=600,  # Cache preflight requests for 10 minutes
)

@app.on_event("startup")
async def startup_event():
    """Initialize database and background jobs on application startup."""
    await init_db()
    if settings.SCHEDULER_ENABLED:
        from vip_platform.scheduler import start_scheduler
        start_scheduler()
    else:
        logger.info("Scheduler disabled, sync runs only on demand")

@app.on_event("shutdown")
async def shutdown_event():
    from vip_platform.scheduler import shutdown_scheduler
    shutdown_scheduler()

# Include routers
app.include_router(general.router)
app.include_router(affiliate.router)
app.include_router(wager_races.router)
app.include_router(sync.router)
app.include_router(wager_overrides.router)
app.include_router(websocket.router)
