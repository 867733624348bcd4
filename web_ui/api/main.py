"""
Embyvault Admin API - Main FastAPI Application

Administrative backend for an Emby media server:
- Single-operator admin login with signed session tokens
- Emby user management proxied through the Emby REST API
- Local membership periods with recharge history
- Webhook-driven email notifications
- Scheduled expiration of lapsed memberships
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from membership import database
from membership.dates import now_utc, to_iso
from membership.emby_client import close_emby_client
from membership.expiration import get_expire_scheduler
from utils.logger import logger
from web_ui.api.middleware.errors import register_exception_handlers
from web_ui.api.routes import auth, emby_users, memberships, system, users, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    # Startup
    database.init_db()

    scheduler = get_expire_scheduler()
    if settings.SCHEDULER_ENABLED:
        db = database.SessionLocal()
        try:
            scheduler.apply_stored(db)
        finally:
            db.close()
        scheduler.start()

    logger.info(f"Server listening on {settings.HOST}:{settings.PORT}")
    yield
    # Shutdown
    scheduler.shutdown()
    await close_emby_client()
    logger.info("Embyvault Admin API shutting down...")


app = FastAPI(
    title="Embyvault Admin API",
    description="Emby user and membership administration",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Authorization", "Content-Type", "X-Webhook-Secret"],
)

register_exception_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access log line per request"""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f} ms")
    return response


# Public routes (no auth required)
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])

# Admin routes (bearer token required)
app.include_router(system.router, prefix="/admin", tags=["System"])
app.include_router(emby_users.router, prefix="/admin/emby", tags=["Emby Users"])
app.include_router(users.router, prefix="/admin/users", tags=["Local Users"])
app.include_router(memberships.recharges_router, prefix="/admin/recharges", tags=["Recharges"])
app.include_router(memberships.memberships_router, prefix="/admin/memberships", tags=["Memberships"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True, "now": to_iso(now_utc())}


def run() -> None:
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
