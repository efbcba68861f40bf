"""
Consent service: public decision endpoint plus the backup admin API.

Run locally:  uvicorn prionstudy.main:app --port 3000
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prionstudy.config import get_settings
from prionstudy.database import engine, Base
from prionstudy.handlers import register_exception_handlers
from prionstudy.middleware.security_headers import SecurityHeadersMiddleware
from prionstudy.rate_limit import limiter
from prionstudy.routers import backup, consent
from prionstudy.services.scheduler import backup_scheduler

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)

if not settings.email_configured:
    logger.warning("EMAIL_USER/EMAIL_PASS/RESEARCH_EMAIL not set; notification emails will be skipped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables, then start the backup jobs where enabled
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.scheduler_enabled:
        backup_scheduler.start()
    logger.info("Consent service ready (env=%s)", settings.environment)
    yield
    # Shutdown
    await backup_scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title="Prion Study Consent Service",
    description="Records participant consent decisions and runs database backups",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(consent.router, prefix="/api", tags=["Consent"])
app.include_router(backup.router, prefix="/admin/backup", tags=["Backup"])


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}
