"""
Admin panel: staff login, patient lists and Dropbox document attachments.

Run locally:  uvicorn prionstudy.panel:app --port 3001
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from prionstudy.config import get_settings
from prionstudy.handlers import register_exception_handlers
from prionstudy.middleware.security_headers import NoCacheMiddleware, SecurityHeadersMiddleware
from prionstudy.rate_limit import limiter
from prionstudy.routers import auth, documents, i18n, individuals
from prionstudy.services.csv_sync import sync_csv_from_dropbox
from prionstudy.services.document_service import document_service
from prionstudy.services.record_store import record_store

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: pull the latest CSVs from Dropbox (when configured), then load them
    if settings.sync_csv_on_startup:
        await sync_csv_from_dropbox()
    await record_store.load()
    if await document_service.ensure_folder("CI"):
        await document_service.ensure_folder("FAMILY")
    logger.info(
        "Admin panel ready: %d individuals, %d users",
        record_store.individual_count,
        len(record_store.credentials),
    )
    yield


app = FastAPI(
    title="Prion Study Admin Panel",
    description="Staff access to patient lists and identity documents",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
register_exception_handlers(app)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="prionstudy_session",
    max_age=settings.session_max_age,
    same_site="lax",
    https_only=settings.is_production,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins or ["*"],
    allow_credentials=bool(settings.cors_origins),
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)
app.add_middleware(NoCacheMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(auth.router, prefix="/api", tags=["Auth"])
app.include_router(individuals.router, prefix="/api", tags=["Individuals"])
app.include_router(documents.router, prefix="/api", tags=["Documents"])
app.include_router(i18n.router, prefix="/api", tags=["I18n"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "individuals": record_store.individual_count,
        "credentials": len(record_store.credentials),
    }
