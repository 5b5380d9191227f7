"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from venue_dedup.config import get_settings
from venue_dedup.db.session import SessionLocal
from venue_dedup.routers import duplicates
from venue_dedup.services.registry import count_candidates

logger = logging.getLogger(__name__)


def _warm_backend_state() -> None:
    """Prime the DB connection and the review queue count at process start."""

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            count_candidates(db)
    except Exception:
        logger.exception("Backend warm-up failed; continuing without startup pre-warm.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(level=get_settings().log_level.upper())
    _warm_backend_state()
    yield


settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(duplicates.router, tags=["duplicates"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
