"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.review_router import router as review_router
from backend.api.session_router import router as session_router
from backend.api.stats_router import router as stats_router
from backend.config import settings
from backend.database import engine, get_session, storage_errors
from backend.errors import ServiceError
from backend.models import Base

logger = logging.getLogger(__name__)
logging.getLogger("backend").setLevel(settings.log_level)


async def init_db() -> None:
    """Create tables, and the SQLite data directory when needed."""
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database on startup and cleanup on shutdown."""
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Spaced repetition vocabulary learning with resumable multi-set sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map service errors to their status code and a structured body."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(session_router)
app.include_router(review_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_session)) -> dict[str, str]:
    """Check database connectivity and return status."""
    with storage_errors("health_check"):
        await db.execute(text("SELECT 1"))
    return {"status": "ok"}
