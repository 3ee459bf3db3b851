"""FastAPI application exposing the sync engine ingress."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev); other backends are provisioned externally
    if settings.is_sqlite:
        from .database import create_tables
        await create_tables()
    yield


app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

from .routers import health, sync  # noqa: E402

app.include_router(sync.router)
app.include_router(health.router)
