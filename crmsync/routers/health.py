"""Liveness and readiness probes for the sync service."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.sync_record import SyncRecord

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "crmsync"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Ready once the sync tables are reachable; reports keys awaiting a retry."""
    try:
        stmt = select(func.count()).select_from(SyncRecord).where(SyncRecord.processed.is_(False))
        pending = (await db.execute(stmt)).scalar_one()
    except SQLAlchemyError:
        return JSONResponse({"status": "unavailable", "service": "crmsync"}, status_code=503)
    return {"status": "ready", "service": "crmsync", "pending_records": pending}
