"""Sync ingress routes - webhook for change events and record lookup."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db, get_session_factory
from ..schemas.entities import food_log_to_activity
from ..schemas.sync import EntityType, IngressEvent, SyncResult
from ..services import record_svc
from ..sync.engine import SyncEngine

router = APIRouter(prefix="/sync", tags=["sync"])

_STATUS_CODES = {"skipped": 202, "success": 202}


def get_sync_engine(session_factory=Depends(get_session_factory)) -> SyncEngine:
    return SyncEngine(session_factory)


def _response(result: SyncResult) -> JSONResponse:
    body = result.model_dump(exclude_none=True)
    if result.status in _STATUS_CODES:
        return JSONResponse({"status": "accepted", "result": body}, status_code=_STATUS_CODES[result.status])
    if result.error_type == "validation":
        return JSONResponse(body, status_code=400)
    return JSONResponse(body, status_code=500)


@router.post("/events")
async def receive_event(request: Request, engine: SyncEngine = Depends(get_sync_engine)):
    try:
        body = await request.json()
        ingress = IngressEvent.model_validate(body)
    except (ValueError, PydanticValidationError):
        return JSONResponse({"error": "Malformed request body"}, status_code=400)

    key = request.headers.get(settings.idempotency_header) or ingress.idempotency_key
    if not key or not ingress.entity_type or not ingress.operation:
        return JSONResponse({"error": "Missing required fields"}, status_code=400)

    entity_type = ingress.entity_type
    payload = ingress.payload
    if entity_type == "food_log":
        entity_type = EntityType.ACTIVITY.value
        payload = food_log_to_activity(payload)

    result = await engine.process_payload({
        "source": ingress.source,
        "entity_type": entity_type,
        "external_id": ingress.external_id or str(uuid.uuid4()),
        "owner_id": ingress.owner_id or "",
        "operation": ingress.operation,
        "payload": payload,
        "idempotency_key": key,
    })
    return _response(result)


@router.get("/records")
async def list_records(
    owner_id: str | None = None,
    processed: bool | None = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    records = await record_svc.list_records(db, owner_id=owner_id, processed=processed, limit=limit)
    return {"records": [record_svc.record_to_dict(r) for r in records]}


@router.get("/records/{idempotency_key}")
async def get_record(idempotency_key: str, db: AsyncSession = Depends(get_db)):
    record = await record_svc.get_record(db, idempotency_key)
    if not record:
        return JSONResponse({"error": "Sync record not found"}, status_code=404)
    return record_svc.record_to_dict(record)
