"""Administrative API endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..auth.principal import Principal, require_principal
from ..core.db import SessionLocal
from ..rooms.expiry import sweep_expired_rooms

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", summary="Readiness probe")
async def admin_health() -> dict[str, str]:
    """Administrative health endpoint."""
    return {"status": "ok"}


@router.get("/metrics", summary="Prometheus metrics feed")
async def admin_metrics() -> Response:
    """Expose Prometheus-formatted metrics for scraping."""

    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.post("/sweep", summary="Run the expired-room sweep now")
async def admin_sweep(principal: Principal = Depends(require_principal)) -> dict[str, int]:
    """Run the same sweep the worker schedules and report how many rooms it deleted."""

    deleted = await run_in_threadpool(sweep_expired_rooms, SessionLocal)
    logger.info("Manual sweep by %s deleted %s rooms", principal.uid, deleted)
    return {"deleted": deleted}
