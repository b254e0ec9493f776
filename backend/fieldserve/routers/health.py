"""Health endpoints."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldserve.database import get_db
from fieldserve.dependencies import get_mirror_store
from fieldserve.domain import RequestStatus
from fieldserve.models import Customer, ServiceRequest, SyncCheckpoint, Worker
from fieldserve.services.mirror import MirrorStore

router = APIRouter(tags=["health"])


class SyncSourceStatus(BaseModel):
    """Last reconciliation run for one mirrored entity type."""

    last_sync: datetime | None = None
    record_count: int = 0
    error_count: int = 0


class StoreCounts(BaseModel):
    customers: int
    workers: int
    service_requests: int
    open_requests: int


class HealthResponse(BaseModel):
    """Health check response."""

    success: bool = True
    status: str
    timestamp: datetime
    mirror_enabled: bool
    counts: StoreCounts
    sync: dict[str, SyncSourceStatus]


async def _count(db: AsyncSession, query) -> int:
    result = await db.execute(query)
    return result.scalar() or 0


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Annotated[AsyncSession, Depends(get_db)],
    mirror: Annotated[MirrorStore, Depends(get_mirror_store)],
) -> HealthResponse:
    """
    Health check with store counts and reconciliation status.

    Returns the last sync time and row counts for each mirrored entity type.
    """
    counts = StoreCounts(
        customers=await _count(db, select(func.count(Customer.id))),
        workers=await _count(db, select(func.count(Worker.id))),
        service_requests=await _count(db, select(func.count(ServiceRequest.id))),
        open_requests=await _count(
            db,
            select(func.count(ServiceRequest.id)).where(
                ServiceRequest.status == RequestStatus.NEW.value
            ),
        ),
    )

    result = await db.execute(select(SyncCheckpoint))
    sync = {
        checkpoint.source: SyncSourceStatus(
            last_sync=checkpoint.last_sync_at,
            record_count=checkpoint.record_count,
            error_count=checkpoint.error_count,
        )
        for checkpoint in result.scalars().all()
    }

    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        mirror_enabled=mirror.enabled,
        counts=counts,
        sync=sync,
    )


@router.get("/ready")
async def readiness_check() -> dict:
    """Simple readiness probe for container orchestration."""
    return {"success": True, "status": "ready"}


@router.get("/live")
async def liveness_check() -> dict:
    """Simple liveness probe for container orchestration."""
    return {"success": True, "status": "alive"}
