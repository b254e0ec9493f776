"""Admin routes: on-demand reconciliation from the mirror."""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from fieldserve.config import get_settings
from fieldserve.database import get_db
from fieldserve.dependencies import get_mirror_store
from fieldserve.schemas.common import ErrorResponse
from fieldserve.schemas.sync import SyncResponse
from fieldserve.services.mirror import MirrorStore
from fieldserve.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sync",
    response_model=SyncResponse,
    responses={401: {"model": ErrorResponse}},
)
async def sync_all(
    db: Annotated[AsyncSession, Depends(get_db)],
    mirror: Annotated[MirrorStore, Depends(get_mirror_store)],
    secret: str | None = Query(None),
):
    """
    Pull users and workers from the mirror into the database.

    Safe to run repeatedly; rows are upserted by their natural id.
    """
    if not settings.admin_sync_secret:
        logger.warning("Rejected sync call: ADMIN_SYNC_SECRET is not configured")
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})
    if not secret or not secrets.compare_digest(secret, settings.admin_sync_secret):
        logger.warning("Rejected sync call with bad secret")
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    results = await ReconciliationService(db, mirror).run()
    return SyncResponse(results=results)
