"""FastAPI dependencies wiring the stores into route handlers."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fieldserve.config import get_settings
from fieldserve.database import get_db
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import MirrorStore
from fieldserve.services.sheets_client import SheetsClient

settings = get_settings()


def build_mirror_store() -> MirrorStore:
    """Mirror store from settings; disabled when no spreadsheet is configured."""
    return MirrorStore(
        client=SheetsClient(),
        enabled=settings.mirror_enabled and bool(settings.sheets_spreadsheet_id),
    )


def get_mirror_store(request: Request) -> MirrorStore:
    """The application's mirror store, created at startup."""
    mirror = getattr(request.app.state, "mirror_store", None)
    if mirror is None:
        mirror = build_mirror_store()
        request.app.state.mirror_store = mirror
    return mirror


async def get_dual_store(
    db: Annotated[AsyncSession, Depends(get_db)],
    mirror: Annotated[MirrorStore, Depends(get_mirror_store)],
) -> DualStore:
    """One dual store per request, bound to that request's session."""
    return DualStore(db, mirror)


StoreDep = Annotated[DualStore, Depends(get_dual_store)]
