"""Worker directory lookups shared by the lifecycle and detail readers."""

from typing import Any

from sqlalchemy import select

from fieldserve.models import Worker
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import WORKERS, MirrorStore, MirrorWorker


async def find_worker(store: DualStore, worker_id: str | None) -> Any | None:
    """Worker by id from either store (``Worker`` or ``MirrorWorker``), or None."""
    if not worker_id:
        return None

    async def primary() -> Worker | None:
        result = await store.db.execute(select(Worker).where(Worker.worker_id == worker_id))
        return result.scalar_one_or_none()

    async def fallback(mirror: MirrorStore) -> MirrorWorker | None:
        record = await mirror.get(WORKERS, worker_id)
        return MirrorWorker.from_record(record) if record else None

    return await store.read(primary, fallback, label="fetch worker")
