"""Reconciliation job: pull users and workers from the mirror into the database."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldserve.domain import WorkerStatus
from fieldserve.errors import MirrorStoreError
from fieldserve.models import SyncCheckpoint, User, VerifiedWorker, Worker
from fieldserve.schemas.sync import SyncResults, UserSyncCounts, WorkerSyncCounts
from fieldserve.services.mirror import USERS, WORKERS, MirrorStore, MirrorWorker

logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Upserts mirror rows into the authoritative store, keyed by natural id.

    Features:
    - Idempotent: a second run over the same rows changes nothing
    - Per-row savepoints, so one bad row is counted and skipped
    - Verified workers are projected into ``verified_workers``
    - A checkpoint per entity type for the health endpoint
    """

    def __init__(self, db: AsyncSession, mirror: MirrorStore):
        self.db = db
        self.mirror = mirror

    def _insert(self, model: type) -> Any:
        """INSERT construct with ON CONFLICT support for the bound dialect."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise RuntimeError(f"Upsert not supported for dialect {dialect}")

    async def _upsert(self, model: type, key: str, values: dict[str, Any]) -> None:
        stmt = self._insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={k: v for k, v in values.items() if k != key},
        )
        await self.db.execute(stmt)

    async def _upsert_row(self, model: type, key: str, values: dict[str, Any]) -> bool:
        """Upsert inside a savepoint; a failure rolls back this row only."""
        try:
            async with self.db.begin_nested():
                await self._upsert(model, key, values)
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error syncing {model.__tablename__} {values.get(key)}: {e}")
            return False

    async def update_checkpoint(self, source: str, model: type, errors: int) -> None:
        """Record the run time and current table size for one entity type."""
        count_result = await self.db.execute(select(func.count()).select_from(model))
        await self._upsert(
            SyncCheckpoint,
            "source",
            {
                "source": source,
                "last_sync_at": datetime.now(UTC),
                "record_count": count_result.scalar() or 0,
                "error_count": errors,
            },
        )

    async def _mirror_records(self, schema: Any) -> list[dict[str, str]]:
        try:
            return await self.mirror.records(schema)
        except MirrorStoreError as e:
            logger.error(f"Failed to read mirror tab {schema.tab}: {e}")
            return []

    async def sync_users(self) -> UserSyncCounts:
        counts = UserSyncCounts()
        logger.info("Starting user sync")

        for record in await self._mirror_records(USERS):
            counts.processed += 1
            user_id = record.get("UserID")
            if not user_id:
                continue

            values = {
                "user_id": user_id,
                "phone": record.get("Phone") or None,
                "email": record.get("Email") or None,
                "name": record.get("Name") or None,
                "user_type": record.get("UserType") or "customer",
                "username": record.get("Username") or None,
                "auth_provider": record.get("AuthProvider") or "phone",
            }
            if await self._upsert_row(User, "user_id", values):
                counts.synced += 1
            else:
                counts.errors += 1

        await self.update_checkpoint("users", User, counts.errors)
        await self.db.commit()

        logger.info(f"Synced {counts.synced}/{counts.processed} users ({counts.errors} errors)")
        return counts

    async def sync_workers(self) -> WorkerSyncCounts:
        counts = WorkerSyncCounts()
        logger.info("Starting worker sync")

        for record in await self._mirror_records(WORKERS):
            counts.processed += 1
            worker = MirrorWorker.from_record(record)
            if not worker.worker_id:
                continue

            values = {
                "worker_id": worker.worker_id,
                "name": worker.name,
                "phone": worker.phone,
                "phone_secondary": worker.phone_secondary,
                "email": worker.email,
                "house_no": worker.house_no,
                "area": worker.area,
                "city": worker.city,
                "district": worker.district,
                "state": worker.state,
                "pincode": worker.pincode,
                "latitude": worker.latitude,
                "longitude": worker.longitude,
                "referral_code": worker.referral_code,
                "referred_by": worker.referred_by,
                "status": worker.status,
            }
            if not await self._upsert_row(Worker, "worker_id", values):
                counts.errors += 1
                continue
            counts.synced += 1

            if worker.status == WorkerStatus.VERIFIED.value:
                verified = {
                    "worker_id": worker.worker_id,
                    "name": worker.name,
                    "phone": worker.phone,
                    "city": worker.city,
                    "area": worker.area,
                    "status": WorkerStatus.VERIFIED.value,
                }
                if await self._upsert_row(VerifiedWorker, "worker_id", verified):
                    counts.verified_synced += 1

        await self.update_checkpoint("workers", Worker, counts.errors)
        await self.db.commit()

        logger.info(
            f"Synced {counts.synced}/{counts.processed} workers "
            f"({counts.verified_synced} verified, {counts.errors} errors)"
        )
        return counts

    async def run(self) -> SyncResults:
        """Sync every mirrored entity type and report the counts."""
        return SyncResults(users=await self.sync_users(), workers=await self.sync_workers())
