"""SyncCheckpoint model recording reconciliation runs per entity type."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base


class SyncCheckpoint(Base):
    """
    Tracks the last reconciliation run for each mirrored entity type.

    Reported by the health endpoint; the sync itself always reads the whole
    mirror ledger.
    """

    __tablename__ = "sync_checkpoints"

    # 'users' or 'workers'
    source: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_sync_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    record_count: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, server_default="0", nullable=False)

    def __repr__(self) -> str:
        return f"<SyncCheckpoint {self.source}: {self.last_sync_at}>"
