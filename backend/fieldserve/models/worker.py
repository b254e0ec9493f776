"""Field worker models: the full worker ledger and the verified projection."""

from datetime import datetime

from sqlalchemy import DateTime, Float, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base
from fieldserve.domain import WorkerStatus


class Worker(Base):
    """
    Field worker (electrician).

    Created by the registration flow and verified elsewhere; the dispatch
    core only reads status, city and contact details.
    """

    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(primary_key=True)
    worker_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(20), index=True)
    phone_secondary: Mapped[str | None] = mapped_column(String(20))
    email: Mapped[str | None] = mapped_column(String(255))

    # Address
    house_no: Mapped[str | None] = mapped_column(String(100))
    area: Mapped[str | None] = mapped_column(String(100))
    city: Mapped[str | None] = mapped_column(String(100), index=True)
    district: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    pincode: Mapped[str | None] = mapped_column(String(10))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    # Referrals
    referral_code: Mapped[str | None] = mapped_column(String(20))
    referred_by: Mapped[str | None] = mapped_column(String(32))

    status: Mapped[str] = mapped_column(
        String(20), default=WorkerStatus.PENDING.value, nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Worker {self.worker_id}: {self.status}>"


class VerifiedWorker(Base):
    """Denormalized projection of workers whose status is VERIFIED."""

    __tablename__ = "verified_workers"

    id: Mapped[int] = mapped_column(primary_key=True)
    worker_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(20))
    city: Mapped[str | None] = mapped_column(String(100), index=True)
    area: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(
        String(20), default=WorkerStatus.VERIFIED.value, nullable=False
    )

    def __repr__(self) -> str:
        return f"<VerifiedWorker {self.worker_id}>"
