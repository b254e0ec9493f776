"""ServiceRequest model: a work order moving through the dispatch lifecycle."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base
from fieldserve.domain import Assignment, RequestStatus, assignment_for


class ServiceRequest(Base):
    """
    Customer work order, either broadcast to a city or aimed at one worker.

    ``worker_id`` is NULL while the request is unassigned; use the
    ``assignment`` property rather than inspecting the column directly.
    """

    __tablename__ = "service_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    request_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    worker_id: Mapped[str | None] = mapped_column(String(32))

    # Work details
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)
    urgency: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RequestStatus.NEW.value, nullable=False
    )
    preferred_date: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    preferred_slot: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Location
    city: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    pincode: Mapped[str] = mapped_column(String(10), default="", nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    # Customer snapshot
    customer_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), default="", nullable=False)
    customer_address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    customer_city: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    # Worker snapshot, filled on accept
    worker_name: Mapped[str | None] = mapped_column(String(255))
    worker_phone: Mapped[str | None] = mapped_column(String(20))
    worker_city: Mapped[str | None] = mapped_column(String(100))

    # Review
    rating: Mapped[int | None] = mapped_column(Integer)
    feedback: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        # Availability query: open requests, newest first
        Index("ix_service_requests_status_worker", "status", "worker_id"),
        Index("idx_service_requests_recent", created_at.desc()),
    )

    @property
    def assignment(self) -> Assignment:
        return assignment_for(self.worker_id)

    @property
    def request_status(self) -> RequestStatus:
        return RequestStatus(self.status)

    def __repr__(self) -> str:
        return f"<ServiceRequest {self.request_id}: {self.status}>"
