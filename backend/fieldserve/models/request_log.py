"""Append-only audit trail of service request status changes."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base


class RequestLog(Base):
    """One entry per status change. Never updated once written."""

    __tablename__ = "request_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    request_id: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_request_logs_request_id_created_at", "request_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RequestLog {self.request_id}: {self.status}>"
