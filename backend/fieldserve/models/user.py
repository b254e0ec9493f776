"""User account rows mirrored from the legacy ledger."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base


class User(Base):
    """Login account (customer, worker or admin), keyed by user_id."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), index=True)
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    user_type: Mapped[str] = mapped_column(String(20), default="customer", nullable=False)
    username: Mapped[str | None] = mapped_column(String(100))
    auth_provider: Mapped[str] = mapped_column(String(20), default="phone", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.user_id}: {self.user_type}>"
