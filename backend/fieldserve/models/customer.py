"""Customer model: people who raise service requests."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from fieldserve.database import Base


class Customer(Base):
    """
    Customer record, unique by phone (either country-code form) or email.

    Fields are merged last-non-empty-wins on update and never cleared by
    omission.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(20), default="", nullable=False, index=True)
    # National form of phone; NULL when the customer has no phone
    phone_key: Mapped[str | None] = mapped_column(String(20), unique=True)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False, index=True)
    city: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    pincode: Mapped[str] = mapped_column(String(10), default="", nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Customer {self.customer_id}: {self.phone or self.email}>"
