"""Pydantic schemas for customers and their profiles."""

from pydantic import Field

from fieldserve.schemas.common import CamelModel


class CustomerOut(CamelModel):
    """Customer profile as returned to clients."""

    customer_id: str
    name: str = ""
    phone: str = ""
    email: str = ""
    city: str = ""
    pincode: str = ""
    address: str = ""


class CustomerProfileIn(CamelModel):
    """Profile save payload. Phone or email identifies the customer."""

    phone: str | None = None
    email: str | None = None
    name: str | None = None
    city: str | None = None
    pincode: str | None = None
    address: str | None = None


class CustomerProfileResponse(CamelModel):
    success: bool = True
    customer: CustomerOut


class CustomerProfileSaved(CamelModel):
    success: bool = True
    customer_id: str
    message: str = Field(default="Profile updated successfully")
