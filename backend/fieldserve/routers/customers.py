"""API routes for customers: profile, active request and history."""

from fastapi import APIRouter, Query

from fieldserve.dependencies import StoreDep
from fieldserve.schemas.customer import (
    CustomerProfileIn,
    CustomerProfileResponse,
    CustomerProfileSaved,
)
from fieldserve.schemas.service_request import ActiveRequestResponse, HistoryResponse
from fieldserve.services.history import HistoryReader
from fieldserve.services.identity import CustomerDetails, IdentityResolver

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("/profile", response_model=CustomerProfileResponse)
async def get_profile(
    store: StoreDep,
    phone: str | None = Query(None),
) -> CustomerProfileResponse:
    customer = await IdentityResolver(store).get_profile(phone or "")
    return CustomerProfileResponse(customer=customer)


@router.post("/profile", response_model=CustomerProfileSaved)
async def save_profile(payload: CustomerProfileIn, store: StoreDep) -> CustomerProfileSaved:
    """Create or update a customer; phone (either form) or email identifies them."""
    details = CustomerDetails(
        phone=payload.phone or "",
        email=payload.email or "",
        name=payload.name or "",
        city=payload.city or "",
        pincode=payload.pincode or "",
        address=payload.address or "",
    )
    customer_id = await IdentityResolver(store).resolve(details)
    return CustomerProfileSaved(customer_id=customer_id)


@router.get("/active-request", response_model=ActiveRequestResponse)
async def active_request(
    store: StoreDep,
    customer_id: str | None = Query(None, alias="customerId"),
) -> ActiveRequestResponse:
    """The customer's most recent request that is not yet closed, or null."""
    active = await HistoryReader(store).active_request(customer_id or "")
    return ActiveRequestResponse(active_request=active)


@router.get("/history", response_model=HistoryResponse)
async def history(
    store: StoreDep,
    phone: str | None = Query(None),
    email: str | None = Query(None),
) -> HistoryResponse:
    """
    Past and current requests, newest first.

    Completed requests drop off the list an hour after completion.
    """
    requests = await HistoryReader(store).customer_history(phone, email)
    return HistoryResponse(service_requests=requests)
