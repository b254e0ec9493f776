"""Pydantic schemas for service requests and their lifecycle."""

from datetime import datetime

from fieldserve.schemas.common import CamelModel
from fieldserve.schemas.customer import CustomerOut


class RequestCreate(CamelModel):
    """
    Creation payload for both direct and broadcast requests.

    Everything is optional here; required fields are checked by the
    dispatcher so that a missing field is a 400 with a readable message.
    """

    worker_id: str | None = None
    service_type: str | None = None
    urgency: str | None = None
    preferred_date: str | None = None
    preferred_slot: str | None = None
    issue_detail: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    address: str | None = None
    city: str | None = None
    pincode: str | None = None
    lat: float | None = None
    lng: float | None = None


class RequestCreated(CamelModel):
    success: bool = True
    request_id: str
    customer_id: str
    message: str = "Service request created successfully"


class TransitionIn(CamelModel):
    """Worker action on a request. ``request_id`` defaults to the path id."""

    request_id: str | None = None
    actor_id: str | None = None
    action: str | None = None
    actor_name: str | None = None
    actor_phone: str | None = None
    actor_city: str | None = None


class TransitionOut(CamelModel):
    success: bool = True
    new_status: str
    message: str = ""


class ReviewIn(CamelModel):
    rating: int | None = None
    feedback: str | None = None


class ReviewOut(CamelModel):
    success: bool = True
    message: str = "Review submitted successfully"


class AvailableRequestOut(CamelModel):
    """Open request as shown on a worker's job board."""

    request_id: str
    customer_id: str
    service_type: str
    status: str
    timestamp: datetime | None = None
    urgency: str = "Normal"
    preferred_date: str = ""
    preferred_slot: str = ""
    description: str = ""
    customer_name: str = "Unknown"
    customer_city: str = ""
    is_direct: bool = False


class AvailableRequestsResponse(CamelModel):
    success: bool = True
    requests: list[AvailableRequestOut]


class RequestOut(CamelModel):
    """Full request record for the detail view."""

    request_id: str
    customer_id: str
    worker_id: str | None = None
    service_type: str
    urgency: str = ""
    status: str
    preferred_date: str = ""
    preferred_slot: str = ""
    description: str = ""
    city: str = ""
    pincode: str = ""
    address: str = ""
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    rating: int | None = None
    feedback: str | None = None


class WorkerSummary(CamelModel):
    worker_id: str
    name: str | None = None
    phone: str | None = None
    city: str | None = None


class TimelineEntry(CamelModel):
    status: str
    description: str = ""
    created_at: datetime | None = None


class RequestDetail(CamelModel):
    request: RequestOut
    customer: CustomerOut | None = None
    worker: WorkerSummary | None = None
    timeline: list[TimelineEntry] = []


class RequestDetailResponse(RequestDetail):
    success: bool = True


class ActiveRequestOut(CamelModel):
    request_id: str
    customer_id: str
    worker_id: str | None = None
    service_type: str
    status: str
    timestamp: datetime | None = None


class ActiveRequestResponse(CamelModel):
    success: bool = True
    active_request: ActiveRequestOut | None = None


class HistoryEntry(CamelModel):
    request_id: str
    worker_id: str | None = None
    worker_name: str | None = None
    service_type: str
    status: str
    preferred_date: str = ""
    preferred_slot: str = ""
    timestamp: datetime | None = None
    rating: int | None = None


class HistoryResponse(CamelModel):
    success: bool = True
    service_requests: list[HistoryEntry]
