"""API routes for the worker job board."""

from fastapi import APIRouter, Query

from fieldserve.dependencies import StoreDep
from fieldserve.schemas.service_request import AvailableRequestsResponse
from fieldserve.services.matcher import AvailabilityMatcher

router = APIRouter(prefix="/workers", tags=["workers"])


@router.get("/{worker_id}/available-requests", response_model=AvailableRequestsResponse)
async def available_requests(
    worker_id: str,
    store: StoreDep,
    city: str | None = Query(None, description="Worker's city, matched tolerantly"),
    worker_id_param: str | None = Query(None, alias="workerId"),
) -> AvailableRequestsResponse:
    """
    Open requests this worker may accept, newest first.

    Includes broadcast requests whose city matches and requests addressed
    directly to the worker (``isDirect``).
    """
    matcher = AvailabilityMatcher(store)
    requests = await matcher.available_requests(city, worker_id_param or worker_id)
    return AvailableRequestsResponse(requests=requests)
