"""API routes for creating service requests and moving them through their lifecycle."""

from fastapi import APIRouter

from fieldserve.dependencies import StoreDep
from fieldserve.errors import ValidationError
from fieldserve.schemas.service_request import (
    RequestCreate,
    RequestCreated,
    RequestDetailResponse,
    ReviewIn,
    ReviewOut,
    TransitionIn,
    TransitionOut,
)
from fieldserve.services.dispatcher import RequestDispatcher
from fieldserve.services.history import HistoryReader
from fieldserve.services.lifecycle import LifecycleStateMachine

router = APIRouter(prefix="/requests", tags=["requests"])


def _request_id(path_id: str, body_id: str | None) -> str:
    """Body ``requestId`` is optional but must agree with the path."""
    if body_id and body_id != path_id:
        raise ValidationError("Request ID in body does not match the URL")
    return path_id


@router.post("", response_model=RequestCreated)
async def create_request(payload: RequestCreate, store: StoreDep) -> RequestCreated:
    """Create a request addressed to one worker."""
    return await RequestDispatcher(store).create_direct(payload)


@router.post("/broadcast", response_model=RequestCreated)
async def create_broadcast_request(payload: RequestCreate, store: StoreDep) -> RequestCreated:
    """Create a request open to every worker in the customer's city."""
    return await RequestDispatcher(store).create_broadcast(payload)


@router.get("/{request_id}", response_model=RequestDetailResponse)
async def get_request(request_id: str, store: StoreDep) -> RequestDetailResponse:
    """Request detail with customer, worker and status timeline."""
    detail = await HistoryReader(store).request_detail(request_id)
    return RequestDetailResponse(**detail.model_dump())


@router.post("/{request_id}/transition", response_model=TransitionOut)
async def transition_request(
    request_id: str,
    payload: TransitionIn,
    store: StoreDep,
) -> TransitionOut:
    """
    Apply a worker action: accept, decline, complete or cancel.

    Accept is first-come-first-served; a request claimed by someone else
    returns 409.
    """
    new_status = await LifecycleStateMachine(store).transition(
        _request_id(request_id, payload.request_id),
        payload.actor_id,
        payload.action,
        actor_name=payload.actor_name,
        actor_phone=payload.actor_phone,
        actor_city=payload.actor_city,
    )
    return TransitionOut(
        new_status=new_status.value,
        message=f"Request is now {new_status.value}",
    )


@router.post("/{request_id}/pay", response_model=TransitionOut)
async def pay_request(request_id: str, store: StoreDep) -> TransitionOut:
    """Record payment for a completed request."""
    new_status = await LifecycleStateMachine(store).mark_paid(request_id)
    return TransitionOut(
        new_status=new_status.value,
        message="Payment recorded and request closed",
    )


@router.post("/{request_id}/review", response_model=ReviewOut)
async def review_request(request_id: str, payload: ReviewIn, store: StoreDep) -> ReviewOut:
    """Rate a completed request from 1 to 5."""
    await LifecycleStateMachine(store).review(request_id, payload.rating, payload.feedback)
    return ReviewOut()
