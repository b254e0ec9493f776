"""
Lifecycle state machine for service requests.

Every transition is a single conditional UPDATE whose WHERE clause carries
the whole guard (expected status and assignment). The affected row count
decides the outcome, so two workers racing to accept the same broadcast
request cannot both win, whichever process they run in. A transition that
affects no row re-reads the request only to explain the failure.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select, update

from fieldserve.domain import (
    ACTION_SOURCES,
    ACTION_TARGET,
    RequestStatus,
    TransitionAction,
    Unassigned,
    can_transition,
    is_terminal,
)
from fieldserve.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fieldserve.models import RequestLog, ServiceRequest
from fieldserve.services.directory import find_worker
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import (
    REQUEST_LOGS,
    SERVICE_REQUESTS,
    MirrorStore,
    log_record,
    request_record,
)

logger = logging.getLogger(__name__)

LOG_VERBS = {
    TransitionAction.ACCEPT: "Accepted",
    TransitionAction.DECLINE: "Declined",
    TransitionAction.COMPLETE: "Completed",
    TransitionAction.CANCEL: "Cancelled",
}

REVIEWABLE = (RequestStatus.SUCCESS.value, RequestStatus.PAID.value)


@dataclass
class ActorDetails:
    """Worker snapshot copied onto a request when it is accepted."""

    name: str | None = None
    phone: str | None = None
    city: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.name and self.phone and self.city)


def parse_action(action: str | None) -> TransitionAction:
    try:
        return TransitionAction((action or "").strip().lower())
    except ValueError:
        raise ValidationError(
            "Invalid action. Use: accept, decline, complete, or cancel"
        ) from None


class LifecycleStateMachine:
    """Applies worker and customer actions to service requests."""

    def __init__(self, store: DualStore):
        self.store = store
        self.db = store.db

    # ------------------------------------------------------------------
    # Worker actions
    # ------------------------------------------------------------------

    async def transition(
        self,
        request_id: str | None,
        actor_id: str | None,
        action: str | None,
        actor_name: str | None = None,
        actor_phone: str | None = None,
        actor_city: str | None = None,
    ) -> RequestStatus:
        """
        Apply ``action`` by worker ``actor_id``; returns the new status.

        Raises:
            ValidationError: missing fields or unknown action
            NotFoundError: no such request
            ConflictError: the request is not in a state this action applies to
            AuthorizationError: the request is assigned to another worker
        """
        request_id = (request_id or "").strip()
        actor_id = (actor_id or "").strip()
        if not request_id or not actor_id or not action:
            raise ValidationError("Missing required fields")
        parsed = parse_action(action)
        target = ACTION_TARGET[parsed]

        values: dict[str, Any] = {"status": target.value}
        now = datetime.now(UTC)
        if parsed is TransitionAction.ACCEPT:
            actor = await self._actor_details(
                actor_id, ActorDetails(actor_name, actor_phone, actor_city)
            )
            values.update(
                worker_id=actor_id,
                worker_name=actor.name,
                worker_phone=actor.phone,
                worker_city=actor.city,
                accepted_at=now,
            )
        elif parsed is TransitionAction.COMPLETE:
            values["completed_at"] = now

        if parsed is TransitionAction.ACCEPT:
            owned = or_(ServiceRequest.worker_id.is_(None), ServiceRequest.worker_id == actor_id)
        else:
            owned = ServiceRequest.worker_id == actor_id

        guard = [
            ServiceRequest.status.in_([s.value for s in ACTION_SOURCES[parsed]]),
            owned,
        ]

        await self._apply(
            request_id,
            guard,
            values,
            log_description=f"{LOG_VERBS[parsed]} by {actor_id}",
            on_miss=lambda request: self._explain(request, parsed, actor_id),
            label=f"{parsed.value} request",
        )
        logger.info(f"Request {request_id}: {parsed.value} by {actor_id} -> {target.value}")
        return target

    async def _actor_details(self, actor_id: str, given: ActorDetails) -> ActorDetails:
        """Payload values first, gaps filled from the worker directory."""
        if given.complete:
            return given
        worker = await find_worker(self.store, actor_id)
        if worker is None:
            return given
        return ActorDetails(
            name=given.name or worker.name,
            phone=given.phone or worker.phone,
            city=given.city or worker.city,
        )

    def _explain(self, request: ServiceRequest, action: TransitionAction, actor_id: str) -> None:
        """Raise the error describing why the guarded UPDATE matched nothing."""
        status = request.request_status
        assignment = request.assignment

        if action is TransitionAction.ACCEPT:
            # A lost accept race shows up here as status != NEW
            if status is not RequestStatus.NEW:
                raise ConflictError("Request is no longer available")
            if not assignment.allows(actor_id):
                raise AuthorizationError("Request does not belong to this electrician")
        else:
            if isinstance(assignment, Unassigned):
                raise ConflictError("Broadcast requests can only be accepted")
            if not assignment.allows(actor_id):
                raise AuthorizationError("Request does not belong to this electrician")
            if is_terminal(status):
                raise ConflictError(f"Request is already {status.value}")
            if not transition_allowed(status, action):
                raise ConflictError(
                    f"Cannot {action.value} a request in status {status.value}"
                )

        raise ConflictError("Request was modified concurrently, please retry")

    # ------------------------------------------------------------------
    # Customer actions
    # ------------------------------------------------------------------

    async def mark_paid(self, request_id: str | None) -> RequestStatus:
        """SUCCESS -> PAID. Records the status only; no payment is processed."""
        request_id = (request_id or "").strip()
        if not request_id:
            raise ValidationError("Missing requestId")

        def on_miss(request: ServiceRequest) -> None:
            raise ConflictError(f"Cannot pay for a request in status {request.status}")

        await self._apply(
            request_id,
            [ServiceRequest.status == RequestStatus.SUCCESS.value],
            {"status": RequestStatus.PAID.value},
            log_description="Payment recorded",
            on_miss=on_miss,
            label="record payment",
        )
        logger.info(f"Request {request_id}: payment recorded")
        return RequestStatus.PAID

    async def review(
        self,
        request_id: str | None,
        rating: int | None,
        feedback: str | None = None,
    ) -> None:
        """Attach a 1-5 rating (and optional feedback) to a finished request."""
        request_id = (request_id or "").strip()
        if not request_id or rating is None:
            raise ValidationError("Request ID and rating are required")
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        values: dict[str, Any] = {"rating": rating}
        if feedback and feedback.strip():
            values["feedback"] = feedback.strip()

        def on_miss(request: ServiceRequest) -> None:
            raise ConflictError("Only completed requests can be reviewed")

        await self._apply(
            request_id,
            [ServiceRequest.status.in_(REVIEWABLE)],
            values,
            log_description=None,
            on_miss=on_miss,
            label="submit review",
        )
        logger.info(f"Request {request_id}: rated {rating}")

    # ------------------------------------------------------------------
    # Shared write path
    # ------------------------------------------------------------------

    async def _apply(
        self,
        request_id: str,
        guard: list[Any],
        values: dict[str, Any],
        *,
        log_description: str | None,
        on_miss: Callable[[ServiceRequest], None],
        label: str,
    ) -> None:
        new_status = values.get("status")
        now = datetime.now(UTC)

        async def primary() -> tuple[ServiceRequest, RequestLog | None]:
            result = await self.db.execute(
                update(ServiceRequest)
                .where(ServiceRequest.request_id == request_id, *guard)
                .values(**values, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            current = await self._load(request_id)
            if result.rowcount != 1:
                if current is None:
                    raise NotFoundError("Request not found")
                on_miss(current)
                raise ConflictError("Request was modified concurrently, please retry")

            log = None
            if log_description is not None:
                log = RequestLog(
                    request_id=request_id,
                    status=new_status,
                    description=log_description,
                    created_at=now,
                )
                self.db.add(log)
                await self.db.flush()
            return current, log

        request, log = await self.store.write(primary, label=label)

        await self.store.replicate(
            lambda mirror: _replicate_request(mirror, request),
            label=f"replicate {label}",
        )
        if log is not None:
            await self.store.replicate(
                lambda mirror: mirror.insert(REQUEST_LOGS, log_record(log)),
                label="replicate request log",
            )

    async def _load(self, request_id: str) -> ServiceRequest | None:
        result = await self.db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


async def _replicate_request(mirror: MirrorStore, request: ServiceRequest) -> None:
    """Push the post-transition row to the mirror, adding it if it is missing."""
    await mirror.upsert(SERVICE_REQUESTS, request_record(request))


def transition_allowed(current: RequestStatus, action: TransitionAction) -> bool:
    """Whether ``action`` may be taken from ``current`` under the lifecycle table."""
    return current in ACTION_SOURCES[action] and can_transition(current, ACTION_TARGET[action])
