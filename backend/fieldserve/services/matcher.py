"""Availability matcher: open requests a worker may claim."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_, select

from fieldserve.domain import AssignedTo, RequestStatus
from fieldserve.errors import ValidationError
from fieldserve.models import Customer, ServiceRequest
from fieldserve.schemas.service_request import AvailableRequestOut
from fieldserve.services.dual_store import DualStore
from fieldserve.services.mirror import (
    CUSTOMERS,
    SERVICE_REQUESTS,
    MirrorCustomer,
    MirrorServiceRequest,
    MirrorStore,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def city_matches(request_city: str | None, query_city: str | None) -> bool:
    """
    Tolerant city match: case-insensitive equality or substring either way.

    "Delhi" matches "New Delhi" and "New Delhi NCR"; an empty city on
    either side never matches.
    """
    target = (request_city or "").strip().lower()
    query = (query_city or "").strip().lower()
    if not target or not query:
        return False
    return target == query or query in target or target in query


def _available(
    request: Any,
    customer: Any | None,
    city: str,
    worker_id: str | None,
) -> AvailableRequestOut | None:
    """Shape one candidate, or None if this worker should not see it."""
    assignment = request.assignment
    is_direct = isinstance(assignment, AssignedTo)
    if is_direct and not (worker_id and assignment.allows(worker_id)):
        return None

    effective_city = request.city or (customer.city if customer else "")
    if not is_direct and not city_matches(effective_city, city):
        return None

    customer_name = request.customer_name or (customer.name if customer else "")
    return AvailableRequestOut(
        request_id=request.request_id,
        customer_id=request.customer_id,
        service_type=request.service_type,
        status=request.status,
        timestamp=request.created_at,
        urgency=request.urgency or "Normal",
        preferred_date=request.preferred_date or "",
        preferred_slot=request.preferred_slot or "",
        description=request.description or "",
        customer_name=customer_name or "Unknown",
        customer_city=effective_city or "",
        is_direct=is_direct,
    )


def _newest_first(requests: list[AvailableRequestOut]) -> list[AvailableRequestOut]:
    return sorted(requests, key=lambda r: r.timestamp or _EPOCH, reverse=True)


class AvailabilityMatcher:
    """Lists NEW requests that are broadcast in a worker's city or addressed to them."""

    def __init__(self, store: DualStore):
        self.store = store
        self.db = store.db

    async def available_requests(
        self,
        city: str | None,
        worker_id: str | None = None,
    ) -> list[AvailableRequestOut]:
        if not city or not city.strip():
            raise ValidationError("City required")
        worker_id = (worker_id or "").strip() or None

        async def primary() -> list[AvailableRequestOut]:
            open_to_worker = ServiceRequest.worker_id.is_(None)
            if worker_id:
                open_to_worker = or_(open_to_worker, ServiceRequest.worker_id == worker_id)

            query = (
                select(ServiceRequest, Customer)
                .outerjoin(Customer, Customer.customer_id == ServiceRequest.customer_id)
                .where(ServiceRequest.status == RequestStatus.NEW.value)
                .where(open_to_worker)
                .order_by(ServiceRequest.created_at.desc())
            )
            result = await self.db.execute(query)

            matches = []
            for request, customer in result.all():
                shaped = _available(request, customer, city, worker_id)
                if shaped is not None:
                    matches.append(shaped)
            return matches

        async def fallback(mirror: MirrorStore) -> list[AvailableRequestOut]:
            customers = {}
            for record in await mirror.records(CUSTOMERS):
                customer = MirrorCustomer.from_record(record)
                if customer.customer_id:
                    customers[customer.customer_id] = customer

            matches = []
            for record in await mirror.records(SERVICE_REQUESTS):
                request = MirrorServiceRequest.from_record(record)
                if not request.request_id or request.status != RequestStatus.NEW.value:
                    continue
                shaped = _available(request, customers.get(request.customer_id), city, worker_id)
                if shaped is not None:
                    matches.append(shaped)
            return _newest_first(matches)

        requests = await self.store.read(primary, fallback, label="fetch available requests")
        logger.debug(f"{len(requests)} available requests for city={city} worker={worker_id}")
        return requests
