"""Request dispatcher: creates direct and broadcast service requests."""

import logging
from datetime import UTC, datetime

from sqlalchemy import select

from fieldserve.domain import AssignedTo, RequestStatus, assignment_for, new_id
from fieldserve.errors import ValidationError
from fieldserve.models import Customer, RequestLog, ServiceRequest
from fieldserve.schemas.service_request import RequestCreate, RequestCreated
from fieldserve.services.dual_store import DualStore
from fieldserve.services.identity import CustomerDetails, IdentityResolver, replicate_customer
from fieldserve.services.mirror import (
    REQUEST_LOGS,
    SERVICE_REQUESTS,
    log_record,
    request_record,
)

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 10


def _clean(value: str | None) -> str:
    return (value or "").strip()


class RequestDispatcher:
    """
    Creates service requests in state NEW.

    A direct request names its target worker; a broadcast request leaves the
    assignment open for any worker in the city, unless a worker id is given
    anyway, in which case it is created exactly like a direct request.
    """

    def __init__(self, store: DualStore, identity: IdentityResolver | None = None):
        self.store = store
        self.db = store.db
        self.identity = identity or IdentityResolver(store)

    async def create_direct(self, payload: RequestCreate) -> RequestCreated:
        return await self._create(payload, broadcast=False)

    async def create_broadcast(self, payload: RequestCreate) -> RequestCreated:
        return await self._create(payload, broadcast=True)

    def _validate(self, payload: RequestCreate, broadcast: bool) -> None:
        required = {
            "serviceType": payload.service_type,
            "urgency": payload.urgency,
            "customerName": payload.customer_name,
            "customerPhone": payload.customer_phone,
        }
        if broadcast:
            required["city"] = payload.city
        else:
            required["workerId"] = payload.worker_id

        missing = [name for name, value in required.items() if not _clean(value)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    async def _unused_request_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = new_id("REQ")
            result = await self.db.execute(
                select(ServiceRequest.id).where(ServiceRequest.request_id == candidate)
            )
            if result.first() is None:
                return candidate
        raise RuntimeError("Could not allocate a unique request id")

    async def _create(self, payload: RequestCreate, broadcast: bool) -> RequestCreated:
        self._validate(payload, broadcast)

        details = CustomerDetails(
            phone=_clean(payload.customer_phone),
            email=_clean(payload.customer_email),
            name=_clean(payload.customer_name),
            city=_clean(payload.city),
            pincode=_clean(payload.pincode),
            address=_clean(payload.address),
        )
        assignment = assignment_for(_clean(payload.worker_id) or None)

        async def primary() -> tuple[Customer, ServiceRequest, RequestLog]:
            customer = await self.identity.resolve_in_session(details)
            now = datetime.now(UTC)

            request = ServiceRequest(
                request_id=await self._unused_request_id(),
                customer_id=customer.customer_id,
                worker_id=assignment.worker_id,
                service_type=_clean(payload.service_type),
                urgency=_clean(payload.urgency),
                status=RequestStatus.NEW.value,
                preferred_date=_clean(payload.preferred_date),
                preferred_slot=_clean(payload.preferred_slot),
                description=_clean(payload.issue_detail),
                city=details.city or customer.city,
                pincode=details.pincode or customer.pincode,
                address=details.address or customer.address,
                latitude=payload.lat,
                longitude=payload.lng,
                customer_name=customer.name,
                customer_phone=customer.phone,
                customer_address=customer.address,
                customer_city=customer.city,
                created_at=now,
            )
            self.db.add(request)

            if isinstance(assignment, AssignedTo):
                description = f"Request created for {assignment.worker_id}"
            else:
                description = "Broadcast request created"
            log = RequestLog(
                request_id=request.request_id,
                status=RequestStatus.NEW.value,
                description=description,
                created_at=now,
            )
            self.db.add(log)
            await self.db.flush()
            return customer, request, log

        customer, request, log = await self.store.write(
            primary, label="create service request"
        )
        logger.info(
            f"Created request {request.request_id} for {customer.customer_id} "
            f"({'broadcast' if request.worker_id is None else request.worker_id})"
        )

        await self.store.replicate(
            lambda mirror: replicate_customer(mirror, customer), label="replicate customer"
        )
        await self.store.replicate(
            lambda mirror: mirror.insert(SERVICE_REQUESTS, request_record(request)),
            label="replicate service request",
        )
        await self.store.replicate(
            lambda mirror: mirror.insert(REQUEST_LOGS, log_record(log)),
            label="replicate request log",
        )

        return RequestCreated(
            request_id=request.request_id,
            customer_id=customer.customer_id,
            message=(
                "Broadcast request created successfully"
                if request.worker_id is None
                else "Service request created successfully"
            ),
        )
