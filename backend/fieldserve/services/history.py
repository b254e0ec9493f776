"""Read-side views: request detail, a customer's active request and history."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import or_, select

from fieldserve.config import get_settings
from fieldserve.domain import RequestStatus
from fieldserve.errors import NotFoundError, ValidationError
from fieldserve.models import Customer, RequestLog, ServiceRequest, Worker
from fieldserve.schemas.customer import CustomerOut
from fieldserve.schemas.service_request import (
    ActiveRequestOut,
    HistoryEntry,
    RequestDetail,
    RequestOut,
    TimelineEntry,
    WorkerSummary,
)
from fieldserve.services.dual_store import DualStore
from fieldserve.services.identity import phone_variants
from fieldserve.services.mirror import (
    CUSTOMERS,
    REQUEST_LOGS,
    SERVICE_REQUESTS,
    WORKERS,
    MirrorCustomer,
    MirrorRequestLog,
    MirrorServiceRequest,
    MirrorStore,
    MirrorWorker,
)

logger = logging.getLogger(__name__)
settings = get_settings()

ACTIVE_STATUSES = (
    RequestStatus.NEW.value,
    RequestStatus.ACCEPTED.value,
    RequestStatus.SUCCESS.value,
)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _recency(request: Any) -> datetime:
    return as_utc(request.created_at) or _EPOCH


def _worker_summary(request: Any, worker: Any | None) -> WorkerSummary | None:
    """Snapshot on the request first, directory entry for the gaps."""
    if not request.worker_id:
        return None
    return WorkerSummary(
        worker_id=request.worker_id,
        name=request.worker_name or (worker.name if worker else None),
        phone=request.worker_phone or (worker.phone if worker else None),
        city=request.worker_city or (worker.city if worker else None),
    )


def build_detail(
    request: Any,
    customer: Any | None,
    worker: Any | None,
    logs: list[Any],
) -> RequestDetail:
    """Assemble the detail view from ORM objects or mirror rows alike."""
    return RequestDetail(
        request=RequestOut.model_validate(request),
        customer=CustomerOut.model_validate(customer) if customer else None,
        worker=_worker_summary(request, worker),
        timeline=[
            TimelineEntry.model_validate(log)
            for log in sorted(logs, key=lambda log: as_utc(log.created_at) or _EPOCH)
        ],
    )


def _active_entry(request: Any) -> ActiveRequestOut:
    return ActiveRequestOut(
        request_id=request.request_id,
        customer_id=request.customer_id,
        worker_id=request.worker_id,
        service_type=request.service_type,
        status=request.status,
        timestamp=request.created_at,
    )


def is_hidden_from_history(request: Any, now: datetime, hide_after: timedelta) -> bool:
    """Completed requests drop out of the history list after a grace period."""
    if request.status != RequestStatus.SUCCESS.value:
        return False
    completed_at = as_utc(request.completed_at)
    return completed_at is not None and completed_at < now - hide_after


def _history_entry(request: Any, worker_names: dict[str, str]) -> HistoryEntry:
    worker_name = None
    if request.worker_id:
        worker_name = (
            request.worker_name or worker_names.get(request.worker_id) or request.worker_id
        )
    return HistoryEntry(
        request_id=request.request_id,
        worker_id=request.worker_id,
        worker_name=worker_name,
        service_type=request.service_type,
        status=request.status,
        preferred_date=request.preferred_date or "",
        preferred_slot=request.preferred_slot or "",
        timestamp=request.created_at,
        rating=request.rating,
    )


class HistoryReader:
    """Read-only views over requests, answered by either store."""

    def __init__(
        self,
        store: DualStore,
        hide_completed_after: timedelta | None = None,
    ):
        self.store = store
        self.db = store.db
        self.hide_completed_after = hide_completed_after or timedelta(
            minutes=settings.history_hide_completed_after_minutes
        )

    async def request_detail(self, request_id: str) -> RequestDetail:
        """Request with its customer, worker and status timeline."""
        if not request_id:
            raise ValidationError("Request ID is required")

        async def primary() -> RequestDetail | None:
            result = await self.db.execute(
                select(ServiceRequest).where(ServiceRequest.request_id == request_id)
            )
            request = result.scalar_one_or_none()
            if request is None:
                return None

            result = await self.db.execute(
                select(Customer).where(Customer.customer_id == request.customer_id)
            )
            customer = result.scalar_one_or_none()

            worker = None
            if request.worker_id and not request.worker_name:
                result = await self.db.execute(
                    select(Worker).where(Worker.worker_id == request.worker_id)
                )
                worker = result.scalar_one_or_none()

            result = await self.db.execute(
                select(RequestLog)
                .where(RequestLog.request_id == request_id)
                .order_by(RequestLog.created_at, RequestLog.id)
            )
            return build_detail(request, customer, worker, list(result.scalars().all()))

        async def fallback(mirror: MirrorStore) -> RequestDetail | None:
            record = await mirror.get(SERVICE_REQUESTS, request_id)
            if record is None:
                return None
            request = MirrorServiceRequest.from_record(record)

            customer_record = await mirror.get(CUSTOMERS, request.customer_id)
            customer = MirrorCustomer.from_record(customer_record) if customer_record else None

            worker = None
            if request.worker_id and not request.worker_name:
                worker_record = await mirror.get(WORKERS, request.worker_id)
                worker = MirrorWorker.from_record(worker_record) if worker_record else None

            logs = [
                MirrorRequestLog.from_record(r)
                for r in await mirror.records(REQUEST_LOGS)
                if r.get("RequestID") == request_id
            ]
            return build_detail(request, customer, worker, logs)

        detail = await self.store.read(primary, fallback, label="fetch request detail")
        if detail is None:
            raise NotFoundError("Request not found")
        return detail

    async def active_request(self, customer_id: str) -> ActiveRequestOut | None:
        """Most recent request of the customer that is still NEW, ACCEPTED or SUCCESS."""
        if not customer_id:
            raise ValidationError("Customer ID required")

        async def primary() -> ActiveRequestOut | None:
            result = await self.db.execute(
                select(ServiceRequest)
                .where(ServiceRequest.customer_id == customer_id)
                .where(ServiceRequest.status.in_(ACTIVE_STATUSES))
                .order_by(ServiceRequest.created_at.desc())
                .limit(1)
            )
            request = result.scalar_one_or_none()
            return _active_entry(request) if request else None

        async def fallback(mirror: MirrorStore) -> ActiveRequestOut | None:
            candidates = [
                MirrorServiceRequest.from_record(r)
                for r in await mirror.records(SERVICE_REQUESTS)
                if r.get("CustomerID") == customer_id and r.get("Status") in ACTIVE_STATUSES
            ]
            if not candidates:
                return None
            return _active_entry(max(candidates, key=_recency))

        return await self.store.read(primary, fallback, label="fetch active request")

    async def customer_history(
        self,
        phone: str | None,
        email: str | None = None,
    ) -> list[HistoryEntry]:
        """Requests of the customer matching phone (either form) or email, newest first."""
        phone = (phone or "").strip()
        email = (email or "").strip()
        if not phone and not email:
            raise ValidationError("Phone number or email is required")

        phones = phone_variants(phone)
        now = datetime.now(UTC)

        def visible(requests: list[Any]) -> list[Any]:
            kept = [
                r for r in requests
                if not is_hidden_from_history(r, now, self.hide_completed_after)
            ]
            return sorted(kept, key=_recency, reverse=True)

        async def primary() -> list[HistoryEntry]:
            matches = []
            if phones:
                matches.append(Customer.phone.in_(phones))
            if email:
                matches.append(Customer.email == email)
            result = await self.db.execute(select(Customer.customer_id).where(or_(*matches)))
            customer_ids = list(result.scalars().all())
            if not customer_ids:
                return []

            result = await self.db.execute(
                select(ServiceRequest).where(ServiceRequest.customer_id.in_(customer_ids))
            )
            requests = visible(list(result.scalars().all()))

            missing = {r.worker_id for r in requests if r.worker_id and not r.worker_name}
            worker_names = {}
            if missing:
                result = await self.db.execute(
                    select(Worker.worker_id, Worker.name).where(Worker.worker_id.in_(missing))
                )
                worker_names = {wid: name for wid, name in result.all() if name}

            return [_history_entry(r, worker_names) for r in requests]

        async def fallback(mirror: MirrorStore) -> list[HistoryEntry]:
            customer_ids = {
                c.customer_id
                for c in map(MirrorCustomer.from_record, await mirror.records(CUSTOMERS))
                if c.customer_id and ((phones and c.phone in phones) or (email and c.email == email))
            }
            if not customer_ids:
                return []

            requests = visible([
                MirrorServiceRequest.from_record(r)
                for r in await mirror.records(SERVICE_REQUESTS)
                if r.get("CustomerID") in customer_ids
            ])

            worker_names = {}
            if any(r.worker_id and not r.worker_name for r in requests):
                for worker in map(MirrorWorker.from_record, await mirror.records(WORKERS)):
                    if worker.worker_id and worker.name:
                        worker_names[worker.worker_id] = worker.name

            return [_history_entry(r, worker_names) for r in requests]

        return await self.store.read(primary, fallback, label="fetch customer history")

