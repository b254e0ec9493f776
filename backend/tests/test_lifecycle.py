"""Tests for the request lifecycle state machine."""

import asyncio
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fieldserve.database import Base
from fieldserve.domain import RequestStatus, TransitionAction
from fieldserve.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fieldserve.models import RequestLog, ServiceRequest
from fieldserve.services.dual_store import DualStore
from fieldserve.services.lifecycle import LifecycleStateMachine, transition_allowed
from fieldserve.services.mirror import MirrorStore

from conftest import FakeSheetsClient, use_immediate_transactions


async def _current(db_session, request_id: str) -> ServiceRequest:
    result = await db_session.execute(
        select(ServiceRequest)
        .where(ServiceRequest.request_id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _log_count(db_session, request_id: str) -> int:
    result = await db_session.execute(
        select(func.count(RequestLog.id)).where(RequestLog.request_id == request_id)
    )
    return result.scalar()


async def _accept(machine: LifecycleStateMachine, request_id: str, worker_id: str):
    return await machine.transition(
        request_id,
        worker_id,
        "accept",
        actor_name=f"Worker {worker_id}",
        actor_phone="9876543210",
        actor_city="Delhi",
    )


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_broadcast(self, store, db_session, seed_request, fake_sheets):
        await seed_request("REQ-1")

        status = await _accept(LifecycleStateMachine(store), "REQ-1", "ELEC-1")

        assert status is RequestStatus.ACCEPTED
        request = await _current(db_session, "REQ-1")
        assert request.status == "ACCEPTED"
        assert request.worker_id == "ELEC-1"
        assert request.worker_name == "Worker ELEC-1"
        assert request.worker_city == "Delhi"
        assert request.accepted_at is not None
        assert await _log_count(db_session, "REQ-1") == 1

        mirrored = fake_sheets.records("ServiceRequests")[0]
        assert mirrored["Status"] == "ACCEPTED"
        assert mirrored["ElectricianID"] == "ELEC-1"
        assert fake_sheets.records("RequestLogs")[0]["Description"] == "Accepted by ELEC-1"

    @pytest.mark.asyncio
    async def test_snapshot_gaps_filled_from_directory(self, store, db_session, seed_request, seed_worker):
        await seed_worker("ELEC-1", name="Ravi Kumar", phone="9876543210", city="Noida")
        await seed_request("REQ-1")

        await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "accept")

        request = await _current(db_session, "REQ-1")
        assert request.worker_name == "Ravi Kumar"
        assert request.worker_phone == "9876543210"
        assert request.worker_city == "Noida"

    @pytest.mark.asyncio
    async def test_second_accept_conflicts(self, store, db_session, seed_request):
        await seed_request("REQ-1")
        machine = LifecycleStateMachine(store)
        await _accept(machine, "REQ-1", "ELEC-1")

        with pytest.raises(ConflictError):
            await _accept(machine, "REQ-1", "ELEC-2")

        request = await _current(db_session, "REQ-1")
        assert request.worker_id == "ELEC-1"
        assert request.worker_name == "Worker ELEC-1"
        assert await _log_count(db_session, "REQ-1") == 1

    @pytest.mark.asyncio
    async def test_direct_request_for_another_worker(self, store, db_session, seed_request):
        await seed_request("REQ-1", worker_id="ELEC-1")

        with pytest.raises(AuthorizationError) as exc_info:
            await _accept(LifecycleStateMachine(store), "REQ-1", "ELEC-2")

        assert exc_info.value.status_code == 403
        assert (await _current(db_session, "REQ-1")).status == "NEW"

    @pytest.mark.asyncio
    async def test_accept_own_direct_request(self, store, seed_request):
        await seed_request("REQ-1", worker_id="ELEC-1")

        assert await _accept(LifecycleStateMachine(store), "REQ-1", "ELEC-1") is RequestStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_mirror_outage_keeps_transition(self, store, db_session, seed_request, fake_sheets):
        await seed_request("REQ-1")
        fake_sheets.fail = True

        await _accept(LifecycleStateMachine(store), "REQ-1", "ELEC-1")

        assert (await _current(db_session, "REQ-1")).status == "ACCEPTED"


class TestWorkerActions:
    @pytest.mark.asyncio
    async def test_complete(self, store, db_session, seed_request):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        status = await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "complete")

        assert status is RequestStatus.SUCCESS
        request = await _current(db_session, "REQ-1")
        assert request.status == "SUCCESS"
        assert request.completed_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["complete", "cancel", "decline"])
    async def test_other_worker_cannot_act(self, store, db_session, seed_request, action):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        with pytest.raises(AuthorizationError):
            await LifecycleStateMachine(store).transition("REQ-1", "ELEC-2", action)

        request = await _current(db_session, "REQ-1")
        assert request.status == "ACCEPTED"
        assert request.worker_id == "ELEC-1"
        assert request.completed_at is None
        assert await _log_count(db_session, "REQ-1") == 0

    @pytest.mark.asyncio
    async def test_complete_before_accept(self, store, seed_request):
        await seed_request("REQ-1", worker_id="ELEC-1")

        with pytest.raises(ConflictError):
            await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "complete")

    @pytest.mark.asyncio
    async def test_cancel_accepted(self, store, db_session, seed_request):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        status = await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "cancel")

        assert status is RequestStatus.CANCELLED
        assert (await _current(db_session, "REQ-1")).status == "CANCELLED"

    @pytest.mark.asyncio
    async def test_decline_direct_request(self, store, db_session, seed_request):
        await seed_request("REQ-1", worker_id="ELEC-1")

        status = await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "decline")

        assert status is RequestStatus.CANCELLED
        assert await _log_count(db_session, "REQ-1") == 1

    @pytest.mark.asyncio
    async def test_decline_accepted_request(self, store, db_session, seed_request, fake_sheets):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        status = await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "decline")

        assert status is RequestStatus.CANCELLED
        request = await _current(db_session, "REQ-1")
        assert request.status == "CANCELLED"
        assert request.worker_id == "ELEC-1"
        assert await _log_count(db_session, "REQ-1") == 1
        assert fake_sheets.records("RequestLogs")[-1]["Description"] == "Declined by ELEC-1"

    @pytest.mark.asyncio
    async def test_decline_broadcast_request(self, store, db_session, seed_request):
        await seed_request("REQ-1")

        with pytest.raises(ConflictError) as exc_info:
            await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "decline")

        assert "accepted" in exc_info.value.detail
        assert (await _current(db_session, "REQ-1")).status == "NEW"

    @pytest.mark.asyncio
    async def test_terminal_request_rejects_actions(self, store, seed_request):
        await seed_request("REQ-1", status="CANCELLED", worker_id="ELEC-1")

        with pytest.raises(ConflictError) as exc_info:
            await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "complete")

        assert exc_info.value.detail == "Request is already CANCELLED"

    @pytest.mark.asyncio
    async def test_invalid_action(self, store, seed_request):
        await seed_request("REQ-1")

        with pytest.raises(ValidationError) as exc_info:
            await LifecycleStateMachine(store).transition("REQ-1", "ELEC-1", "approve")

        assert "Invalid action" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_missing_fields(self, store):
        with pytest.raises(ValidationError):
            await LifecycleStateMachine(store).transition("REQ-1", "", "accept")

    @pytest.mark.asyncio
    async def test_unknown_request(self, store):
        with pytest.raises(NotFoundError):
            await _accept(LifecycleStateMachine(store), "REQ-404", "ELEC-1")


class TestCustomerActions:
    @pytest.mark.asyncio
    async def test_mark_paid(self, store, db_session, seed_request, fake_sheets):
        await seed_request("REQ-1", status="SUCCESS", worker_id="ELEC-1")

        status = await LifecycleStateMachine(store).mark_paid("REQ-1")

        assert status is RequestStatus.PAID
        assert (await _current(db_session, "REQ-1")).status == "PAID"
        assert fake_sheets.records("RequestLogs")[0]["Status"] == "PAID"

    @pytest.mark.asyncio
    async def test_mark_paid_requires_success(self, store, seed_request):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        with pytest.raises(ConflictError):
            await LifecycleStateMachine(store).mark_paid("REQ-1")

    @pytest.mark.asyncio
    async def test_review(self, store, db_session, seed_request, fake_sheets):
        await seed_request("REQ-1", status="PAID", worker_id="ELEC-1")

        await LifecycleStateMachine(store).review("REQ-1", 5, "  Quick and tidy ")

        request = await _current(db_session, "REQ-1")
        assert request.rating == 5
        assert request.feedback == "Quick and tidy"
        assert request.status == "PAID"
        assert await _log_count(db_session, "REQ-1") == 0
        assert fake_sheets.records("ServiceRequests")[0]["Rating"] == "5"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_review_rating_range(self, store, seed_request, rating):
        await seed_request("REQ-1", status="SUCCESS", worker_id="ELEC-1")

        with pytest.raises(ValidationError):
            await LifecycleStateMachine(store).review("REQ-1", rating)

    @pytest.mark.asyncio
    async def test_review_open_request(self, store, seed_request):
        await seed_request("REQ-1")

        with pytest.raises(ConflictError):
            await LifecycleStateMachine(store).review("REQ-1", 4)


class TestTransitionAllowed:
    @pytest.mark.parametrize(
        "current,action,expected",
        [
            ("NEW", "accept", True),
            ("NEW", "complete", False),
            ("ACCEPTED", "complete", True),
            ("ACCEPTED", "decline", True),
            ("SUCCESS", "decline", False),
            ("SUCCESS", "cancel", False),
            ("CANCELLED", "accept", False),
        ],
    )
    def test_table(self, current, action, expected):
        assert transition_allowed(RequestStatus(current), TransitionAction(action)) is expected


class TestConcurrentAccept:
    """Two workers racing on separate connections to one database file."""

    @pytest_asyncio.fixture
    async def file_engine(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        use_immediate_transactions(engine)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_exactly_one_worker_wins(self, file_engine):
        sessions = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
        sheets = FakeSheetsClient()

        async with sessions() as setup:
            setup.add(
                ServiceRequest(
                    request_id="REQ-RACE",
                    customer_id="CUST-1",
                    service_type="wiring",
                    status="NEW",
                    city="Delhi",
                    created_at=datetime.now(UTC),
                )
            )
            await setup.commit()

        async with sessions() as first, sessions() as second:
            machines = [
                LifecycleStateMachine(DualStore(session, MirrorStore(client=sheets), timeout=10.0))
                for session in (first, second)
            ]
            outcomes = await asyncio.gather(
                _accept(machines[0], "REQ-RACE", "ELEC-1"),
                _accept(machines[1], "REQ-RACE", "ELEC-2"),
                return_exceptions=True,
            )

        winners = [o for o in outcomes if o is RequestStatus.ACCEPTED]
        losers = [o for o in outcomes if isinstance(o, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1

        async with sessions() as check:
            request = await _current(check, "REQ-RACE")
            assert request.status == "ACCEPTED"
            assert request.worker_id in ("ELEC-1", "ELEC-2")
            assert await _log_count(check, "REQ-RACE") == 1
