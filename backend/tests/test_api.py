"""Tests for API endpoints."""

import pytest

from fieldserve.config import Settings
from fieldserve.routers import admin


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_endpoint(self, client, seed_request):
        """Test health endpoint returns status and store counts."""
        await seed_request("REQ-1")

        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["mirror_enabled"] is True
        assert data["counts"]["service_requests"] == 1
        assert data["counts"]["open_requests"] == 1
        assert data["sync"] == {}

    @pytest.mark.asyncio
    async def test_readiness_and_liveness(self, client):
        assert (await client.get("/ready")).json()["status"] == "ready"
        assert (await client.get("/live")).json()["status"] == "alive"


class TestRootEndpoint:
    """Tests for root endpoint."""

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client):
        """Test root endpoint returns API info."""
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Field Service Dispatch API"
        assert "version" in data
        assert "docs" in data


class TestDispatchFlow:
    """Broadcast, discovery and first-come-first-served accept over HTTP."""

    @pytest.mark.asyncio
    async def test_broadcast_accept_race(self, client, broadcast_payload, fake_sheets):
        response = await client.post("/requests/broadcast", json=broadcast_payload)
        assert response.status_code == 200
        created = response.json()
        assert created["success"] is True
        request_id = created["requestId"]
        assert created["customerId"].startswith("CUST-")

        response = await client.get(
            "/workers/ELEC-1/available-requests", params={"city": "TestCity"}
        )
        assert response.status_code == 200
        board = response.json()["requests"]
        assert [r["requestId"] for r in board] == [request_id]
        assert board[0]["isDirect"] is False
        assert board[0]["status"] == "NEW"

        response = await client.post(
            f"/requests/{request_id}/transition",
            json={"requestId": request_id, "actorId": "ELEC-1", "action": "accept",
                  "actorName": "Ravi", "actorPhone": "9876543210", "actorCity": "TestCity"},
        )
        assert response.status_code == 200
        assert response.json()["newStatus"] == "ACCEPTED"

        response = await client.post(
            f"/requests/{request_id}/transition",
            json={"actorId": "ELEC-2", "action": "accept",
                  "actorName": "Sunil", "actorPhone": "9876500000", "actorCity": "TestCity"},
        )
        assert response.status_code == 409
        assert response.json()["success"] is False
        assert "error" in response.json()

        assert fake_sheets.records("ServiceRequests")[0]["ElectricianID"] == "ELEC-1"

        response = await client.get(f"/requests/{request_id}")
        detail = response.json()
        assert detail["request"]["status"] == "ACCEPTED"
        assert detail["worker"]["workerId"] == "ELEC-1"
        assert [entry["status"] for entry in detail["timeline"]] == ["NEW", "ACCEPTED"]

    @pytest.mark.asyncio
    async def test_direct_request_on_board(self, client, broadcast_payload):
        broadcast_payload["workerId"] = "ELEC-7"
        broadcast_payload["city"] = "Elsewhere"
        response = await client.post("/requests", json=broadcast_payload)
        request_id = response.json()["requestId"]

        response = await client.get(
            "/workers/ELEC-7/available-requests", params={"city": "TestCity"}
        )
        board = response.json()["requests"]
        assert [r["requestId"] for r in board] == [request_id]
        assert board[0]["isDirect"] is True

    @pytest.mark.asyncio
    async def test_complete_pay_review(self, client, seed_request):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        response = await client.post(
            "/requests/REQ-1/transition", json={"actorId": "ELEC-1", "action": "complete"}
        )
        assert response.json()["newStatus"] == "SUCCESS"

        response = await client.post("/requests/REQ-1/pay")
        assert response.json()["newStatus"] == "PAID"

        response = await client.post("/requests/REQ-1/review", json={"rating": 5, "feedback": "Great"})
        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_missing_field_is_400(self, client, broadcast_payload):
        del broadcast_payload["serviceType"]

        response = await client.post("/requests/broadcast", json=broadcast_payload)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing required fields: serviceType",
        }

    @pytest.mark.asyncio
    async def test_mismatched_request_id_is_400(self, client, seed_request):
        await seed_request("REQ-1")

        response = await client.post(
            "/requests/REQ-1/transition",
            json={"requestId": "REQ-2", "actorId": "ELEC-1", "action": "accept"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_action_is_400(self, client, seed_request):
        await seed_request("REQ-1")

        response = await client.post(
            "/requests/REQ-1/transition", json={"actorId": "ELEC-1", "action": "approve"}
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid action")

    @pytest.mark.asyncio
    async def test_other_workers_request_is_403(self, client, seed_request):
        await seed_request("REQ-1", status="ACCEPTED", worker_id="ELEC-1")

        for action in ("complete", "cancel"):
            response = await client.post(
                "/requests/REQ-1/transition", json={"actorId": "ELEC-2", "action": action}
            )
            assert response.status_code == 403
            assert response.json()["success"] is False

        request = (await client.get("/requests/REQ-1")).json()["request"]
        assert request["status"] == "ACCEPTED"
        assert request["workerId"] == "ELEC-1"

    @pytest.mark.asyncio
    async def test_unknown_request_is_404(self, client):
        response = await client.get("/requests/REQ-404")

        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_city_required_on_board(self, client):
        response = await client.get("/workers/ELEC-1/available-requests")

        assert response.status_code == 400
        assert response.json()["error"] == "City required"


class TestCustomerEndpoints:
    @pytest.mark.asyncio
    async def test_profile_round_trip(self, client):
        response = await client.post(
            "/customers/profile",
            json={"phone": "+919998887776", "name": "Asha", "city": "Delhi"},
        )
        assert response.status_code == 200
        customer_id = response.json()["customerId"]

        response = await client.get("/customers/profile", params={"phone": "9998887776"})

        assert response.status_code == 200
        customer = response.json()["customer"]
        assert customer["customerId"] == customer_id
        assert customer["city"] == "Delhi"

    @pytest.mark.asyncio
    async def test_unknown_profile_is_404(self, client):
        response = await client.get("/customers/profile", params={"phone": "1112223334"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_active_request_and_history(self, client, broadcast_payload):
        response = await client.post("/requests/broadcast", json=broadcast_payload)
        created = response.json()

        response = await client.get(
            "/customers/active-request", params={"customerId": created["customerId"]}
        )
        assert response.json()["activeRequest"]["requestId"] == created["requestId"]

        response = await client.get("/customers/history", params={"phone": "+919998887776"})
        history = response.json()["serviceRequests"]
        assert [entry["requestId"] for entry in history] == [created["requestId"]]

    @pytest.mark.asyncio
    async def test_no_active_request(self, client):
        response = await client.get("/customers/active-request", params={"customerId": "CUST-1"})

        assert response.status_code == 200
        assert response.json()["activeRequest"] is None

    @pytest.mark.asyncio
    async def test_history_requires_identifier(self, client):
        response = await client.get("/customers/history")

        assert response.status_code == 400


class TestAdminSync:
    @pytest.mark.asyncio
    async def test_bad_secret(self, client):
        response = await client.post("/admin/sync", params={"secret": "wrong"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_sync_runs(self, client, fake_sheets, monkeypatch):
        monkeypatch.setattr(admin.settings, "admin_sync_secret", "test-secret")
        fake_sheets.tabs["Electricians"] = [
            ["ElectricianID", "NameAsPerAadhaar", "City", "Status"],
            ["ELEC-1", "Ravi", "Delhi", "VERIFIED"],
        ]

        response = await client.post("/admin/sync", params={"secret": "test-secret"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["workers"]["synced"] == 1
        assert results["workers"]["verified_synced"] == 1
        assert results["users"]["processed"] == 0

    @pytest.mark.asyncio
    async def test_unconfigured_secret_rejects_every_call(self, client, monkeypatch):
        monkeypatch.setattr(admin.settings, "admin_sync_secret", "")

        for secret in ("", "change-me", "anything"):
            response = await client.post("/admin/sync", params={"secret": secret})
            assert response.status_code == 401

    def test_secret_defaults_to_empty(self):
        assert Settings.model_fields["admin_sync_secret"].default == ""
