"""
API endpoint tests.

Exercise the HTTP contract end to end against the in-memory store: status
codes, the error envelope and role checks.
"""
from uuid import uuid4

import pytest
from httpx import AsyncClient

from poolroute.core.rate_limiter import SlidingWindowRateLimiter
from poolroute.main import app

API = "/api/v1"


async def add(client, headers, technician_id, client_id, day="monday"):
    response = await client.post(
        f"{API}/schedule/assignment",
        json={"technician_id": str(technician_id), "client_id": str(client_id), "day_of_week": day},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test basic health check."""
        response = await client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_detailed_health_check(self, client: AsyncClient):
        """Database check runs against the session in use."""
        response = await client.get(f"{API}/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"] == "healthy"
        assert data["status"] == "healthy"


class TestAuthentication:
    """Identity and role checks."""

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client: AsyncClient):
        response = await client.get(f"{API}/routes/today")
        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "AUTHENTICATION_FAILED"
        assert error["request_id"]

    @pytest.mark.asyncio
    async def test_garbage_token_is_401(self, client: AsyncClient):
        response = await client.get(
            f"{API}/routes/today", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_technician_cannot_edit_schedule(self, client: AsyncClient, company, alice_headers):
        response = await client.post(
            f"{API}/schedule/assignment",
            json={
                "technician_id": str(company.alice),
                "client_id": str(company.pool_a),
                "day_of_week": "monday",
            },
            headers=alice_headers,
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_technician_cannot_generate(self, client: AsyncClient, alice_headers):
        response = await client.post(
            f"{API}/routes/generate",
            json={"date_range_start": "2026-10-19"},
            headers=alice_headers,
        )
        assert response.status_code == 403


class TestScheduleEndpoints:
    """Weekly template administration."""

    @pytest.mark.asyncio
    async def test_add_list_and_remove(self, client: AsyncClient, company, admin_headers):
        first = await add(client, admin_headers, company.alice, company.pool_a)
        await add(client, admin_headers, company.alice, company.pool_b)
        assert first["route_order"] == 0
        assert first["state"] == "active"

        response = await client.get(f"{API}/schedule", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_assignments"] == 2
        monday = data["days"][0]
        assert monday["day_of_week"] == "monday"
        assert [c["client_id"] for c in monday["technicians"][0]["clients"]] == [
            str(company.pool_a),
            str(company.pool_b),
        ]

        response = await client.delete(
            f"{API}/schedule/assignment/{first['id']}", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["state"] == "disabled"

        response = await client.get(f"{API}/schedule", headers=admin_headers)
        assert response.json()["total_assignments"] == 1

    @pytest.mark.asyncio
    async def test_day_is_case_insensitive(self, client: AsyncClient, company, admin_headers):
        created = await add(client, admin_headers, company.alice, company.pool_a, day=" Monday ")
        assert created["day_of_week"] == "monday"

    @pytest.mark.asyncio
    async def test_unknown_day_is_400(self, client: AsyncClient, company, admin_headers):
        response = await client.post(
            f"{API}/schedule/assignment",
            json={
                "technician_id": str(company.alice),
                "client_id": str(company.pool_a),
                "day_of_week": "funday",
            },
            headers=admin_headers,
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "day_of_week"

    @pytest.mark.asyncio
    async def test_duplicate_is_409(self, client: AsyncClient, company, admin_headers):
        created = await add(client, admin_headers, company.alice, company.pool_a)

        response = await client.post(
            f"{API}/schedule/assignment",
            json={
                "technician_id": str(company.alice),
                "client_id": str(company.pool_a),
                "day_of_week": "monday",
            },
            headers=admin_headers,
        )
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "DUPLICATE_ASSIGNMENT"
        assert error["details"]["assignment_id"] == created["id"]

    @pytest.mark.asyncio
    async def test_reorder_and_available_clients(self, client: AsyncClient, company, admin_headers):
        a = await add(client, admin_headers, company.alice, company.pool_a)
        b = await add(client, admin_headers, company.alice, company.pool_b)

        response = await client.put(
            f"{API}/schedule/assignment/reorder",
            json={
                "technician_id": str(company.alice),
                "day_of_week": "monday",
                "ordered_ids": [b["id"], a["id"]],
            },
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["items"]] == [b["id"], a["id"]]

        response = await client.get(
            f"{API}/schedule/available-clients", params={"day": "monday"}, headers=admin_headers
        )
        assert response.status_code == 200
        names = [c["name"] for c in response.json()["clients"]]
        assert names == ["Carla Pool", "Dmitri Pool"]

    @pytest.mark.asyncio
    async def test_available_clients_day_is_case_insensitive(self, client: AsyncClient, company, admin_headers):
        """The day query parameter is normalized like request bodies."""
        response = await client.get(
            f"{API}/schedule/available-clients", params={"day": " Monday "}, headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["day_of_week"] == "monday"
        assert data["total"] == 4

    @pytest.mark.asyncio
    async def test_available_clients_unknown_day_is_400(self, client: AsyncClient, company, admin_headers):
        response = await client.get(
            f"{API}/schedule/available-clients", params={"day": "funday"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "day"

    @pytest.mark.asyncio
    async def test_reorder_with_missing_id_is_422(self, client: AsyncClient, company, admin_headers):
        a = await add(client, admin_headers, company.alice, company.pool_a)
        b = await add(client, admin_headers, company.alice, company.pool_b)

        response = await client.put(
            f"{API}/schedule/assignment/reorder",
            json={
                "technician_id": str(company.alice),
                "day_of_week": "monday",
                "ordered_ids": [a["id"]],
            },
            headers=admin_headers,
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "INVALID_ORDER_SET"
        assert error["details"]["missing"] == [b["id"]]


class TestGenerateEndpoint:
    """Route materialization over HTTP."""

    @pytest.mark.asyncio
    async def test_generate_week_is_idempotent(self, client: AsyncClient, company, admin_headers):
        await add(client, admin_headers, company.alice, company.pool_a)
        await add(client, admin_headers, company.bob, company.pool_b, day="wednesday")

        first = await client.post(
            f"{API}/routes/generate", json={"week_start": "2026-10-19"}, headers=admin_headers
        )
        assert first.status_code == 200
        data = first.json()
        assert data["start"] == "2026-10-19"
        assert data["end"] == "2026-10-25"
        assert data["dates"] == 7
        assert data["created"] == 2
        assert data["errors"] == []

        second = await client.post(
            f"{API}/routes/generate", json={"week_start": "2026-10-19"}, headers=admin_headers
        )
        assert second.json()["created"] == 0
        assert second.json()["skipped"] == 2

    @pytest.mark.asyncio
    async def test_inverted_range_is_400(self, client: AsyncClient, admin_headers):
        response = await client.post(
            f"{API}/routes/generate",
            json={"date_range_start": "2026-10-26", "date_range_end": "2026-10-19"},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "date_range_end"

    @pytest.mark.asyncio
    async def test_range_is_required(self, client: AsyncClient, admin_headers):
        response = await client.post(f"{API}/routes/generate", json={}, headers=admin_headers)
        assert response.status_code == 400


class TestDispatchEndpoints:
    """Technician day views and field actions."""

    @pytest.mark.asyncio
    async def test_route_for_date(self, client: AsyncClient, monday_route, alice_headers):
        response = await client.get(f"{API}/routes/2026-10-19", headers=alice_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["route"]["id"] == str(monday_route.id)
        assert [stop["id"] for stop in data["stops"]] == [str(i) for i in monday_route.stop_ids]
        assert data["route"]["progress"] == {"total": 3, "completed": 0, "skipped": 0, "percentage": 0}

    @pytest.mark.asyncio
    async def test_empty_date_has_message(self, client: AsyncClient, monday_route, alice_headers):
        response = await client.get(f"{API}/routes/2026-10-20", headers=alice_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["route"] is None
        assert data["stops"] == []
        assert data["message"]

    @pytest.mark.asyncio
    async def test_field_actions(self, client: AsyncClient, monday_route, alice_headers):
        c1, c2, c3 = monday_route.stop_ids

        response = await client.post(f"{API}/routes/stops/{c1}/start", headers=alice_headers)
        assert response.status_code == 200
        assert response.json()["stop"]["status"] == "in_progress"
        assert response.json()["route_status"] == "in_progress"
        assert response.json()["changed"] is True

        again = await client.post(f"{API}/routes/stops/{c1}/start", headers=alice_headers)
        assert again.status_code == 200
        assert again.json()["changed"] is False

        response = await client.post(
            f"{API}/routes/stops/{c1}/complete",
            json={"notes": "All good"},
            headers=alice_headers,
        )
        assert response.json()["stop"]["status"] == "completed"
        assert response.json()["stop"]["notes"] == "All good"

        await client.post(f"{API}/routes/stops/{c2}/start", headers=alice_headers)
        response = await client.post(f"{API}/routes/stops/{c2}/complete", headers=alice_headers)
        assert response.status_code == 200

        response = await client.post(
            f"{API}/routes/stops/{c3}/skip",
            json={"skip_reason": "gate locked"},
            headers=alice_headers,
        )
        assert response.status_code == 200
        assert response.json()["route_status"] == "completed"

        view = await client.get(f"{API}/routes/instances/{monday_route.id}", headers=alice_headers)
        progress = view.json()["route"]["progress"]
        assert (progress["completed"], progress["skipped"], progress["percentage"]) == (2, 1, 67)

    @pytest.mark.asyncio
    async def test_invalid_transition_is_409(self, client: AsyncClient, monday_route, alice_headers):
        response = await client.post(
            f"{API}/routes/stops/{monday_route.stop_ids[0]}/complete", headers=alice_headers
        )
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "INVALID_TRANSITION"
        assert error["details"]["current_status"] == "pending"

    @pytest.mark.asyncio
    async def test_blank_skip_reason_is_400(self, client: AsyncClient, monday_route, alice_headers):
        response = await client.post(
            f"{API}/routes/stops/{monday_route.stop_ids[0]}/skip",
            json={"skip_reason": "  "},
            headers=alice_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "skip_reason"

    @pytest.mark.asyncio
    async def test_other_technicians_stop_is_404(self, client: AsyncClient, monday_route, bob_headers):
        response = await client.post(
            f"{API}/routes/stops/{monday_route.stop_ids[0]}/start", headers=bob_headers
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "STOP_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_reorder_stops(self, client: AsyncClient, monday_route, alice_headers):
        c1, c2, c3 = (str(i) for i in monday_route.stop_ids)

        response = await client.put(
            f"{API}/routes/{monday_route.id}/stops/reorder",
            json={"ordered_stop_ids": [c3, c1, c2], "expected_version": 0},
            headers=alice_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 1
        assert [stop["id"] for stop in data["stops"]] == [c3, c1, c2]

        stale = await client.put(
            f"{API}/routes/{monday_route.id}/stops/reorder",
            json={"ordered_stop_ids": [c1, c2, c3], "expected_version": 0},
            headers=alice_headers,
        )
        assert stale.status_code == 409
        assert stale.json()["error"]["code"] == "CONCURRENT_MODIFICATION"

    @pytest.mark.asyncio
    async def test_history_and_instances(self, client: AsyncClient, monday_route, admin_headers, alice_headers):
        response = await client.get(f"{API}/routes/history", params={"limit": 5}, headers=alice_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["total_stops"] == 3

        response = await client.get(
            f"{API}/routes/instances",
            params={"start": "2026-10-19", "end": "2026-10-25"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["items"][0]["id"] == str(monday_route.id)

        response = await client.get(
            f"{API}/routes/instances",
            params={"start": "2026-10-19", "end": "2026-10-25"},
            headers=alice_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_history_limit_out_of_range(self, client: AsyncClient, monday_route, alice_headers):
        response = await client.get(f"{API}/routes/history", params={"limit": 0}, headers=alice_headers)
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "limit"

    @pytest.mark.asyncio
    async def test_unknown_instance_is_404(self, client: AsyncClient, company, admin_headers):
        response = await client.get(f"{API}/routes/instances/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ROUTE_NOT_FOUND"


class TestFieldActionRateLimit:
    """Per-user sliding window on field actions."""

    @pytest.fixture
    def tight_limiter(self):
        original = app.state.field_action_limiter
        app.state.field_action_limiter = SlidingWindowRateLimiter(limit=2, window_seconds=60)
        yield
        app.state.field_action_limiter = original

    @pytest.mark.asyncio
    async def test_third_action_in_window_is_429(
        self, client: AsyncClient, monday_route, alice_headers, tight_limiter
    ):
        stop_id = monday_route.stop_ids[0]

        for _ in range(2):
            response = await client.post(f"{API}/routes/stops/{stop_id}/start", headers=alice_headers)
            assert response.status_code == 200

        response = await client.post(f"{API}/routes/stops/{stop_id}/start", headers=alice_headers)
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert response.headers["Retry-After"] == "60"
