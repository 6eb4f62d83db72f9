"""
Integration tests for the REST API endpoints.

The session registry is backed by the in-memory gateway and the transition
lock by an in-memory Redis double, both swapped in through FastAPI's
dependency overrides.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridepilot.api.app import create_app
from ridepilot.api.dependencies import get_lock_client, get_registry
from ridepilot.api.middleware import limiter
from ridepilot.domain.enums import AcceptanceStatus
from ridepilot.infrastructure.gateway import StoreError, TransientStoreError
from ridepilot.workers.sessions import SessionRegistry
from tests.factories import FakeRedis, make_trip

BASE = "/api/v1/drivers/driver-a"


# ── Fixture ───────────────────────────────────────────────────────────


@pytest.fixture
def redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def registry(gateway, sleep) -> SessionRegistry:
    return SessionRegistry(lambda: gateway, sleep=sleep)


@pytest_asyncio.fixture
async def client(registry, redis):
    """AsyncClient wired to the in-memory gateway and lock store."""
    limiter.reset()
    app = create_app()
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_lock_client] = lambda: redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await registry.close_all()


@pytest_asyncio.fixture
async def logged_in(client):
    resp = await client.post(f"{BASE}/session")
    assert resp.status_code == 201
    return client


# ── Health & admin ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_admin_lists_open_sessions(logged_in: AsyncClient):
    resp = await logged_in.get("/api/v1/admin/sessions")
    assert resp.status_code == 200
    assert [s["driver_id"] for s in resp.json()] == ["driver-a"]


# ── Sessions ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_open_session_returns_201(client: AsyncClient):
    resp = await client.post(f"{BASE}/session")
    assert resp.status_code == 201
    data = resp.json()
    assert data["phase"] == "idle"
    assert data["trip_count"] == 1
    assert data["error"] is None


@pytest.mark.asyncio
async def test_open_session_unknown_driver(client: AsyncClient):
    resp = await client.post("/api/v1/drivers/ghost/session")
    assert resp.status_code == 404
    assert resp.headers["X-Error-Code"] == "driver_not_found"


@pytest.mark.asyncio
async def test_close_session(logged_in: AsyncClient):
    resp = await logged_in.delete(f"{BASE}/session")
    assert resp.status_code == 204
    assert (await logged_in.get(f"{BASE}/trips")).status_code == 404
    assert (await logged_in.delete(f"{BASE}/session")).status_code == 404


# ── Trips ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_trips_require_open_session(client: AsyncClient):
    resp = await client.get(f"{BASE}/trips")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_trips_board(logged_in: AsyncClient):
    resp = await logged_in.get(f"{BASE}/trips")
    assert resp.status_code == 200
    data = resp.json()
    board = data["board"]
    trips = board["urgent"] + board["today"] + board["upcoming"] + board["completed"]
    assert [t["id"] for t in trips] == ["T1"]
    assert trips[0]["company_name"] == "Unknown Company"
    assert trips[0]["allowed_events"] == ["accept", "decline"]
    assert data["stats"]["pending"] == 1
    assert data["status"]["phase"] == "idle"


@pytest.mark.asyncio
async def test_refresh_picks_up_new_trips(logged_in: AsyncClient, gateway):
    gateway.trips["T5"] = make_trip("T5", company_id="c1")
    resp = await logged_in.post(f"{BASE}/trips/refresh")
    assert resp.status_code == 200
    assert resp.json()["status"]["trip_count"] == 2
    assert resp.json()["stats"]["pending"] == 2


@pytest.mark.asyncio
async def test_refresh_reports_retry_state(logged_in: AsyncClient, gateway):
    gateway.fetch_failures = [TransientStoreError("503")] * 10
    resp = await logged_in.post(f"{BASE}/trips/refresh")
    assert resp.status_code == 200
    status = resp.json()["status"]
    assert status["error"] == "503"
    assert status["phase"] in {"backoff", "fetching", "exhausted"}


# ── Transitions ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_trip(logged_in: AsyncClient, redis):
    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 200
    data = resp.json()
    assert data["acceptance_status"] == "accepted"
    assert data["state"] == "accepted"
    assert data["allowed_events"] == ["start"]
    assert redis.store == {}


@pytest.mark.asyncio
async def test_full_lifecycle_then_terminal(logged_in: AsyncClient):
    for event in ("accept", "start", "complete"):
        assert (await logged_in.post(f"{BASE}/trips/T1/{event}")).status_code == 200

    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "already_terminal"

    stats = (await logged_in.get(f"{BASE}/trips")).json()["stats"]
    assert stats["completed"] == 1
    assert stats["total_earnings"] == 100.0


@pytest.mark.asyncio
async def test_invalid_transition_returns_409(logged_in: AsyncClient):
    resp = await logged_in.post(f"{BASE}/trips/T1/complete")
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_reassigned_trip_returns_403(logged_in: AsyncClient, gateway):
    # dispatcher reassigned T1 after the driver's last fetch
    gateway.trips["T1"] = make_trip("T1", "driver-b")
    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 403
    assert resp.headers["X-Error-Code"] == "not_owner"


@pytest.mark.asyncio
async def test_trip_accepted_elsewhere_returns_409(logged_in: AsyncClient, gateway):
    gateway.trips["T1"] = make_trip("T1", acceptance=AcceptanceStatus.ACCEPTED)
    resp = await logged_in.post(f"{BASE}/trips/T1/decline")
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_locked_trip_returns_409(logged_in: AsyncClient, redis):
    redis.store["trip-transition:T1"] = "other-request"
    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "in_progress"


@pytest.mark.asyncio
async def test_unknown_trip_returns_403(logged_in: AsyncClient):
    resp = await logged_in.post(f"{BASE}/trips/nope/accept")
    assert resp.status_code == 403
    assert resp.headers["X-Error-Code"] == "not_owner"


@pytest.mark.asyncio
async def test_other_drivers_trip_returns_403(logged_in: AsyncClient, gateway):
    # T2 is assigned to driver-b and never appears in driver-a's trips
    resp = await logged_in.post(f"{BASE}/trips/T2/accept")
    assert resp.status_code == 403
    assert resp.headers["X-Error-Code"] == "not_owner"
    assert gateway.trips["T2"].acceptance_status == AcceptanceStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_event_returns_422(logged_in: AsyncClient):
    resp = await logged_in.post(f"{BASE}/trips/T1/teleport")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_store_outage_returns_503(logged_in: AsyncClient, gateway, redis):
    gateway.transition_failures = [TransientStoreError("connection reset")]
    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 503
    assert redis.store == {}


@pytest.mark.asyncio
async def test_store_refusal_returns_502(logged_in: AsyncClient, gateway, redis):
    gateway.transition_failures = [StoreError("invalid status value")]
    resp = await logged_in.post(f"{BASE}/trips/T1/accept")
    assert resp.status_code == 502
    assert resp.headers["X-Error-Code"] == "store_error"
    assert resp.json()["detail"] == "invalid status value"
    assert redis.store == {}


@pytest.mark.asyncio
async def test_error_responses_are_documented(client: AsyncClient):
    schema = (await client.get("/openapi.json")).json()
    path = schema["paths"]["/api/v1/drivers/{driver_id}/trips/{trip_id}/{event}"]
    documented = path["post"]["responses"]
    for status in ("403", "409", "502", "503"):
        ref = documented[status]["content"]["application/json"]["schema"]["$ref"]
        assert ref.endswith("/ErrorResponse")
