"""
Tests for the HTTP layer: routing, headers and error status codes.
"""

import pytest
from httpx import AsyncClient

from rsvp_engine.api.dependencies import get_rsvp_service
from rsvp_engine.api.errors import status_code_for
from rsvp_engine.core.exceptions import InvalidStatusTransitionError, WaitlistTransactionConflictError
from rsvp_engine.main import app


def as_user(user_id: str) -> dict:
    return {"X-User-ID": user_id}


async def rsvp(client: AsyncClient, event_id: str, user_id: str, status: str = "going", **extra):
    return await client.post(
        f"/api/v1/events/{event_id}/rsvp",
        json={"status": status, **extra},
        headers=as_user(user_id),
    )


@pytest.mark.asyncio
async def test_rsvp_going(client: AsyncClient, small_event):
    """A going request on an event with room is admitted."""
    response = await rsvp(client, small_event.event_id, "alice")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "going"
    assert data["decision"] == "admitted"
    assert data["attendee_type"] == "primary"
    assert data["previous_status"] is None
    assert data["waitlist_position"] is None


@pytest.mark.asyncio
async def test_rsvp_missing_user_header(client: AsyncClient, small_event):
    response = await client.post(f"/api/v1/events/{small_event.event_id}/rsvp", json={"status": "going"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rsvp_full_without_waitlist(client: AsyncClient, no_waitlist_event):
    """Full event with no waitlist returns 409 and the capacity context."""
    eid = no_waitlist_event.event_id
    await rsvp(client, eid, "a")
    await rsvp(client, eid, "b")

    response = await rsvp(client, eid, "c")

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "capacity_exceeded"
    assert body["reason"] == "capacity_exceeded"
    assert body["retryable"] is False
    assert body["going_count"] == 2
    assert "Retry-After" not in response.headers


@pytest.mark.asyncio
async def test_rsvp_full_with_waitlist(client: AsyncClient, small_event):
    eid = small_event.event_id
    await rsvp(client, eid, "a")
    await rsvp(client, eid, "b")

    response = await rsvp(client, eid, "c")

    assert response.status_code == 200
    assert response.json()["status"] == "waitlisted"
    assert response.json()["waitlist_position"] == 1


@pytest.mark.asyncio
async def test_rsvp_cancel_reports_promotion(client: AsyncClient, single_seat_event):
    eid = single_seat_event.event_id
    await rsvp(client, eid, "a")
    queued = (await rsvp(client, eid, "b")).json()

    response = await rsvp(client, eid, "a", status="not-going")

    assert response.status_code == 200
    promotions = response.json()["promotions"]
    assert [p["attendee_id"] for p in promotions] == [queued["attendee_id"]]
    assert promotions[0]["promotion_number"] == 1


@pytest.mark.asyncio
async def test_rsvp_waitlisted_not_requestable(client: AsyncClient, small_event):
    response = await rsvp(client, small_event.event_id, "alice", status="waitlisted")

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_status_transition"


def test_invalid_transition_maps_to_unprocessable_content():
    assert status_code_for(InvalidStatusTransitionError("waitlisted")) == 422


@pytest.mark.asyncio
async def test_rsvp_unknown_event(client: AsyncClient):
    response = await rsvp(client, "no-such-event", "alice")

    assert response.status_code == 404
    assert response.json()["code"] == "event_not_found"


@pytest.mark.asyncio
async def test_waitlist_join_position_leave(client: AsyncClient, single_seat_event):
    eid = single_seat_event.event_id
    await rsvp(client, eid, "holder")

    joined = await client.post(f"/api/v1/events/{eid}/waitlist", headers=as_user("alice"))
    assert joined.status_code == 200
    assert joined.json()["status"] == "waitlisted"
    assert joined.json()["position"] == 1

    position = await client.get(f"/api/v1/events/{eid}/waitlist/position", headers=as_user("alice"))
    assert position.json() == {"event_id": eid, "user_id": "alice", "position": 1}

    left = await client.delete(f"/api/v1/events/{eid}/waitlist", headers=as_user("alice"))
    assert left.status_code == 204

    position = await client.get(f"/api/v1/events/{eid}/waitlist/position", headers=as_user("alice"))
    assert position.json()["position"] is None


@pytest.mark.asyncio
async def test_waitlist_join_with_free_seat_is_promoted(client: AsyncClient, small_event):
    response = await client.post(f"/api/v1/events/{small_event.event_id}/waitlist", headers=as_user("alice"))

    assert response.status_code == 200
    assert response.json()["status"] == "going"
    assert response.json()["position"] is None


@pytest.mark.asyncio
async def test_waitlist_join_disabled(client: AsyncClient, no_waitlist_event):
    response = await client.post(f"/api/v1/events/{no_waitlist_event.event_id}/waitlist", headers=as_user("alice"))

    assert response.status_code == 409
    assert response.json()["reason"] == "waitlist_disabled"


@pytest.mark.asyncio
async def test_add_dependents(client: AsyncClient, small_event):
    eid = small_event.event_id
    await rsvp(client, eid, "alice")

    for i in range(4):
        response = await client.post(
            f"/api/v1/events/{eid}/dependents",
            json={"name": f"Kid {i}", "relationship": "child", "age_group": "3-5"},
            headers=as_user("alice"),
        )
        assert response.status_code == 201
        assert response.json()["attendee_type"] == "dependent"
        assert response.json()["rsvp_status"] == "going"

    response = await client.post(
        f"/api/v1/events/{eid}/dependents",
        json={"name": "One too many"},
        headers=as_user("alice"),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "family_limit_exceeded"


@pytest.mark.asyncio
async def test_add_dependent_primary_not_going(client: AsyncClient, small_event):
    response = await client.post(
        f"/api/v1/events/{small_event.event_id}/dependents",
        json={"name": "Kid"},
        headers=as_user("alice"),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "primary_not_going"


@pytest.mark.asyncio
async def test_add_dependent_invalid_age_group(client: AsyncClient, small_event):
    await rsvp(client, small_event.event_id, "alice")

    response = await client.post(
        f"/api/v1/events/{small_event.event_id}/dependents",
        json={"name": "Kid", "age_group": "toddler"},
        headers=as_user("alice"),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_capacity_and_counts(client: AsyncClient, single_seat_event):
    eid = single_seat_event.event_id
    await rsvp(client, eid, "a")
    await client.post(
        f"/api/v1/events/{eid}/dependents",
        json={"name": "Kid", "age_group": "6-10"},
        headers=as_user("a"),
    )
    await rsvp(client, eid, "b")

    capacity = (await client.get(f"/api/v1/events/{eid}/capacity")).json()
    assert capacity["capacity"] == 1
    assert capacity["going_count"] == 1
    assert capacity["waitlisted_count"] == 1
    assert capacity["has_room"] is False
    assert capacity["available"] == 0

    counts = (await client.get(f"/api/v1/events/{eid}/counts")).json()
    assert counts["going"] == 2
    assert counts["going_primaries"] == 1
    assert counts["going_dependents"] == 1
    assert counts["waitlisted"] == 1
    assert counts["going_by_age_group"] == {"6-10": 1}
    assert counts["total"] == 3


@pytest.mark.asyncio
async def test_withdraw_attendee(client: AsyncClient, single_seat_event):
    eid = single_seat_event.event_id
    mine = (await rsvp(client, eid, "a")).json()
    await rsvp(client, eid, "b")

    response = await client.delete(f"/api/v1/events/{eid}/attendees/{mine['attendee_id']}", headers=as_user("a"))

    assert response.status_code == 200
    body = response.json()
    assert body["removed_ids"] == [mine["attendee_id"]]
    assert body["freed_seat"] is True
    assert [p["user_id"] for p in body["promotions"]] == ["b"]


@pytest.mark.asyncio
async def test_withdraw_someone_elses_attendee(client: AsyncClient, small_event):
    eid = small_event.event_id
    mine = (await rsvp(client, eid, "a")).json()

    response = await client.delete(f"/api/v1/events/{eid}/attendees/{mine['attendee_id']}", headers=as_user("b"))

    assert response.status_code == 404
    assert response.json()["code"] == "attendee_not_found"


@pytest.mark.asyncio
async def test_admin_register_event_and_promote(client: AsyncClient):
    created = await client.put("/api/v1/admin/events/evt-api", json={"capacity": 1, "waitlist_enabled": True})
    assert created.status_code == 200
    assert created.json()["promotions"] == []

    await rsvp(client, "evt-api", "a")
    await rsvp(client, "evt-api", "b")
    await rsvp(client, "evt-api", "c")

    raised = await client.put("/api/v1/admin/events/evt-api", json={"capacity": 2, "waitlist_enabled": True})

    assert raised.status_code == 200
    assert raised.json()["capacity"] == 2
    assert [p["user_id"] for p in raised.json()["promotions"]] == ["b"]


@pytest.mark.asyncio
async def test_admin_register_event_rejects_negative_capacity(client: AsyncClient):
    response = await client.put("/api/v1/admin/events/evt-bad", json={"capacity": -1})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_recalculate_and_trigger(client: AsyncClient, single_seat_event):
    eid = single_seat_event.event_id
    for user in ("a", "b", "c"):
        await rsvp(client, eid, user)

    recalculated = await client.post(f"/api/v1/admin/events/{eid}/waitlist/recalculate")
    assert recalculated.status_code == 200
    assert recalculated.json() == {"event_id": eid, "count": 2}

    triggered = await client.post(f"/api/v1/admin/events/{eid}/promotions")
    assert triggered.status_code == 200
    assert triggered.json()["promotions_count"] == 0
    assert triggered.json()["stopped_reason"] == "no_room"


@pytest.mark.asyncio
async def test_admin_delete_event(client: AsyncClient, small_event):
    eid = small_event.event_id
    await rsvp(client, eid, "a")
    await rsvp(client, eid, "b")

    response = await client.delete(f"/api/v1/admin/events/{eid}")

    assert response.status_code == 200
    assert response.json() == {"event_id": eid, "attendees_removed": 2}
    assert (await client.get(f"/api/v1/events/{eid}/capacity")).status_code == 404


@pytest.mark.asyncio
async def test_retryable_conflict_sets_retry_after(client: AsyncClient, small_event):
    class ConflictingService:
        async def request_status(self, event_id, user_id, status, attendee_id=None):
            raise WaitlistTransactionConflictError("conflict", event_id=event_id, attempts=2)

    app.dependency_overrides[get_rsvp_service] = lambda: ConflictingService()

    response = await rsvp(client, small_event.event_id, "alice")

    assert response.status_code == 409
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "transaction_conflict"
    assert response.json()["retryable"] is True


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["store"] == "memory"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient, small_event):
    await rsvp(client, small_event.event_id, "alice")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "rsvp_admission_decisions_total" in response.text
