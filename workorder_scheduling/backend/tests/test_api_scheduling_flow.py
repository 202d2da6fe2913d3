# backend/tests/test_api_scheduling_flow.py
from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import create_app

from conftest import DEFAULT_SLOTS, FRI, THU, TUE, WED, at, window


def _headers(actor) -> dict[str, str]:
    return {"X-User-Id": str(actor.user_id), "X-User-Role": actor.role}


def _iso(w: dict) -> dict:
    return {k: v.isoformat() for k, v in w.items()}


def _client() -> TestClient:
    return TestClient(create_app())


def _new_work_order(client, cast) -> dict:
    r = client.post(
        "/api/work-orders",
        json={
            "title": "Leaking faucet",
            "tenant_user_id": cast.tenant.user_id,
            "assigned_contractor_id": cast.contractor.user_id,
            "estimated_duration_minutes": 120,
        },
        headers=_headers(cast.operator),
    )
    assert r.status_code == 201, r.text
    return r.json()


def _propose(client, cast, wo_id: int, slots=DEFAULT_SLOTS) -> dict:
    r = client.post(
        f"/api/work-orders/{wo_id}/proposals",
        json={"slots": [_iso(s) for s in slots], "estimated_cost": 150.0},
        headers=_headers(cast.contractor),
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_full_negotiation_over_http(cast):
    client = _client()
    wo = _new_work_order(client, cast)
    assert wo["status"] == "New"
    assert wo["version"] == 1

    proposal = _propose(client, cast, wo["id"])
    assert [s["slot_number"] for s in proposal["slots"]] == [1, 2, 3]

    r = client.post(
        f"/api/proposals/{proposal['id']}/select",
        json={"slot_id": proposal["slots"][1]["id"], "expected_version": proposal["version"]},
        headers=_headers(cast.tenant),
    )
    assert r.status_code == 200, r.text
    appt = r.json()["appointment"]
    assert appt["scheduled_start_at"] == at(TUE, 14).isoformat()
    assert r.json()["proposal"]["status"] == "Accepted"

    r = client.get(f"/api/work-orders/{wo['id']}", headers=_headers(cast.tenant))
    assert r.json()["status"] == "Scheduled"
    assert r.json()["appointment"]["id"] == appt["id"]
    assert r.json()["live_proposal"] is None

    r = client.post(
        f"/api/appointments/{appt['id']}/counter-proposals",
        json={"availability": [_iso(window(WED, 8, 12)), _iso(window(THU, 9, 11))], "reason": "travelling"},
        headers=_headers(cast.tenant),
    )
    assert r.status_code == 201, r.text
    cp = r.json()
    assert cp["status"] == "Pending"
    assert cp["availability"][0]["start"] == at(WED, 8).isoformat()

    r = client.get(f"/api/counter-proposals/{cp['id']}/resolution", headers=_headers(cast.contractor))
    assert r.status_code == 200, r.text
    resolution = r.json()
    assert resolution["match"]["window_index"] == 0
    assert resolution["match"]["kind"] == "clean"
    assert resolution["required_minutes"] == 120

    r = client.post(
        f"/api/counter-proposals/{cp['id']}/accept",
        json={"selected_slot_index": 1, "expected_version": cp["version"]},
        headers=_headers(cast.contractor),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["counter_proposal"]["status"] == "Accepted"
    assert body["appointment"]["scheduled_start_at"] == at(THU, 9).isoformat()
    assert body["work_order"]["status"] == "Scheduled"

    r = client.post(f"/api/appointments/{appt['id']}/approve-access", headers=_headers(cast.tenant))
    assert r.status_code == 200
    assert r.json()["tenant_approved"] is True

    r = client.get(f"/api/work-orders/{wo['id']}/events", headers=_headers(cast.operator))
    assert r.status_code == 200
    assert r.json()[0]["event_type"] == "work_order.created"
    assert "counter_proposal.accepted" in [e["event_type"] for e in r.json()]

    r = client.get(f"/api/contractors/{cast.contractor.user_id}/appointments", headers=_headers(cast.contractor))
    assert [a["id"] for a in r.json()] == [appt["id"]]


def test_errors_are_typed_over_http(cast):
    client = _client()
    wo = _new_work_order(client, cast)

    r = client.post(
        f"/api/work-orders/{wo['id']}/proposals",
        json={"slots": [_iso(s) for s in DEFAULT_SLOTS[:2]]},
        headers={**_headers(cast.contractor), "X-Request-ID": "req-slot-count-1"},
    )
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "InvalidSlotCount"
    assert r.json()["error"]["request_id"] == "req-slot-count-1"
    assert r.headers["X-Request-ID"] == "req-slot-count-1"
    assert r.json()["error"]["kind"] == "validation"

    proposal = _propose(client, cast, wo["id"])
    slot_ids = [s["id"] for s in proposal["slots"]]

    r = client.post(
        f"/api/proposals/{proposal['id']}/select", json={"slot_id": slot_ids[0]}, headers=_headers(cast.other_tenant)
    )
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "NotAuthorized"

    assert client.post(
        f"/api/proposals/{proposal['id']}/select", json={"slot_id": slot_ids[0]}, headers=_headers(cast.tenant)
    ).status_code == 200

    r = client.post(
        f"/api/proposals/{proposal['id']}/select", json={"slot_id": slot_ids[2]}, headers=_headers(cast.tenant)
    )
    assert r.status_code == 409
    body = r.json()["error"]
    assert body.pop("request_id") == r.headers["X-Request-ID"]
    assert body == {
        "code": "SlotAlreadySelected",
        "kind": "conflict",
        "message": "a slot was already selected",
        "details": {"proposal_id": proposal["id"], "selected_slot_id": slot_ids[0]},
    }

    r = client.get("/api/proposals/99999", headers=_headers(cast.tenant))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "ProposalNotFound"


def test_duplicate_counter_over_http(cast):
    client = _client()
    wo = _new_work_order(client, cast)
    proposal = _propose(client, cast, wo["id"])
    appt = client.post(
        f"/api/proposals/{proposal['id']}/select",
        json={"slot_id": proposal["slots"][0]["id"]},
        headers=_headers(cast.tenant),
    ).json()["appointment"]

    payload = {"availability": [_iso(window(FRI, 8, 12))]}
    first = client.post(f"/api/appointments/{appt['id']}/counter-proposals", json=payload, headers=_headers(cast.tenant))
    second = client.post(f"/api/appointments/{appt['id']}/counter-proposals", json=payload, headers=_headers(cast.tenant))

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "DuplicatePendingProposal"

    r = client.post(
        f"/api/counter-proposals/{first.json()['id']}/reject",
        json={"reason": "no"},
        headers=_headers(cast.contractor),
    )
    assert r.status_code == 200
    assert r.json()["work_order"]["status"] == "Scheduled"
    assert r.json()["appointment"]["scheduled_start_at"] == appt["scheduled_start_at"]


def test_missing_identity_is_401(cast):
    client = _client()
    assert client.get("/api/work-orders/1").status_code == 401
    r = client.get("/api/work-orders/1", headers={"X-User-Id": str(cast.tenant.user_id), "X-User-Role": "operator"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "NotAuthorized"


def test_health(cast):
    r = _client().get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert "X-Request-ID" in r.headers
