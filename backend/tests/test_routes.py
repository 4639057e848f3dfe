"""
API route tests.

Verifies:
- Requests without a known actor return 401
- Coaches are limited to their own records (403) and admin-only actions
- Domain errors surface as JSON with a stable code
- The refund decision is mandatory on removal and cancellation
"""

import pytest

from coachledger.extensions import db
from coachledger.models import Member
from coachledger.time_utils import today


def _register(client, coach_id, headers, **overrides):
    payload = {
        "name": "Mert",
        "price_cents": 1000,
        "session_count": 10,
        "duration_days": 30,
        "commission": {"type": "PERCENT_OF_PRICE", "percent": 40},
    }
    payload.update(overrides)
    return client.post(f"/api/coaches/{coach_id}/members", json=payload, headers=headers)


# =============================================================================
# AUTHENTICATION & SCOPE
# =============================================================================


class TestActorHeaders:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/coaches"),
            ("POST", "/api/coaches"),
            ("GET", "/api/approvals"),
            ("GET", "/api/coaches/1/members"),
            ("POST", "/api/coaches/1/events"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_role_rejected(self, client, db_session):
        resp = client.get("/api/coaches", headers={"X-Actor-Role": "owner", "X-Actor-Id": "1"})
        assert resp.status_code == 401

    def test_coach_needs_actor_id(self, client, db_session):
        resp = client.get("/api/coaches", headers={"X-Actor-Role": "coach"})
        assert resp.status_code == 401

    def test_coach_cannot_address_other_coach(self, client, coach, other_coach, coach_headers):
        resp = client.get(f"/api/coaches/{other_coach.id}/members", headers=coach_headers)
        assert resp.status_code == 403

    def test_coach_cannot_create_coach(self, client, coach_headers):
        resp = client.post("/api/coaches", json={"name": "X"}, headers=coach_headers)
        assert resp.status_code == 403

    def test_coach_lists_only_themselves(self, client, coach, other_coach, coach_headers, admin_headers):
        resp = client.get("/api/coaches", headers=coach_headers)
        assert [c["id"] for c in resp.get_json()["coaches"]] == [coach.id]

        resp = client.get("/api/coaches", headers=admin_headers)
        assert len(resp.get_json()["coaches"]) == 2


# =============================================================================
# COACHES & MEMBERS
# =============================================================================


class TestCoachRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_admin_creates_coach(self, client, db_session, admin_headers):
        resp = client.post("/api/coaches", json={"name": "Deniz", "branch": "Moda"}, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()["coach"]
        assert body["branch"] == "Moda"
        assert body["company_cut_total_cents"] == 0

    def test_create_coach_requires_name(self, client, db_session, admin_headers):
        resp = client.post("/api/coaches", json={}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_non_object_body_rejected(self, client, db_session, admin_headers):
        resp = client.post("/api/coaches", json=["Deniz"], headers=admin_headers)
        assert resp.status_code == 400

    def test_coach_registration_is_pending(self, client, coach, coach_headers):
        resp = _register(client, coach.id, coach_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["package"]["approval_status"] == "PENDING"
        assert body["package"]["split"] == {"company_cut_cents": 400, "coach_cut_cents": 600}
        assert body["member"]["remaining_credits"] == 0

    def test_registration_rejects_float_price(self, client, coach, coach_headers):
        resp = _register(client, coach.id, coach_headers, price_cents=10.5)
        assert resp.status_code == 400
        assert db.session.query(Member).count() == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"commission": {"type": "FLAT_PER_SESSION", "amount_cents": 10 ** 19}},
            {"commission": {"type": "FLAT_PER_SESSION", "amount_cents": 999_999_999}, "session_count": 2},
            {"session_count": 10 ** 19},
            {"duration_days": 10 ** 9},
        ],
    )
    def test_registration_rejects_oversized_terms(self, client, coach, admin_headers, overrides):
        resp = _register(client, coach.id, admin_headers, **overrides)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
        assert db.session.query(Member).count() == 0

    def test_member_details(self, client, coach, admin_headers):
        member_id = _register(client, coach.id, admin_headers).get_json()["member"]["id"]
        resp = client.get(f"/api/coaches/{coach.id}/members/{member_id}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["member"]["remaining_credits"] == 10
        assert len(body["packages"]) == 1
        assert body["credit_history"][0]["transaction_type"] == "GRANT"

    def test_unknown_member_is_404(self, client, coach, admin_headers):
        resp = client.get(f"/api/coaches/{coach.id}/members/999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"

    def test_delete_coach_with_members_conflicts(self, client, coach, admin_headers):
        _register(client, coach.id, admin_headers)
        resp = client.delete(f"/api/coaches/{coach.id}", headers=admin_headers)
        assert resp.status_code == 409

    def test_delete_empty_coach_deactivates(self, client, coach, admin_headers):
        resp = client.delete(f"/api/coaches/{coach.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["coach"]["is_active"] is False

    def test_verify_aggregate(self, client, coach, admin_headers):
        _register(client, coach.id, admin_headers)
        resp = client.get(f"/api/coaches/{coach.id}/aggregate/verify", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["consistent"] is True


# =============================================================================
# PACKAGES & APPROVALS
# =============================================================================


class TestPackageRoutes:

    def test_approval_flow(self, client, coach, coach_headers, admin_headers):
        body = _register(client, coach.id, coach_headers).get_json()
        member_id, package_id = body["member"]["id"], body["package"]["id"]
        approve_path = f"/api/coaches/{coach.id}/members/{member_id}/packages/{package_id}/approve"

        resp = client.get("/api/approvals", headers=admin_headers)
        assert resp.get_json()["count"] == 1

        resp = client.post(approve_path, headers=coach_headers)
        assert resp.status_code == 403

        resp = client.post(approve_path, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["package"]["approval_status"] == "APPROVED"

        resp = client.post(approve_path, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_APPROVED"

        resp = client.get("/api/approvals", headers=admin_headers)
        assert resp.get_json()["count"] == 0

    def test_edit_and_delete(self, client, coach, admin_headers):
        body = _register(client, coach.id, admin_headers).get_json()
        member_id, package_id = body["member"]["id"], body["package"]["id"]
        path = f"/api/coaches/{coach.id}/members/{member_id}/packages/{package_id}"

        resp = client.patch(path, json={"session_count": 8, "commission": {"type": "FLAT_PER_SESSION", "amount_cents": 20}}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["package"]["split"] == {"company_cut_cents": 160, "coach_cut_cents": 840}

        resp = client.patch(path, json={"sequence_number": 4}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.delete(path, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["member_deleted"] is True

    def test_coach_cannot_edit_approved(self, client, coach, coach_headers, admin_headers):
        body = _register(client, coach.id, admin_headers).get_json()
        path = f"/api/coaches/{coach.id}/members/{body['member']['id']}/packages/{body['package']['id']}"
        resp = client.patch(path, json={"session_count": 1}, headers=coach_headers)
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "PERMISSION_DENIED"

    def test_create_additional_package(self, client, coach, admin_headers):
        member_id = _register(client, coach.id, admin_headers).get_json()["member"]["id"]
        resp = client.post(
            f"/api/coaches/{coach.id}/members/{member_id}/packages",
            json={"price_cents": 500, "session_count": 5, "duration_days": 10},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["package"]["sequence_number"] == 2


# =============================================================================
# EVENTS
# =============================================================================


class TestEventRoutes:

    def _member(self, client, coach, admin_headers, **overrides):
        return _register(client, coach.id, admin_headers, **overrides).get_json()["member"]["id"]

    def _book(self, client, coach_id, headers, **overrides):
        payload = {
            "kind": "GROUP",
            "date": today().isoformat(),
            "start_time": "18:00",
            "end_time": "19:00",
            "quota": 2,
        }
        payload.update(overrides)
        return client.post(f"/api/coaches/{coach_id}/events", json=payload, headers=headers)

    def test_book_and_list(self, client, coach, coach_headers, admin_headers):
        member_id = self._member(client, coach, admin_headers)
        resp = self._book(
            client, coach.id, coach_headers,
            participants=[{"type": "MEMBER", "member_id": member_id, "participant_id": "p1"}],
        )
        assert resp.status_code == 201
        event = resp.get_json()["event"]
        assert event["participants"][0]["participant_id"] == "p1"

        resp = client.get(f"/api/coaches/{coach.id}/events?date={today().isoformat()}", headers=coach_headers)
        assert [e["id"] for e in resp.get_json()["events"]] == [event["id"]]

        resp = client.get(f"/api/coaches/{coach.id}/schedule/week", headers=coach_headers)
        assert len(resp.get_json()["days"]) == 7

    def test_quota_full_is_409(self, client, coach, coach_headers):
        event_id = self._book(client, coach.id, coach_headers, quota=1).get_json()["event"]["id"]
        path = f"/api/coaches/{coach.id}/events/{event_id}/participants"

        assert client.post(path, json={"type": "GUEST", "name": "Ayse"}, headers=coach_headers).status_code == 201
        resp = client.post(path, json={"type": "GUEST", "name": "Can"}, headers=coach_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "QUOTA_FULL"

    def test_insufficient_credit_is_409(self, client, coach, coach_headers, admin_headers):
        member_id = self._member(client, coach, admin_headers, session_count=1)
        participants = [{"type": "MEMBER", "member_id": member_id}]
        assert self._book(client, coach.id, coach_headers, kind="PERSONAL", participants=participants).status_code == 201

        resp = self._book(client, coach.id, coach_headers, kind="PERSONAL", participants=participants)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INSUFFICIENT_CREDIT"

    @pytest.mark.parametrize("query", ["", "?refund=", "?refund=maybe"])
    def test_refund_flag_is_mandatory(self, client, coach, coach_headers, admin_headers, query):
        member_id = self._member(client, coach, admin_headers)
        event_id = self._book(
            client, coach.id, coach_headers,
            participants=[{"type": "MEMBER", "member_id": member_id, "participant_id": "p1"}],
        ).get_json()["event"]["id"]

        resp = client.delete(f"/api/coaches/{coach.id}/events/{event_id}/participants/p1{query}", headers=coach_headers)
        assert resp.status_code == 400
        resp = client.delete(f"/api/coaches/{coach.id}/events/{event_id}{query}", headers=coach_headers)
        assert resp.status_code == 400

    def test_remove_with_refund_then_cancel(self, client, coach, coach_headers, admin_headers):
        member_id = self._member(client, coach, admin_headers)
        event_id = self._book(
            client, coach.id, coach_headers,
            participants=[{"type": "MEMBER", "member_id": member_id, "participant_id": "p1"}],
        ).get_json()["event"]["id"]

        resp = client.delete(f"/api/coaches/{coach.id}/events/{event_id}/participants/p1?refund=true", headers=coach_headers)
        assert resp.status_code == 200
        assert resp.get_json()["refunded"] is True

        resp = client.delete(f"/api/coaches/{coach.id}/events/{event_id}/participants/p1?refund=true", headers=coach_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_APPLIED"

        resp = client.delete(f"/api/coaches/{coach.id}/events/{event_id}?refund=false", headers=coach_headers)
        assert resp.status_code == 200
        assert db.session.get(Member, member_id).remaining_credits == 10

    def test_complete_event(self, client, coach, coach_headers):
        event_id = self._book(client, coach.id, coach_headers).get_json()["event"]["id"]
        resp = client.post(f"/api/coaches/{coach.id}/events/{event_id}/complete", headers=coach_headers)
        assert resp.status_code == 200
        assert resp.get_json()["event"]["is_completed"] is True
