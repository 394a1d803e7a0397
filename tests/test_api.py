"""
Tests for the HTTP layer in main.py.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from recovery_match import main
from recovery_match.db import get_db
from recovery_match.match.matcher import run_matching_engine
from recovery_match.models import CapitalSource
from recovery_match.scheduler import MatchingService

INCOME_0_30K = {"type": "income", "ranges": [{"min": 0, "max": 30000}]}


@pytest.fixture
def client(session_factory, notifier):
    def override_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    main.app.dependency_overrides[get_db] = override_db
    main.app.dependency_overrides[main.get_notifier] = lambda: notifier
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def survivor(make_survivor):
    return make_survivor(members=[(25000, [])])


@pytest.fixture
def opportunity(make_opportunity):
    return make_opportunity(criteria=[INCOME_0_30K])


@pytest.fixture
def auth(practitioner):
    return {"X-User-Id": str(practitioner.id)}


def _url(action, opp, survivor):
    return f"/{action}/{opp.id}/survivors/{survivor.id}"


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_scheduler_status(self, client):
        body = client.get("/scheduler/status").json()
        assert "running" in body
        assert "jobs" in body


class TestWorkflowEndpoints:

    def test_requires_user(self, client, survivor, opportunity):
        resp = client.post(_url("apply", opportunity, survivor))
        assert resp.status_code == 401

    def test_apply(self, client, auth, survivor, opportunity, practitioner):
        resp = client.post(_url("apply", opportunity, survivor), headers=auth)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["match"]["status"] == "applied"
        assert body["match"]["matchScore"] == 100
        assert body["match"]["appliedById"] == practitioner.id
        assert body["match"]["opportunityName"] == "Rebuild Fund"

    def test_award_before_apply(self, client, db_session, auth, survivor, opportunity):
        run_matching_engine(db_session)

        resp = client.post(_url("award", opportunity, survivor), json={"awardAmount": 500}, headers=auth)

        assert resp.status_code == 400
        assert resp.json() == {
            "message": "Cannot award grant that hasn't been applied for",
            "currentStatus": "pending",
        }
        assert db_session.query(CapitalSource).count() == 0

    def test_award_requires_amount(self, client, auth, survivor, opportunity):
        client.post(_url("apply", opportunity, survivor), headers=auth)

        resp = client.post(_url("award", opportunity, survivor), json={}, headers=auth)

        assert resp.status_code == 400
        assert resp.json()["message"] == "Award amount is required"

    def test_award_rejects_infinite_amount(self, client, db_session, auth, survivor, opportunity):
        client.post(_url("apply", opportunity, survivor), headers=auth)

        resp = client.post(_url("award", opportunity, survivor), json={"awardAmount": "inf"}, headers=auth)

        assert resp.status_code == 400
        assert resp.json()["message"] == "Award amount must be a finite number"
        assert db_session.query(CapitalSource).count() == 0

    def test_full_round_trip(self, client, db_session, auth, notifier, survivor, opportunity):
        assert client.post(_url("apply", opportunity, survivor), headers=auth).status_code == 200

        awarded = client.post(
            _url("award", opportunity, survivor), json={"awardAmount": 2500, "notes": "Roof"}, headers=auth
        ).json()
        assert awarded["match"]["status"] == "awarded"
        assert awarded["match"]["awardAmount"] == 2500
        assert awarded["match"]["capitalSourceId"] is not None

        funded = client.post(_url("fund", opportunity, survivor), headers=auth).json()
        assert funded["match"]["status"] == "funded"

        db_session.expire_all()
        (entry,) = db_session.query(CapitalSource).all()
        assert entry.status == "current"
        assert entry.amount == 2500
        assert [name for name, _ in notifier.calls] == ["application", "award", "funding"]

    def test_reject(self, client, auth, survivor, opportunity):
        client.post(_url("apply", opportunity, survivor), headers=auth)

        resp = client.post(_url("reject", opportunity, survivor), json={"notes": "Duplicate"}, headers=auth)

        assert resp.status_code == 200
        assert resp.json()["match"]["status"] == "rejected"
        assert resp.json()["match"]["notes"] == "Duplicate"

    def test_unknown_opportunity(self, client, auth, survivor):
        resp = client.post(f"/apply/999/survivors/{survivor.id}", headers=auth)

        assert resp.status_code == 404
        assert resp.json() == {"message": "Funding opportunity not found"}

    def test_unknown_survivor(self, client, auth, opportunity, practitioner):
        resp = client.post(f"/apply/{opportunity.id}/survivors/{practitioner.id}", headers=auth)

        assert resp.status_code == 404
        assert resp.json() == {"message": "Survivor/client not found"}


class TestMatchEndpoints:

    def test_list_and_get(self, client, db_session, make_survivor, make_opportunity):
        first = make_survivor(name="A", email="a@example.com", members=[(1000, [])])
        make_survivor(name="B", email="b@example.com", members=[(2000, [])])
        opp = make_opportunity(criteria=[INCOME_0_30K], organization_id=3)
        opp.application_end_date = date(2025, 6, 30)
        db_session.commit()
        make_opportunity(name="Other", criteria=[INCOME_0_30K], organization_id=4)
        run_matching_engine(db_session)

        assert len(client.get("/matches").json()) == 4
        assert len(client.get("/matches", params={"organization_id": 3}).json()) == 2
        assert len(client.get(f"/opportunities/{opp.id}/matches").json()) == 2
        assert len(client.get(f"/survivors/{first.id}/matches").json()) == 2

        one = client.get(f"/opportunities/{opp.id}/survivors/{first.id}/match").json()
        assert one["matchScore"] == 100
        assert one["matchCriteria"] == {"income": {"matches": True, "value": 1000.0}}
        assert one["opportunityName"] == "Rebuild Fund"
        assert one["survivorName"] == "A"
        assert one["applicationEndDate"] == "2025-06-30"

        listed = client.get(f"/survivors/{first.id}/matches").json()
        assert {m["opportunityName"] for m in listed} == {"Rebuild Fund", "Other"}
        assert {m["survivorName"] for m in listed} == {"A"}

    def test_get_missing_match(self, client, survivor, opportunity):
        resp = client.get(f"/opportunities/{opportunity.id}/survivors/{survivor.id}/match")

        assert resp.status_code == 404
        assert resp.json() == {"message": "Match not found"}

    def test_patch_status(self, client, db_session, survivor, opportunity):
        run_matching_engine(db_session)

        resp = client.patch(
            f"/opportunities/{opportunity.id}/survivors/{survivor.id}/match",
            json={"status": "notified", "notes": "Left voicemail"},
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "notified"
        assert resp.json()["notes"] == "Left voicemail"

    def test_patch_rejects_unknown_status(self, client, db_session, survivor, opportunity):
        run_matching_engine(db_session)

        resp = client.patch(
            f"/opportunities/{opportunity.id}/survivors/{survivor.id}/match",
            json={"status": "approved"},
        )

        assert resp.status_code == 422


class TestRunMatching:

    def test_run_reports_new_matches(self, client, monkeypatch, session_factory, survivor, opportunity):
        service = MatchingService(session_factory=session_factory)
        monkeypatch.setattr(main, "get_matching_service", lambda: service)

        resp = client.post("/matching/run")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["newMatchCount"] == 1

    def test_overlapping_run_conflicts(self, client, monkeypatch, session_factory):
        service = MatchingService(session_factory=session_factory, engine=lambda s: 0)
        monkeypatch.setattr(main, "get_matching_service", lambda: service)

        service._lock.acquire()
        try:
            resp = client.post("/matching/run")
        finally:
            service._lock.release()

        assert resp.status_code == 409
        assert resp.json()["status"] == "skipped"

    def test_failed_run(self, client, monkeypatch, session_factory):
        def broken(session):
            raise RuntimeError("boom")

        service = MatchingService(session_factory=session_factory, engine=broken)
        monkeypatch.setattr(main, "get_matching_service", lambda: service)

        resp = client.post("/matching/run")

        assert resp.status_code == 500
        assert resp.json()["error"] == "boom"
