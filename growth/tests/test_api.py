"""
growth/tests/test_api.py

HTTP surface: lead score endpoints, interaction tracking, error contract,
health, metrics and the engagement WebSocket.
"""

import pytest
from fastapi.testclient import TestClient

from growth.features.scoring.container import get_container
from growth.main import app
from growth.models.lead_score import LeadScoreRecord, Tier


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestLeadScoreEndpoints:
    def test_update_and_read(self, client, container):
        container.users.ensure_user("u-1")
        for _ in range(2):
            container.activity.record_interaction("u-1", "webinar_registration")

        resp = client.post("/v1/lead-scores/update", json={"userId": "u-1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["leadScore"]["totalScore"] == 50
        assert body["leadScore"]["tier"] == "engaged"
        assert body["leadScore"]["readinessLevel"] == "medium"
        assert body["tierChange"]["triggeredSequences"] == ["engaged_visitor_welcome", "tool_user_series_14_day"]

        resp = client.get("/v1/lead-scores/u-1")
        assert resp.status_code == 200
        assert resp.json()["leadScore"]["scoreBreakdown"]["webinarRegistration"] == 50.0

    def test_unknown_user_is_404_with_error_contract(self, client):
        resp = client.post("/v1/lead-scores/update", json={"userId": "ghost"}, headers={"x-request-id": "req-123"})

        assert resp.status_code == 404
        body = resp.json()
        assert body["error"]["code"] == "not_found"
        assert body["error"]["request_id"] == "req-123"
        assert resp.headers["x-request-id"] == "req-123"

    def test_batch(self, client, container):
        container.users.ensure_user("a")
        container.users.ensure_user("b")
        container.activity.record_interaction("b", "webinar_registration")
        container.activity.record_interaction("b", "webinar_registration")

        resp = client.post("/v1/lead-scores/batch", json={"userIds": ["a", "b", "ghost"]})

        assert resp.status_code == 200
        assert resp.json()["processed"] == 3
        assert resp.json()["updated"] == 2
        assert resp.json()["errors"] == 1
        assert [c["userId"] for c in resp.json()["tierChanges"]] == ["b"]

    def test_batch_requires_users(self, client):
        resp = client.post("/v1/lead-scores/batch", json={"userIds": []})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_recalculate_requires_confirmation(self, client, container):
        container.users.ensure_user("a")
        assert client.post("/v1/lead-scores/recalculate", json={}).status_code == 400

        resp = client.post("/v1/lead-scores/recalculate", json={"confirm": True})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updated": 1, "errors": 0}

    def test_analytics_endpoints(self, client, container):
        container.users.ensure_user("a")
        container.users.ensure_user("b")
        for _ in range(3):
            container.activity.record_interaction("b", "webinar_registration")
        client.post("/v1/lead-scores/batch", json={"userIds": ["a", "b"]})

        analytics = client.get("/v1/lead-scores/analytics").json()
        assert analytics["totalUsers"] == 2
        assert analytics["tierDistribution"] == {"browser": 1, "engaged": 0, "softMember": 1}
        assert analytics["recentTierChanges"] == 1

        distribution = client.get("/v1/lead-scores/distribution").json()
        assert distribution["softMember"] == 1

        progression = client.get("/v1/lead-scores/progression").json()
        assert progression["totalProgressions"] == 0

        top = client.get("/v1/lead-scores/top", params={"tier": "soft-member", "limit": 5}).json()
        assert top["topScores"] == [{"userId": "b", "score": 75, "tier": "soft-member"}]

        recent = client.get("/v1/lead-scores/recent-changes").json()
        assert recent["count"] == 1

    def test_recent_changes_accepts_offsetless_now(self, client, container, fixed_now):
        container.users.ensure_user("u-1")
        record = LeadScoreRecord.new("u-1", fixed_now)
        record.score = 40.0
        record.tier = Tier.ENGAGED
        record.tier_changed_at = fixed_now
        container.store.upsert(record)

        resp = client.get("/v1/lead-scores/recent-changes", params={"now": "2026-03-02T13:00:00"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["records"][0]["hasRecentTierChange"] is True

    def test_top_rejects_unknown_tier(self, client):
        resp = client.get("/v1/lead-scores/top", params={"tier": "platinum"})
        assert resp.status_code == 400


class TestInteractionEndpoint:
    def test_tracks_and_scores(self, client, container):
        container.users.ensure_user("u-1")

        resp = client.post("/v1/engagement/interactions", json={
            "userId": "u-1",
            "sessionId": "s-1",
            "type": "webinar_registration",
            "data": {"webinarId": "w-1"},
        })

        assert resp.status_code == 200
        update = resp.json()["update"]
        assert update["currentScore"] == 15.0
        assert update["tierStatus"] == "browser"
        assert update["broadcastDelivered"] is True
        assert container.activity.get_user_activity_snapshot("u-1").webinar_registrations_count == 1

    def test_unknown_type_is_400(self, client, container):
        container.users.ensure_user("u-1")
        resp = client.post("/v1/engagement/interactions", json={"userId": "u-1", "sessionId": "s-1", "type": "teleport"})
        assert resp.status_code == 400
        assert "unknown interaction type" in resp.json()["error"]["message"]

    def test_unknown_user_is_404(self, client):
        resp = client.post("/v1/engagement/interactions", json={"userId": "ghost", "sessionId": "s-1", "type": "page_view"})
        assert resp.status_code == 404


class TestOperationalEndpoints:
    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_metrics_counts_score_updates(self, client, container):
        container.users.ensure_user("u-1")
        client.post("/v1/engagement/interactions", json={"userId": "u-1", "sessionId": "s-1", "type": "page_view"})

        text = client.get("/metrics").text
        assert 'lead_score_updates_total{path="realtime"} 1.0' in text
        assert "http_requests_total" in text


class TestEngagementSocket:
    def test_receives_engagement_updates(self, client, container):
        container.users.ensure_user("u-1")

        with client.websocket_connect("/v1/ws/engagement") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "connected"
            assert hello["channel"] == "engagement-updates"
            assert hello["subscribers"] == 1

            client.post("/v1/engagement/interactions", json={"userId": "u-1", "sessionId": "s-1", "type": "cta_click"})

            event = ws.receive_json()
            assert event["type"] == "real-time-engagement-update"
            assert event["data"]["userId"] == "u-1"
            assert event["data"]["scoreChange"] == 2.0

    def test_ping_pong(self, client):
        with client.websocket_connect("/v1/ws/engagement") as ws:
            ws.receive_json()
            ws.send_text('{"type": "ping"}')
            assert ws.receive_json()["type"] == "pong"
