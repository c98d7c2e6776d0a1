"""
growth/tests/test_engagement_orchestrator.py

Real-time engagement path: increments, tier changes, ordering of the
durable write against hooks and broadcast.
"""

import pytest
from dataclasses import replace

from growth.core.errors import NotFoundError, PersistenceError, ValidationError
from growth.core.metrics import notification_failures_total
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, DownwardTransitionPolicy
from growth.models.lead_score import LeadScoreRecord, Tier


class RecordingHub:
    def __init__(self):
        self.published = []

    async def publish(self, channel, event_name, payload):
        self.published.append((channel, event_name, payload))
        return 1


class BrokenHub:
    async def publish(self, channel, event_name, payload):
        raise ConnectionError("broadcast transport down")


class BrokenStore:
    def get(self, user_id):
        return None

    def upsert(self, record):
        raise PersistenceError("database unavailable")


@pytest.fixture
def orchestrator(container):
    container.orchestrator.hub = RecordingHub()
    return container.orchestrator


def seed(container, user_id, score, tier, now):
    container.users.ensure_user(user_id)
    record = LeadScoreRecord.new(user_id, now)
    record.score = float(score)
    record.tier = tier
    container.store.upsert(record)


class TestApplyInteraction:
    @pytest.mark.asyncio
    async def test_webinar_registration_promotes_browser(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 25, Tier.BROWSER, fixed_now)

        update = await orchestrator.apply_interaction("u-1", "s-1", "webinar_registration", {"webinarId": "w-1"}, now=fixed_now)

        assert update.current_score == 40
        assert update.score_change == 15
        assert update.tier_status == Tier.ENGAGED
        assert update.tier_changed is True
        assert update.tier_change.triggered_sequences == ("engaged_visitor_welcome", "tool_user_series_14_day")
        assert "converter" in update.behavior_signals
        assert update.broadcast_delivered is True

        record = container.store.get("u-1")
        assert record.score == 40
        assert record.previous_score == 25
        assert record.tier == Tier.ENGAGED
        assert record.previous_tier == Tier.BROWSER
        assert len(record.tier_progression) == 1
        assert record.tier_progression[0].score == 40

        assert container.users.get_user("u-1").current_tier == Tier.ENGAGED
        sequences = [t.sequence_id for t in container.dispatcher.triggers_for("u-1")]
        assert sequences == ["engaged_visitor_welcome", "tool_user_series_14_day"]

    @pytest.mark.asyncio
    async def test_broadcast_payload(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 10, Tier.BROWSER, fixed_now)

        await orchestrator.apply_interaction("u-1", "s-9", "cta_click", {}, now=fixed_now)

        channel, event_name, payload = orchestrator.hub.published[0]
        assert channel == "engagement-updates"
        assert event_name == "real-time-engagement-update"
        assert payload == {
            "userId": "u-1",
            "sessionId": "s-9",
            "currentScore": 12.0,
            "scoreChange": 2.0,
            "tierStatus": "browser",
            "tierChanged": False,
            "behaviorSignals": [],
        }

    @pytest.mark.asyncio
    async def test_user_without_record_starts_from_zero(self, container, orchestrator, fixed_now):
        container.users.ensure_user("u-new")

        update = await orchestrator.apply_interaction("u-new", "s-1", "page_view", {"page": "/"}, now=fixed_now)

        assert update.current_score == 0.5
        assert container.store.get("u-new").tier == Tier.BROWSER

    @pytest.mark.asyncio
    async def test_interaction_is_recorded_for_the_aggregator(self, container, orchestrator, fixed_now):
        container.users.ensure_user("u-1")

        await orchestrator.apply_interaction("u-1", "s-1", "scroll_depth", {"depth": 70}, now=fixed_now)
        await orchestrator.apply_interaction("u-1", "s-1", "tool_complete", {"toolName": "roi"}, now=fixed_now)

        snapshot = container.activity.get_user_activity_snapshot("u-1")
        assert snapshot.average_scroll_depth == 70
        assert snapshot.tool_usage_count == 1

    @pytest.mark.asyncio
    async def test_same_tier_has_no_tier_change(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 40, Tier.ENGAGED, fixed_now)

        update = await orchestrator.apply_interaction("u-1", "s-1", "form_submission", {}, now=fixed_now)

        assert update.tier_changed is False
        assert update.tier_change is None
        assert container.store.get("u-1").tier_progression == []
        assert container.dispatcher.triggers == []


class TestFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id,session_id,kind", [
        ("", "s-1", "page_view"),
        ("u-1", "", "page_view"),
        ("u-1", "s-1", ""),
        ("u-1", "s-1", "teleport"),
    ])
    async def test_validation_errors_write_nothing(self, container, orchestrator, user_id, session_id, kind):
        container.users.ensure_user("u-1")

        with pytest.raises(ValidationError):
            await orchestrator.apply_interaction(user_id, session_id, kind, {})

        assert container.store.get("u-1") is None
        assert orchestrator.hub.published == []

    @pytest.mark.asyncio
    async def test_unknown_user_writes_nothing(self, container, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.apply_interaction("ghost", "s-1", "page_view", {})

        assert container.store.get("ghost") is None
        assert container.activity.get_user_activity_snapshot("ghost").page_views_count == 0
        assert orchestrator.hub.published == []

    @pytest.mark.asyncio
    async def test_persistence_failure_stops_before_hooks_and_broadcast(self, container, orchestrator, fixed_now):
        container.users.ensure_user("u-1")
        orchestrator.store = BrokenStore()

        with pytest.raises(PersistenceError):
            await orchestrator.apply_interaction("u-1", "s-1", "webinar_registration", {}, now=fixed_now)

        assert orchestrator.hub.published == []
        assert container.dispatcher.triggers == []
        assert container.users.get_user("u-1").engagement_score == 0

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_swallowed(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 25, Tier.BROWSER, fixed_now)
        orchestrator.hub = BrokenHub()

        update = await orchestrator.apply_interaction("u-1", "s-1", "webinar_registration", {}, now=fixed_now)

        assert update.broadcast_delivered is False
        assert update.tier_status == Tier.ENGAGED
        assert container.store.get("u-1").score == 40
        assert notification_failures_total.value({"kind": "broadcast"}) == 1

    @pytest.mark.asyncio
    async def test_activity_write_failure_after_commit_still_broadcasts(self, container, orchestrator, fixed_now, monkeypatch):
        container.users.ensure_user("u-1")

        def refuse(*args, **kwargs):
            raise PersistenceError("interactions table unavailable")

        monkeypatch.setattr(orchestrator.activity, "record_interaction", refuse)

        update = await orchestrator.apply_interaction("u-1", "s-1", "form_submission", {"formId": "f-1"}, now=fixed_now)

        assert update.current_score == 10
        assert container.store.get("u-1").score == 10
        assert len(orchestrator.hub.published) == 1
        assert container.users.get_user("u-1").engagement_score == 10
        assert notification_failures_total.value({"kind": "activity"}) == 1

    @pytest.mark.asyncio
    async def test_user_tier_sync_failure_still_runs_hooks(self, container, orchestrator, fixed_now, monkeypatch):
        seed(container, "u-1", 25, Tier.BROWSER, fixed_now)

        def refuse(*args, **kwargs):
            raise PersistenceError("users table unavailable")

        monkeypatch.setattr(container.users, "set_user_tier", refuse)

        update = await orchestrator.apply_interaction("u-1", "s-1", "webinar_registration", {}, now=fixed_now)

        assert update.tier_changed is True
        assert container.store.get("u-1").tier == Tier.ENGAGED
        sequences = [t.sequence_id for t in container.dispatcher.triggers_for("u-1")]
        assert sequences == ["engaged_visitor_welcome", "tool_user_series_14_day"]
        assert len(orchestrator.hub.published) == 1
        assert notification_failures_total.value({"kind": "user_sync"}) == 1


class TestDownwardPolicy:
    @pytest.mark.asyncio
    async def test_win_back_on_regression(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 20, Tier.ENGAGED, fixed_now)
        orchestrator.config = replace(DEFAULT_SCORING_CONFIG, downward_policy=DownwardTransitionPolicy.WIN_BACK)

        update = await orchestrator.apply_interaction("u-1", "s-1", "page_view", {}, now=fixed_now)

        assert update.tier_status == Tier.BROWSER
        assert update.tier_change.triggered_sequences == ("win_back_browser",)
        assert [t.sequence_id for t in container.dispatcher.triggers_for("u-1")] == ["win_back_browser"]

    @pytest.mark.asyncio
    async def test_regression_suppressed_by_default(self, container, orchestrator, fixed_now):
        seed(container, "u-1", 20, Tier.ENGAGED, fixed_now)

        update = await orchestrator.apply_interaction("u-1", "s-1", "page_view", {}, now=fixed_now)

        assert update.tier_status == Tier.BROWSER
        assert len(container.store.get("u-1").tier_progression) == 1
        assert container.dispatcher.triggers == []
