"""
growth/features/scoring/engagement.py

Real-time engagement path: one tracked interaction moves the user's
cumulative score by a flat increment, may change their tier, and is
broadcast to live dashboards.

Ordering guarantees:
- validation and the user lookup happen before any write
- the score (and tier, on change) is persisted in one full-record write
- activity rows, user sync, post-commit hooks and the broadcast run after
  that write; their failures are logged and counted and never undo it
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from growth.core.cache import TTLCache
from growth.core.errors import NotFoundError, ValidationError
from growth.core.logging import log_event
from growth.core.metrics import lead_score_updates_total, notification_failures_total
from growth.features.scoring.activity import record_tracked_interaction
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, ScoringConfig
from growth.features.scoring.hooks import after_commit, run_post_commit_hooks
from growth.features.scoring.increments import score_increment
from growth.features.scoring.signals import SessionActivityTracker
from growth.features.scoring.tiers import tier_from_score
from growth.features.scoring.transitions import detect_transition
from growth.models.interaction import parse_interaction
from growth.models.lead_score import LeadScoreRecord, RealTimeEngagementUpdate

DEFAULT_CHANNEL = "engagement-updates"
DEFAULT_EVENT = "real-time-engagement-update"


class EngagementOrchestrator:
    """Applies single interactions to the stored score and broadcasts the result."""

    def __init__(
        self,
        store,
        users,
        hub,
        dispatcher,
        session_cache: Optional[TTLCache] = None,
        config: Optional[ScoringConfig] = None,
        channel: str = DEFAULT_CHANNEL,
        event_name: str = DEFAULT_EVENT,
        activity=None,
    ):
        self.store = store
        self.users = users
        self.hub = hub
        self.dispatcher = dispatcher
        self.config = config or DEFAULT_SCORING_CONFIG
        self.channel = channel
        self.event_name = event_name
        self.activity = activity
        self.sessions = SessionActivityTracker(session_cache or TTLCache(maxsize=5000, ttl_seconds=1800))

    async def apply_interaction(
        self,
        user_id: str,
        session_id: str,
        interaction_type: str,
        interaction_data: Optional[Dict[str, Any]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> RealTimeEngagementUpdate:
        """
        Apply one interaction and return the resulting engagement update.

        Raises:
            ValidationError: missing ids, unknown type or bad fields (no writes)
            NotFoundError: unknown user (no writes)
            PersistenceError: the score write failed (nothing else happened)
        """
        if not user_id:
            raise ValidationError("userId is required")
        if not session_id:
            raise ValidationError("sessionId is required")
        interaction = parse_interaction(interaction_type, interaction_data)

        if self.users.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        now = now or datetime.now(timezone.utc)
        record = self.store.get(user_id) or LeadScoreRecord.new(user_id, now)

        increment = score_increment(interaction, self.config)
        previous_tier = record.tier
        previous_score = record.score
        new_score = previous_score + increment
        new_tier = tier_from_score(new_score, self.config)

        tier_change = detect_transition(
            user_id,
            previous_tier,
            new_tier,
            new_score,
            previous_score,
            record.breakdown,
            record.tier_progression,
            now=now,
            config=self.config,
        )

        record.previous_score = previous_score
        record.score = new_score
        record.updated_at = now
        if tier_change:
            record.previous_tier = previous_tier
            record.tier = new_tier
            record.tier_changed_at = now

        self.store.upsert(record)
        lead_score_updates_total.inc(labels={"path": "realtime"})

        # the score is committed; from here on failures degrade, never raise
        if self.activity is not None:
            after_commit(
                "activity",
                user_id,
                record_tracked_interaction,
                self.activity,
                user_id,
                session_id,
                interaction,
                interaction_data,
                now,
            )
        after_commit("user_sync", user_id, self.users.set_engagement_score, user_id, new_score)

        if tier_change:
            after_commit("user_sync", user_id, self.users.set_user_tier, user_id, new_tier)
            log_event(
                "info",
                "engagement.tier_changed",
                user_id=user_id,
                session_id=session_id,
                event_type="engagement.tier_changed",
                extra={"from": previous_tier.value, "to": new_tier.value, "score": new_score},
            )
            run_post_commit_hooks(tier_change, self.dispatcher, self.users, now=now)

        session = self.sessions.observe(session_id, user_id, interaction, now)
        update = RealTimeEngagementUpdate(
            user_id=user_id,
            session_id=session_id,
            current_score=new_score,
            score_change=increment,
            tier_status=record.tier,
            tier_changed=tier_change is not None,
            behavior_signals=session.signals(),
            tier_change=tier_change,
        )

        try:
            await self.hub.publish(self.channel, self.event_name, update.broadcast_payload())
        except Exception as exc:
            notification_failures_total.inc(labels={"kind": "broadcast"})
            log_event(
                "warning",
                "engagement.broadcast_failed",
                user_id=user_id,
                session_id=session_id,
                event_type="engagement.broadcast",
                error_code="notification_failed",
                extra={"channel": self.channel, "error": str(exc)},
            )
            update = replace(update, broadcast_delivered=False)

        return update
