"""
growth/features/scoring/service.py

Lead scoring service: full recompute of a user's score from the aggregated
activity counters, batch recompute, and the analytics reads.

Flow per user:
  snapshot -> breakdown -> tier -> transition -> full-record write ->
  user tier sync -> post-commit hooks

Everything after the full-record write degrades on failure instead of raising.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from growth.core.errors import NotFoundError, ValidationError
from growth.core.logging import bound_engagement_context, log_event
from growth.core.metrics import lead_score_updates_total
from growth.features.scoring import analytics
from growth.features.scoring.calculator import calculate_score
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, ScoringConfig
from growth.features.scoring.hooks import after_commit, run_post_commit_hooks
from growth.features.scoring.tiers import readiness_level, tier_from_score
from growth.features.scoring.transitions import detect_transition
from growth.models.lead_score import LeadScoreRecord, ReadinessLevel, Tier, TierChangeResult

logger = logging.getLogger(__name__)


def _chunks(items: List[str], size: int) -> List[List[str]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class BatchUpdateReport:
    updated: int = 0
    errors: int = 0
    tier_changes: List[TierChangeResult] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {"updated": self.updated, "errors": self.errors}


class LeadScoringService:
    """Batch scoring path over injected stores and collaborators."""

    def __init__(
        self,
        activity,
        store,
        users,
        dispatcher,
        config: Optional[ScoringConfig] = None,
        batch_size: int = 5,
        recalc_batch_size: int = 10,
        recalc_delay_seconds: float = 0.1,
    ):
        self.activity = activity
        self.store = store
        self.users = users
        self.dispatcher = dispatcher
        self.config = config or DEFAULT_SCORING_CONFIG
        self.batch_size = batch_size
        self.recalc_batch_size = recalc_batch_size
        self.recalc_delay_seconds = recalc_delay_seconds

    def update_lead_score(
        self,
        user_id: str,
        *,
        trigger_sequences: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[TierChangeResult]:
        """
        Recompute one user's score from counters and persist it.

        Args:
            user_id: User to score
            trigger_sequences: Whether a tier change starts email sequences
            now: Fixed timestamp for deterministic testing (optional)

        Returns:
            TierChangeResult when the tier changed, None otherwise

        Raises:
            ValidationError: user_id is empty
            NotFoundError: user does not exist
            PersistenceError: the score write failed (nothing else happened)
        """
        if not user_id:
            raise ValidationError("userId is required")
        if self.users.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        now = now or datetime.now(timezone.utc)
        snapshot = self.activity.get_user_activity_snapshot(user_id, now=now)
        breakdown = calculate_score(snapshot, self.config)
        new_score = float(breakdown.total_score)
        new_tier = tier_from_score(new_score, self.config)

        record = self.store.get(user_id) or LeadScoreRecord.new(user_id, now)
        previous_tier = record.tier
        previous_score = record.score

        result = detect_transition(
            user_id,
            previous_tier,
            new_tier,
            new_score,
            previous_score,
            breakdown,
            record.tier_progression,
            now=now,
            config=self.config,
        )

        record.breakdown = breakdown
        record.previous_score = previous_score
        record.score = new_score
        record.previous_tier = previous_tier
        record.tier = new_tier
        record.scoring_data = snapshot.scoring_data()
        record.calculated_at = now
        record.updated_at = now
        if result:
            record.tier_changed_at = now

        self.store.upsert(record)
        lead_score_updates_total.inc(labels={"path": "batch"})
        after_commit("user_sync", user_id, self.users.set_engagement_score, user_id, new_score)
        if result:
            after_commit("user_sync", user_id, self.users.set_user_tier, user_id, new_tier)
            log_event(
                "info",
                "scoring.tier_changed",
                user_id=user_id,
                event_type="scoring.tier_changed",
                extra={"from": previous_tier.value, "to": new_tier.value, "score": new_score},
            )
            run_post_commit_hooks(
                result,
                self.dispatcher,
                self.users,
                trigger_sequences=trigger_sequences,
                now=now,
            )
        return result

    def _safe_update(self, user_id: str) -> Tuple[bool, Optional[TierChangeResult]]:
        try:
            with bound_engagement_context(user_id=user_id):
                return True, self.update_lead_score(user_id)
        except Exception as exc:
            log_event(
                "error",
                "scoring.batch_user_failed",
                user_id=user_id,
                event_type="scoring.batch",
                error_code=getattr(exc, "code", "internal_error"),
                extra={"error": str(exc)},
            )
            return False, None

    def batch_update_report(self, user_ids: List[str]) -> BatchUpdateReport:
        """
        Recompute many users, batch_size at a time concurrently.

        A failing user is logged, counted and skipped; the rest of the batch
        proceeds.
        """
        report = BatchUpdateReport()
        with ThreadPoolExecutor(max_workers=max(1, self.batch_size)) as pool:
            for chunk in _chunks(list(user_ids), self.batch_size):
                for ok, result in pool.map(self._safe_update, chunk):
                    if not ok:
                        report.errors += 1
                        continue
                    report.updated += 1
                    if result is not None:
                        report.tier_changes.append(result)
        return report

    def batch_update_scores(self, user_ids: List[str]) -> List[TierChangeResult]:
        """Tier changes produced by batch_update_report."""
        return self.batch_update_report(user_ids).tier_changes

    def recalculate_all_scores(self) -> Dict[str, int]:
        """Maintenance pass over every user; returns {"updated", "errors"}."""
        user_ids = self.users.list_user_ids()
        updated = 0
        errors = 0

        chunks = _chunks(user_ids, self.recalc_batch_size)
        for index, chunk in enumerate(chunks):
            for user_id in chunk:
                try:
                    self.update_lead_score(user_id)
                    updated += 1
                except Exception as exc:
                    errors += 1
                    logger.error(f"[scoring] recalculation failed for user {user_id}: {exc}")
            if self.recalc_delay_seconds and index < len(chunks) - 1:
                time.sleep(self.recalc_delay_seconds)

        logger.info(f"[scoring] recalculated {updated} scores, {errors} errors")
        return {"updated": updated, "errors": errors}

    def get_record(self, user_id: str) -> LeadScoreRecord:
        record = self.store.get(user_id)
        if record is None:
            raise NotFoundError(f"No lead score for user {user_id}")
        return record

    def get_readiness(self, record: LeadScoreRecord) -> ReadinessLevel:
        return readiness_level(record.score, self.config)

    def get_scoring_analytics(self, now: Optional[datetime] = None) -> analytics.ScoringAnalytics:
        return analytics.scoring_analytics(self.store.list_records(), now=now)

    def get_score_distribution(self) -> analytics.ScoreDistribution:
        return analytics.score_distribution(self.store.list_records())

    def get_tier_progression_stats(self) -> analytics.TierProgressionStats:
        return analytics.tier_progression_stats(self.store.list_records())

    def get_recent_tier_changes(self, within_hours: int = 24, now: Optional[datetime] = None) -> List[LeadScoreRecord]:
        return analytics.recent_tier_changes(self.store.list_records(), within_hours, now)

    def get_top_scores(self, limit: int = 10, tier: Optional[Tier] = None) -> List[analytics.TopScore]:
        records = self.store.list_by_tier(tier) if tier else self.store.list_records()
        return analytics.top_scores(records, limit, tier)
