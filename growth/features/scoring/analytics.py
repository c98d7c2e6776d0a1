"""
growth/features/scoring/analytics.py

Pure deterministic reducers over lead score records.
All reducers: (records, now) -> immutable read model.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from growth.models.lead_score import LeadScoreRecord, Tier, round_half_up


@dataclass(frozen=True)
class ScoreDistribution:
    browser: int
    engaged: int
    soft_member: int
    average_score: float
    total_users: int

    def to_dict(self) -> dict:
        return {
            "browser": self.browser,
            "engaged": self.engaged,
            "softMember": self.soft_member,
            "averageScore": self.average_score,
            "totalUsers": self.total_users,
        }


@dataclass(frozen=True)
class TierProgressionStats:
    total_progressions: int
    browser_to_engaged: int
    engaged_to_soft_member: int
    average_time_to_progress_hours: float

    def to_dict(self) -> dict:
        return {
            "totalProgressions": self.total_progressions,
            "browserToEngaged": self.browser_to_engaged,
            "engagedToSoftMember": self.engaged_to_soft_member,
            "averageTimeToProgress": self.average_time_to_progress_hours,
        }


@dataclass(frozen=True)
class TopScore:
    user_id: str
    score: int
    tier: Tier

    def to_dict(self) -> dict:
        return {"userId": self.user_id, "score": self.score, "tier": self.tier.value}


@dataclass(frozen=True)
class ScoringAnalytics:
    distribution: ScoreDistribution
    recent_tier_changes: int
    top_performing_users: Tuple[TopScore, ...]

    def to_dict(self) -> dict:
        return {
            "totalUsers": self.distribution.total_users,
            "tierDistribution": {
                "browser": self.distribution.browser,
                "engaged": self.distribution.engaged,
                "softMember": self.distribution.soft_member,
            },
            "averageScore": self.distribution.average_score,
            "recentTierChanges": self.recent_tier_changes,
            "topPerformingUsers": [u.to_dict() for u in self.top_performing_users],
        }


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def score_distribution(records: List[LeadScoreRecord]) -> ScoreDistribution:
    """Users per tier and the mean total score (0 when there are no users)."""
    counts = {tier: 0 for tier in Tier}
    for record in records:
        counts[record.tier] += 1

    total = len(records)
    average = sum(r.total_score for r in records) / total if total else 0.0
    return ScoreDistribution(
        browser=counts[Tier.BROWSER],
        engaged=counts[Tier.ENGAGED],
        soft_member=counts[Tier.SOFT_MEMBER],
        average_score=round_half_up(average, 1),
        total_users=total,
    )


def tier_progression_stats(records: List[LeadScoreRecord]) -> TierProgressionStats:
    """
    Count upward progressions across all histories.

    Average time is measured from record creation to the latest tier change,
    per counted progression, in hours.
    """
    browser_to_engaged = 0
    engaged_to_soft_member = 0
    total_seconds = 0.0

    for record in records:
        if not record.tier_changed_at:
            continue
        for entry in record.tier_progression:
            if entry.previous_tier == Tier.BROWSER and entry.tier == Tier.ENGAGED:
                browser_to_engaged += 1
            elif entry.previous_tier == Tier.ENGAGED and entry.tier == Tier.SOFT_MEMBER:
                engaged_to_soft_member += 1
        if record.created_at:
            total_seconds += (record.tier_changed_at - record.created_at).total_seconds()

    total = browser_to_engaged + engaged_to_soft_member
    average_hours = total_seconds / total / 3600.0 if total else 0.0
    return TierProgressionStats(
        total_progressions=total,
        browser_to_engaged=browser_to_engaged,
        engaged_to_soft_member=engaged_to_soft_member,
        average_time_to_progress_hours=round_half_up(average_hours, 1),
    )


def recent_tier_changes(
    records: List[LeadScoreRecord],
    within_hours: int = 24,
    now: Optional[datetime] = None,
) -> List[LeadScoreRecord]:
    """Records whose tier changed inside the window, most recent first."""
    now = _normalize_now(now)
    recent = [r for r in records if r.has_recent_tier_change(within_hours, now=now)]
    return sorted(recent, key=lambda r: r.tier_changed_at, reverse=True)


def top_scores(
    records: List[LeadScoreRecord],
    limit: int = 10,
    tier: Optional[Tier] = None,
) -> List[TopScore]:
    """Highest scores first; ties keep user_id order for stable output."""
    pool = [r for r in records if tier is None or r.tier == tier]
    ranked = sorted(pool, key=lambda r: (-r.score, r.user_id))
    return [TopScore(user_id=r.user_id, score=r.total_score, tier=r.tier) for r in ranked[:max(0, limit)]]


def scoring_analytics(
    records: List[LeadScoreRecord],
    now: Optional[datetime] = None,
) -> ScoringAnalytics:
    return ScoringAnalytics(
        distribution=score_distribution(records),
        recent_tier_changes=len(recent_tier_changes(records, 24, now)),
        top_performing_users=tuple(top_scores(records, 10)),
    )
