"""
Lead score domain model.

A lead score turns raw behavioral counters into a bounded number and a
membership tier. Breakdowns are immutable per computation; the persistent
record is updated in place but its tier progression only ever grows.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Tier(str, Enum):
    BROWSER = "browser"
    ENGAGED = "engaged"
    SOFT_MEMBER = "soft-member"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @classmethod
    def parse(cls, value: Any) -> "Tier":
        if isinstance(value, Tier):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "softmember":
            normalized = "soft-member"
        return cls(normalized)


_TIER_ORDER: Tuple[Tier, ...] = (Tier.BROWSER, Tier.ENGAGED, Tier.SOFT_MEMBER)


class ReadinessLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a marketer expects (16.5 -> 17), not banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _counter(data: Dict[str, Any], *keys: str) -> float:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return 0


@dataclass(frozen=True)
class UserActivitySnapshot:
    """Cumulative behavioral counters for one user, recomputed per scoring pass."""

    user_id: str
    page_views_count: int = 0
    tool_usage_count: int = 0  # completed assessments only
    content_downloads_count: int = 0
    webinar_registrations_count: int = 0
    total_time_on_site_minutes: float = 0.0
    average_scroll_depth: float = 0.0  # percentage, 0..100
    cta_clicks_count: int = 0
    last_activity_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, user_id: str, data: Optional[Dict[str, Any]] = None) -> "UserActivitySnapshot":
        """Build a snapshot from camelCase or snake_case counters; absent means zero."""
        data = data or {}
        return cls(
            user_id=user_id,
            page_views_count=int(_counter(data, "pageViewsCount", "page_views_count")),
            tool_usage_count=int(_counter(data, "toolUsageCount", "tool_usage_count")),
            content_downloads_count=int(_counter(data, "contentDownloadsCount", "content_downloads_count")),
            webinar_registrations_count=int(_counter(data, "webinarRegistrationsCount", "webinar_registrations_count")),
            total_time_on_site_minutes=float(_counter(data, "totalTimeOnSiteMinutes", "totalTimeOnSite", "total_time_on_site_minutes")),
            average_scroll_depth=float(_counter(data, "averageScrollDepth", "average_scroll_depth")),
            cta_clicks_count=int(_counter(data, "ctaClicksCount", "cta_clicks_count")),
            last_activity_at=data.get("lastActivityAt") or data.get("last_activity_at"),
        )

    def scoring_data(self) -> Dict[str, Any]:
        """Counters persisted alongside the record they produced."""
        return {
            "pageViewsCount": self.page_views_count,
            "toolUsageCount": self.tool_usage_count,
            "contentDownloadsCount": self.content_downloads_count,
            "webinarRegistrationsCount": self.webinar_registrations_count,
            "totalTimeOnSite": self.total_time_on_site_minutes,
            "averageScrollDepth": self.average_scroll_depth,
            "ctaClicksCount": self.cta_clicks_count,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Weighted, capped sub-scores and their total.

    Sub-scores are display values rounded to one decimal; total_score is the
    half-up integer of raw_total, the unrounded sum.
    """

    page_views_score: float = 0.0
    tool_usage_score: float = 0.0
    content_downloads_score: float = 0.0
    webinar_registration_score: float = 0.0
    time_on_site_score: float = 0.0
    scroll_depth_score: float = 0.0
    cta_engagement_score: float = 0.0
    total_score: int = 0
    raw_total: float = 0.0

    def subscores(self) -> Dict[str, float]:
        return {
            "pageViews": self.page_views_score,
            "toolUsage": self.tool_usage_score,
            "contentDownloads": self.content_downloads_score,
            "webinarRegistration": self.webinar_registration_score,
            "timeOnSite": self.time_on_site_score,
            "scrollDepth": self.scroll_depth_score,
            "ctaEngagement": self.cta_engagement_score,
        }

    def to_dict(self) -> dict:
        payload = {f"{name}Score": value for name, value in self.subscores().items()}
        payload["totalScore"] = self.total_score
        return payload


@dataclass(frozen=True)
class TierProgressionEntry:
    tier: Tier
    score: float
    timestamp: datetime
    previous_tier: Optional[Tier] = None

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.value,
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
            "previousTier": self.previous_tier.value if self.previous_tier else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TierProgressionEntry":
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        previous = data.get("previousTier") or data.get("previous_tier")
        return cls(
            tier=Tier.parse(data["tier"]),
            score=float(data.get("score", 0)),
            timestamp=_as_utc(timestamp),
            previous_tier=Tier.parse(previous) if previous else None,
        )


@dataclass
class LeadScoreRecord:
    """
    Persistent lead score, one per user.

    score is the cumulative real value: the batch path sets it to the
    breakdown total, the incremental path adds per-interaction deltas to it.
    """

    user_id: str
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    score: float = 0.0
    previous_score: float = 0.0
    tier: Tier = Tier.BROWSER
    previous_tier: Tier = Tier.BROWSER
    scoring_data: Dict[str, Any] = field(default_factory=dict)
    tier_progression: List[TierProgressionEntry] = field(default_factory=list)
    calculated_at: Optional[datetime] = None
    tier_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def new(cls, user_id: str, now: Optional[datetime] = None) -> "LeadScoreRecord":
        now = now or _utcnow()
        return cls(user_id=user_id, created_at=now, updated_at=now)

    @property
    def total_score(self) -> int:
        return int(round_half_up(self.score))

    @property
    def score_increase(self) -> float:
        return self.score - self.previous_score

    def has_recent_tier_change(self, within_hours: int = 24, now: Optional[datetime] = None) -> bool:
        if not self.tier_changed_at:
            return False
        now = _as_utc(now) if now else _utcnow()
        return _as_utc(self.tier_changed_at) > now - timedelta(hours=within_hours)

    def to_dict(self, readiness: Optional[ReadinessLevel] = None, now: Optional[datetime] = None) -> dict:
        return {
            "userId": self.user_id,
            "scoreBreakdown": self.breakdown.subscores(),
            "totalScore": self.total_score,
            "score": round(self.score, 1),
            "previousScore": round(self.previous_score, 1),
            "scoreIncrease": round(self.score_increase, 1),
            "tier": self.tier.value,
            "previousTier": self.previous_tier.value,
            "readinessLevel": readiness.value if readiness else None,
            "scoringData": dict(self.scoring_data),
            "tierProgression": [entry.to_dict() for entry in self.tier_progression],
            "calculatedAt": self.calculated_at.isoformat() if self.calculated_at else None,
            "tierChangedAt": self.tier_changed_at.isoformat() if self.tier_changed_at else None,
            "hasRecentTierChange": self.has_recent_tier_change(now=now),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class TierChangeResult:
    """
    Outcome of a tier transition.

    triggered_sequences and personalization_updates are post-commit hooks:
    they run after the durable write and their failures never undo it.
    """

    user_id: str
    previous_tier: Tier
    new_tier: Tier
    score_increase: float
    total_score: float
    triggered_sequences: Tuple[str, ...] = ()
    personalization_updates: Tuple[str, ...] = ()
    progression_entry: Optional[TierProgressionEntry] = None

    @property
    def is_downgrade(self) -> bool:
        return self.new_tier.rank < self.previous_tier.rank

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "previousTier": self.previous_tier.value,
            "newTier": self.new_tier.value,
            "scoreIncrease": round(self.score_increase, 1),
            "totalScore": round(self.total_score, 1),
            "triggeredSequences": list(self.triggered_sequences),
            "personalizationUpdates": list(self.personalization_updates),
        }


@dataclass(frozen=True)
class RealTimeEngagementUpdate:
    user_id: str
    session_id: str
    current_score: float
    score_change: float
    tier_status: Tier
    tier_changed: bool
    behavior_signals: Tuple[str, ...] = ()
    tier_change: Optional[TierChangeResult] = None
    broadcast_delivered: bool = True

    def broadcast_payload(self) -> dict:
        return {
            "userId": self.user_id,
            "sessionId": self.session_id,
            "currentScore": round(self.current_score, 1),
            "scoreChange": round(self.score_change, 2),
            "tierStatus": self.tier_status.value,
            "tierChanged": self.tier_changed,
            "behaviorSignals": list(self.behavior_signals),
        }

    def to_dict(self) -> dict:
        payload = self.broadcast_payload()
        payload["tierChange"] = self.tier_change.to_dict() if self.tier_change else None
        payload["broadcastDelivered"] = self.broadcast_delivered
        return payload
