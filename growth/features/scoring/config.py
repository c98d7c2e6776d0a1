"""
Scoring configuration.

Every weight, cap, threshold and per-interaction increment lives here, in one
immutable structure that is passed into the calculator, classifier,
transition detector and orchestrator. Batch recalculation and real-time
increments share it as their single source of truth.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional


class DownwardTransitionPolicy(str, Enum):
    SUPPRESS = "suppress"  # tier and history update, no sequences
    WIN_BACK = "win_back"  # trigger a re-engagement sequence for the lower tier


@dataclass(frozen=True)
class CountWeight:
    points_per_unit: float
    max_points: Optional[float] = None  # None = uncapped


@dataclass(frozen=True)
class TimeOnSiteWeight:
    max_points: float = 10.0
    threshold_minutes: float = 5.0
    points_per_minute: float = 2.0


@dataclass(frozen=True)
class ScrollDepthWeight:
    max_points: float = 5.0


@dataclass(frozen=True)
class CtaEngagementWeight:
    bonus_points: float = 10.0
    required_clicks: int = 5


@dataclass(frozen=True)
class TierThresholds:
    engaged_min: float = 30.0
    soft_member_min: float = 70.0


@dataclass(frozen=True)
class ReadinessThresholds:
    medium_min: float = 30.0
    high_min: float = 70.0


@dataclass(frozen=True)
class InteractionIncrements:
    """Flat additions to the cumulative score, one per tracked interaction."""

    flat: Dict[str, float] = field(default_factory=lambda: {
        "page_view": 0.5,
        "cta_click": 2.0,
        "tool_start": 3.0,
        "tool_complete": 5.0,
        "content_engagement": 1.5,
        "form_submission": 10.0,
        "webinar_registration": 15.0,
    })
    scroll_depth_max: float = 1.0  # min(max, depth / 100)
    time_on_page_max: float = 3.0  # min(max, seconds / 60)
    default: float = 0.5


@dataclass(frozen=True)
class ScoringConfig:
    page_views: CountWeight = CountWeight(points_per_unit=0.5, max_points=10.0)
    tool_usage: CountWeight = CountWeight(points_per_unit=5.0, max_points=30.0)
    content_downloads: CountWeight = CountWeight(points_per_unit=4.0, max_points=20.0)
    webinar_registration: CountWeight = CountWeight(points_per_unit=25.0, max_points=None)
    time_on_site: TimeOnSiteWeight = TimeOnSiteWeight()
    scroll_depth: ScrollDepthWeight = ScrollDepthWeight()
    cta_engagement: CtaEngagementWeight = CtaEngagementWeight()
    tiers: TierThresholds = TierThresholds()
    readiness: ReadinessThresholds = ReadinessThresholds()
    increments: InteractionIncrements = field(default_factory=InteractionIncrements)
    downward_policy: DownwardTransitionPolicy = DownwardTransitionPolicy.SUPPRESS


DEFAULT_SCORING_CONFIG = ScoringConfig()


def scoring_config_from_settings(settings_obj, base: ScoringConfig = DEFAULT_SCORING_CONFIG) -> ScoringConfig:
    """Apply environment-level policy knobs on top of the default weights."""
    raw = str(getattr(settings_obj, "DOWNWARD_TIER_POLICY", "suppress") or "suppress").lower()
    try:
        policy = DownwardTransitionPolicy(raw)
    except ValueError:
        policy = DownwardTransitionPolicy.SUPPRESS
    return replace(base, downward_policy=policy)
