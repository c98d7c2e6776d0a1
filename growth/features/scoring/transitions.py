"""
Tier Transition Detector

Compares the previous and newly computed tier. On a change it appends a
tier-progression entry and selects the post-commit hooks (email sequences and
personalization flags) the caller runs after the durable write.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from growth.models.lead_score import (
    ScoreBreakdown,
    Tier,
    TierChangeResult,
    TierProgressionEntry,
)
from growth.features.scoring.config import (
    DEFAULT_SCORING_CONFIG,
    DownwardTransitionPolicy,
    ScoringConfig,
)
from growth.features.scoring.tiers import is_upgrade

# Sequences keyed by exact (previous, new) pair
_PAIR_SEQUENCES = {
    (Tier.BROWSER, Tier.ENGAGED): ("engaged_visitor_welcome", "tool_user_series_14_day"),
    (Tier.ENGAGED, Tier.SOFT_MEMBER): ("soft_member_welcome", "advanced_content_access", "office_visit_invitation"),
}
SOFT_MEMBER_ARRIVAL_SEQUENCE = "personalized_consultation_offer"

# Candidate areas for tool recommendations, in tie-break order
_RECOMMENDATION_AREAS: Tuple[Tuple[str, str], ...] = (
    ("tools", "tool_usage_score"),
    ("content", "content_downloads_score"),
    ("webinars", "webinar_registration_score"),
    ("engagement", "cta_engagement_score"),
)


def win_back_sequence(tier: Tier) -> str:
    return f"win_back_{tier.value.replace('-', '_')}"


def select_sequences(
    previous_tier: Tier,
    new_tier: Tier,
    config: Optional[ScoringConfig] = None,
) -> List[str]:
    config = config or DEFAULT_SCORING_CONFIG
    if previous_tier == new_tier:
        return []

    if not is_upgrade(previous_tier, new_tier):
        if config.downward_policy == DownwardTransitionPolicy.WIN_BACK:
            return [win_back_sequence(new_tier)]
        return []

    sequences = list(_PAIR_SEQUENCES.get((previous_tier, new_tier), ()))
    if new_tier == Tier.SOFT_MEMBER:
        sequences.append(SOFT_MEMBER_ARRIVAL_SEQUENCE)
    return sequences


def highest_scoring_area(breakdown: ScoreBreakdown) -> str:
    """Area with the greatest sub-score; the first declared wins ties."""
    best_area, best_score = _RECOMMENDATION_AREAS[0][0], None
    for area, attribute in _RECOMMENDATION_AREAS:
        value = getattr(breakdown, attribute)
        if best_score is None or value > best_score:
            best_area, best_score = area, value
    return best_area


def select_personalization(new_tier: Tier, breakdown: ScoreBreakdown) -> List[str]:
    updates = [f"content_access_level_{new_tier.value}"]

    if new_tier == Tier.SOFT_MEMBER:
        updates.append("show_premium_ctas")
        updates.append("hide_basic_lead_magnets")
    elif new_tier == Tier.ENGAGED:
        updates.append("show_engagement_ctas")
        updates.append("show_webinar_invitations")

    updates.append(f"recommend_{highest_scoring_area(breakdown)}_tools")
    updates.append(f"navigation_tier_{new_tier.value}")
    return updates


def detect_transition(
    user_id: str,
    previous_tier: Tier,
    new_tier: Tier,
    score: float,
    previous_score: float,
    breakdown: ScoreBreakdown,
    history: List[TierProgressionEntry],
    *,
    now: Optional[datetime] = None,
    config: Optional[ScoringConfig] = None,
) -> Optional[TierChangeResult]:
    """
    Detect a tier change and describe its side effects.

    Args:
        user_id: User whose score was recomputed
        previous_tier: Tier before this computation
        new_tier: Tier derived from the new score
        score: New total score
        previous_score: Score before this computation
        breakdown: Sub-scores used for the tool recommendation flag
        history: The record's tier progression; one entry is appended on change
        now: Fixed timestamp for deterministic testing (optional)
        config: Scoring configuration (downward transition policy)

    Returns:
        TierChangeResult, or None when the tier did not change
    """
    if previous_tier == new_tier:
        return None

    now = now or datetime.now(timezone.utc)
    entry = TierProgressionEntry(
        tier=new_tier,
        score=score,
        timestamp=now,
        previous_tier=previous_tier,
    )
    history.append(entry)

    return TierChangeResult(
        user_id=user_id,
        previous_tier=previous_tier,
        new_tier=new_tier,
        score_increase=score - previous_score,
        total_score=score,
        triggered_sequences=tuple(select_sequences(previous_tier, new_tier, config)),
        personalization_updates=tuple(select_personalization(new_tier, breakdown)),
        progression_entry=entry,
    )
