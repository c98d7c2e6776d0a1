"""
Tier and readiness classification.

Two separate pure functions with separate thresholds: tiers gate content and
sequences, readiness only drives UI copy. Boundary values belong to the
higher bucket.
"""

from typing import Optional

from growth.models.lead_score import ReadinessLevel, Tier
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, ScoringConfig


def tier_from_score(score: float, config: Optional[ScoringConfig] = None) -> Tier:
    thresholds = (config or DEFAULT_SCORING_CONFIG).tiers
    if score >= thresholds.soft_member_min:
        return Tier.SOFT_MEMBER
    if score >= thresholds.engaged_min:
        return Tier.ENGAGED
    return Tier.BROWSER


def readiness_level(score: float, config: Optional[ScoringConfig] = None) -> ReadinessLevel:
    thresholds = (config or DEFAULT_SCORING_CONFIG).readiness
    if score >= thresholds.high_min:
        return ReadinessLevel.HIGH
    if score >= thresholds.medium_min:
        return ReadinessLevel.MEDIUM
    return ReadinessLevel.LOW


def is_upgrade(previous: Tier, new: Tier) -> bool:
    return new.rank > previous.rank
