"""
growth/tests/test_tiers.py

Tier and readiness classification boundaries.
"""

import pytest
from dataclasses import replace

from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, TierThresholds
from growth.features.scoring.tiers import is_upgrade, readiness_level, tier_from_score
from growth.models.lead_score import ReadinessLevel, Tier


class TestTierFromScore:
    @pytest.mark.parametrize("score,tier", [
        (0, Tier.BROWSER),
        (29, Tier.BROWSER),
        (29.9, Tier.BROWSER),
        (30, Tier.ENGAGED),
        (69, Tier.ENGAGED),
        (70, Tier.SOFT_MEMBER),
        (500, Tier.SOFT_MEMBER),
    ])
    def test_boundaries_belong_to_higher_tier(self, score, tier):
        assert tier_from_score(score) == tier

    def test_monotonic(self):
        ranks = [tier_from_score(s).rank for s in range(0, 120)]
        assert ranks == sorted(ranks)

    def test_thresholds_are_configurable(self):
        config = replace(DEFAULT_SCORING_CONFIG, tiers=TierThresholds(engaged_min=10, soft_member_min=20))
        assert tier_from_score(15, config) == Tier.ENGAGED
        assert tier_from_score(20, config) == Tier.SOFT_MEMBER


class TestReadiness:
    @pytest.mark.parametrize("score,level", [
        (0, ReadinessLevel.LOW),
        (29, ReadinessLevel.LOW),
        (30, ReadinessLevel.MEDIUM),
        (69, ReadinessLevel.MEDIUM),
        (70, ReadinessLevel.HIGH),
    ])
    def test_levels(self, score, level):
        assert readiness_level(score) == level


class TestTierParsing:
    @pytest.mark.parametrize("raw", ["soft-member", "soft_member", "SOFT-MEMBER", "softMember"])
    def test_soft_member_spellings(self, raw):
        assert Tier.parse(raw) == Tier.SOFT_MEMBER

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValueError):
            Tier.parse("platinum")

    def test_is_upgrade(self):
        assert is_upgrade(Tier.BROWSER, Tier.ENGAGED)
        assert not is_upgrade(Tier.SOFT_MEMBER, Tier.ENGAGED)
        assert not is_upgrade(Tier.ENGAGED, Tier.ENGAGED)
