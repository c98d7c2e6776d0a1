"""
growth/tests/test_lead_score_calculator.py

Score calculator: weights, caps, thresholds and end-to-end snapshots.
"""

import pytest
from dataclasses import replace

from growth.features.scoring.calculator import calculate_score
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, CountWeight
from growth.features.scoring.tiers import tier_from_score
from growth.models.lead_score import Tier, UserActivitySnapshot, round_half_up


def snapshot(**counters) -> UserActivitySnapshot:
    return UserActivitySnapshot.from_dict("user-1", counters)


def assert_within_caps(breakdown):
    config = DEFAULT_SCORING_CONFIG
    caps = {
        "pageViews": config.page_views.max_points,
        "toolUsage": config.tool_usage.max_points,
        "contentDownloads": config.content_downloads.max_points,
        "webinarRegistration": config.webinar_registration.max_points,
        "timeOnSite": config.time_on_site.max_points,
        "scrollDepth": config.scroll_depth.max_points,
        "ctaEngagement": config.cta_engagement.bonus_points,
    }
    for name, value in breakdown.subscores().items():
        assert value >= 0.0, f"{name} negative: {value}"
        if caps[name] is not None:
            assert value <= caps[name], f"{name} over cap {caps[name]}: {value}"
    assert breakdown.total_score >= 0


class TestEndToEndScenarios:
    def test_light_browser(self):
        breakdown = calculate_score(snapshot(
            pageViewsCount=5, toolUsageCount=1, totalTimeOnSiteMinutes=3,
            averageScrollDepth=60, ctaClicksCount=2,
        ))
        assert breakdown.page_views_score == 2.5
        assert breakdown.tool_usage_score == 5.0
        assert breakdown.time_on_site_score == 6.0
        assert breakdown.scroll_depth_score == 3.0
        assert breakdown.cta_engagement_score == 0.0
        assert breakdown.raw_total == pytest.approx(16.5)
        assert breakdown.total_score == 17
        assert tier_from_score(breakdown.total_score) == Tier.BROWSER

    def test_engaged_visitor(self):
        breakdown = calculate_score(snapshot(
            pageViewsCount=20, toolUsageCount=4, contentDownloadsCount=3,
            totalTimeOnSiteMinutes=8, averageScrollDepth=85, ctaClicksCount=6,
        ))
        assert breakdown.page_views_score == 10.0
        assert breakdown.tool_usage_score == 20.0
        assert breakdown.content_downloads_score == 12.0
        assert breakdown.time_on_site_score == 10.0
        assert breakdown.cta_engagement_score == 10.0
        assert breakdown.total_score == 66
        assert tier_from_score(breakdown.total_score) == Tier.ENGAGED

    def test_soft_member(self):
        breakdown = calculate_score(snapshot(
            pageViewsCount=25, toolUsageCount=6, contentDownloadsCount=5,
            webinarRegistrationsCount=1, totalTimeOnSiteMinutes=15,
            averageScrollDepth=95, ctaClicksCount=8,
        ))
        assert breakdown.tool_usage_score == 30.0
        assert breakdown.content_downloads_score == 20.0
        assert breakdown.webinar_registration_score == 25.0
        assert breakdown.raw_total == pytest.approx(109.75)
        assert breakdown.total_score == 110
        assert tier_from_score(breakdown.total_score) == Tier.SOFT_MEMBER


class TestCaps:
    def test_capped_categories_never_exceed_max(self):
        breakdown = calculate_score(snapshot(
            pageViewsCount=10_000, toolUsageCount=500, contentDownloadsCount=90,
            totalTimeOnSiteMinutes=9_999, averageScrollDepth=100, ctaClicksCount=1_000,
        ))
        assert_within_caps(breakdown)
        assert breakdown.page_views_score == 10.0
        assert breakdown.tool_usage_score == 30.0
        assert breakdown.content_downloads_score == 20.0
        assert breakdown.time_on_site_score == 10.0
        assert breakdown.scroll_depth_score == 5.0
        assert breakdown.cta_engagement_score == 10.0

    def test_webinar_registration_is_uncapped(self):
        breakdown = calculate_score(snapshot(webinarRegistrationsCount=6))
        assert breakdown.webinar_registration_score == 150.0
        assert breakdown.total_score == 150

    def test_scroll_depth_over_100_still_capped(self):
        breakdown = calculate_score(snapshot(averageScrollDepth=250))
        assert breakdown.scroll_depth_score == 5.0


class TestThresholds:
    @pytest.mark.parametrize("minutes,expected", [(0, 0.0), (1, 2.0), (4.9, 9.8), (5, 10.0), (60, 10.0)])
    def test_time_on_site(self, minutes, expected):
        assert calculate_score(snapshot(totalTimeOnSiteMinutes=minutes)).time_on_site_score == expected

    @pytest.mark.parametrize("clicks,expected", [(0, 0.0), (4, 0.0), (5, 10.0), (50, 10.0)])
    def test_cta_engagement_is_a_step(self, clicks, expected):
        assert calculate_score(snapshot(ctaClicksCount=clicks)).cta_engagement_score == expected


class TestInputHandling:
    def test_empty_snapshot_scores_zero(self):
        breakdown = calculate_score(UserActivitySnapshot(user_id="nobody"))
        assert breakdown.total_score == 0
        assert all(v == 0.0 for v in breakdown.subscores().values())

    def test_negative_counters_count_as_zero(self):
        breakdown = calculate_score(snapshot(pageViewsCount=-4, totalTimeOnSiteMinutes=-10, averageScrollDepth=-50))
        assert breakdown.total_score == 0
        assert_within_caps(breakdown)

    def test_deterministic(self):
        data = dict(pageViewsCount=7, toolUsageCount=2, averageScrollDepth=33)
        assert calculate_score(snapshot(**data)) == calculate_score(snapshot(**data))

    def test_custom_weights_are_injected(self):
        config = replace(DEFAULT_SCORING_CONFIG, page_views=CountWeight(points_per_unit=1.0, max_points=3.0))
        breakdown = calculate_score(snapshot(pageViewsCount=10), config)
        assert breakdown.page_views_score == 3.0
        assert breakdown.total_score == 3


class TestRounding:
    @pytest.mark.parametrize("value,expected", [(16.5, 17), (66.25, 66), (109.75, 110), (0.5, 1), (2.4999, 2)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_one_decimal(self):
        assert round_half_up(4.25, 1) == 4.3
