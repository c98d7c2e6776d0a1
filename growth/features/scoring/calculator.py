"""
Lead Score Calculator

Pure, deterministic conversion of activity counters into a score breakdown.
No external calls, no randomness, no side effects.

Default weighting:
- Page views: 0.5 each, max 10
- Completed tools: 5 each, max 30
- Content downloads: 4 each, max 20
- Webinar registrations: 25 each, uncapped
- Time on site: 2 per minute, full 10 at 5+ minutes
- Scroll depth: up to 5, proportional to average depth
- CTA engagement: 10 bonus at 5+ clicks, otherwise 0

Absent or negative counters count as zero.
"""

from typing import Optional

from growth.models.lead_score import ScoreBreakdown, UserActivitySnapshot, round_half_up
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, CountWeight, ScoringConfig


def _non_negative(value) -> float:
    if value is None:
        return 0.0
    return max(0.0, float(value))


def _score_count(count, weight: CountWeight) -> float:
    points = _non_negative(count) * weight.points_per_unit
    if weight.max_points is None:
        return points
    return min(points, weight.max_points)


def _score_time_on_site(minutes, config: ScoringConfig) -> float:
    """Full points at the threshold; below it, linear and still capped."""
    rule = config.time_on_site
    minutes = _non_negative(minutes)
    if minutes >= rule.threshold_minutes:
        return rule.max_points
    return min(minutes * rule.points_per_minute, rule.max_points)


def _score_scroll_depth(average_depth, config: ScoringConfig) -> float:
    max_points = config.scroll_depth.max_points
    return min(_non_negative(average_depth) * max_points / 100.0, max_points)


def _score_cta_engagement(clicks, config: ScoringConfig) -> float:
    """Step function: all of the bonus or none of it."""
    rule = config.cta_engagement
    return rule.bonus_points if _non_negative(clicks) >= rule.required_clicks else 0.0


def calculate_score(
    activity: UserActivitySnapshot,
    config: Optional[ScoringConfig] = None,
) -> ScoreBreakdown:
    """
    Calculate the lead score breakdown for an activity snapshot.

    Args:
        activity: Cumulative counters for one user
        config: Weights, caps and thresholds (defaults to DEFAULT_SCORING_CONFIG)

    Returns:
        ScoreBreakdown whose total is the half-up integer of the unrounded sum
    """
    config = config or DEFAULT_SCORING_CONFIG

    page_views = _score_count(activity.page_views_count, config.page_views)
    tool_usage = _score_count(activity.tool_usage_count, config.tool_usage)
    content_downloads = _score_count(activity.content_downloads_count, config.content_downloads)
    webinar_registration = _score_count(activity.webinar_registrations_count, config.webinar_registration)
    time_on_site = _score_time_on_site(activity.total_time_on_site_minutes, config)
    scroll_depth = _score_scroll_depth(activity.average_scroll_depth, config)
    cta_engagement = _score_cta_engagement(activity.cta_clicks_count, config)

    raw_total = (
        page_views
        + tool_usage
        + content_downloads
        + webinar_registration
        + time_on_site
        + scroll_depth
        + cta_engagement
    )

    return ScoreBreakdown(
        page_views_score=round_half_up(page_views, 1),
        tool_usage_score=round_half_up(tool_usage, 1),
        content_downloads_score=round_half_up(content_downloads, 1),
        webinar_registration_score=round_half_up(webinar_registration, 1),
        time_on_site_score=round_half_up(time_on_site, 1),
        scroll_depth_score=round_half_up(scroll_depth, 1),
        cta_engagement_score=round_half_up(cta_engagement, 1),
        total_score=int(round_half_up(raw_total)),
        raw_total=raw_total,
    )
