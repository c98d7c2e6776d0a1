"""
growth/tests/test_interactions.py

Interaction payload parsing and per-interaction increments.
"""

import pytest
from dataclasses import replace

from growth.core.errors import ValidationError
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, InteractionIncrements
from growth.features.scoring.increments import score_increment
from growth.models.interaction import (
    ScrollDepthInteraction,
    TimeOnPageInteraction,
    TrackedInteraction,
    parse_interaction,
)


class TestParseInteraction:
    def test_scroll_depth_accepts_camel_case(self):
        interaction = parse_interaction("scroll_depth", {"scrollDepth": 75})
        assert isinstance(interaction, ScrollDepthInteraction)
        assert interaction.depth == 75

    def test_time_on_page_aliases(self):
        interaction = parse_interaction("time_on_page", {"timeSpent": 90})
        assert isinstance(interaction, TimeOnPageInteraction)
        assert interaction.time_spent == 90

    def test_catalogued_type_without_rule(self):
        interaction = parse_interaction("exit_intent", {})
        assert isinstance(interaction, TrackedInteraction)

    def test_extra_fields_ignored(self):
        interaction = parse_interaction("page_view", {"page": "/pricing", "referrer": "x"})
        assert interaction.page == "/pricing"

    @pytest.mark.parametrize("kind", [None, "", "   "])
    def test_missing_type(self, kind):
        with pytest.raises(ValidationError, match="type is required"):
            parse_interaction(kind, {})

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="unknown interaction type: teleport"):
            parse_interaction("teleport", {})

    def test_missing_required_field(self):
        with pytest.raises(ValidationError, match="invalid scroll_depth interaction"):
            parse_interaction("scroll_depth", {})

    def test_out_of_range_depth(self):
        with pytest.raises(ValidationError):
            parse_interaction("scroll_depth", {"depth": 140})

    def test_data_must_be_object(self):
        with pytest.raises(ValidationError, match="must be an object"):
            parse_interaction("page_view", ["not", "a", "dict"])

    def test_validation_error_maps_to_400(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_interaction("teleport", {})
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "validation_error"


class TestScoreIncrement:
    @pytest.mark.parametrize("kind,expected", [
        ("page_view", 0.5),
        ("cta_click", 2.0),
        ("tool_start", 3.0),
        ("tool_complete", 5.0),
        ("content_engagement", 1.5),
        ("form_submission", 10.0),
        ("webinar_registration", 15.0),
        ("section_view", 0.5),
        ("session_end", 0.5),
    ])
    def test_flat_increments(self, kind, expected):
        assert score_increment(parse_interaction(kind, {})) == expected

    @pytest.mark.parametrize("depth,expected", [(0, 0.0), (50, 0.5), (100, 1.0)])
    def test_scroll_depth(self, depth, expected):
        assert score_increment(parse_interaction("scroll_depth", {"depth": depth})) == pytest.approx(expected)

    @pytest.mark.parametrize("seconds,expected", [(30, 0.5), (120, 2.0), (180, 3.0), (900, 3.0)])
    def test_time_on_page_capped(self, seconds, expected):
        assert score_increment(parse_interaction("time_on_page", {"time_spent": seconds})) == pytest.approx(expected)

    def test_increments_are_configurable(self):
        config = replace(DEFAULT_SCORING_CONFIG, increments=InteractionIncrements(flat={"page_view": 4.0}, default=0.0))
        assert score_increment(parse_interaction("page_view", {}), config) == 4.0
        assert score_increment(parse_interaction("cta_click", {}), config) == 0.0
