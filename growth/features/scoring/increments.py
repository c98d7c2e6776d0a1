"""Per-interaction score increments for the real-time path."""

from typing import Optional

from growth.models.interaction import ScrollDepthInteraction, TimeOnPageInteraction
from growth.features.scoring.config import DEFAULT_SCORING_CONFIG, ScoringConfig


def score_increment(interaction, config: Optional[ScoringConfig] = None) -> float:
    """
    Flat addition to the cumulative score for one validated interaction.

    Every tracked interaction moves the score: types without a rule of their
    own take the default increment.
    """
    increments = (config or DEFAULT_SCORING_CONFIG).increments

    if isinstance(interaction, ScrollDepthInteraction):
        return min(increments.scroll_depth_max, interaction.depth / 100.0)
    if isinstance(interaction, TimeOnPageInteraction):
        return min(increments.time_on_page_max, interaction.time_spent / 60.0)
    return increments.flat.get(interaction.type, increments.default)
