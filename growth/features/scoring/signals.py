"""
Session behavior signals.

Per-session counters folded from tracked interactions and turned into tags
carried on the real-time broadcast. State lives in an explicit bounded TTL
cache owned by the caller.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from growth.core.cache import TTLCache
from growth.models.interaction import ScrollDepthInteraction

LONG_SESSION_SECONDS = 300
TOOL_EXPLORER_MIN = 3
HIGH_CTA_MIN = 4
CONTENT_BROWSER_MIN = 6
DEEP_READER_DEPTH = 80

_TOOL_TYPES = ("tool_start", "tool_complete", "tool_interaction")
_CONVERSION_TYPES = ("tool_complete", "form_submission", "webinar_registration")


@dataclass(frozen=True)
class SessionActivity:
    session_id: str
    user_id: Optional[str] = None
    page_views: int = 0
    tool_interactions: int = 0
    content_engagement: int = 0
    cta_clicks: int = 0
    max_scroll_depth: float = 0.0
    conversion_events: int = 0
    exit_intent: bool = False
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Time between the first and the latest interaction of the session."""
        if self.first_seen_at is None or self.last_seen_at is None:
            return 0.0
        return max(0.0, (self.last_seen_at - self.first_seen_at).total_seconds())

    def observe(self, interaction, at: Optional[datetime] = None) -> "SessionActivity":
        at = at or datetime.now(timezone.utc)
        kind = interaction.type
        changes = {
            "first_seen_at": min(self.first_seen_at, at) if self.first_seen_at else at,
            "last_seen_at": max(self.last_seen_at, at) if self.last_seen_at else at,
        }
        if kind == "page_view":
            changes["page_views"] = self.page_views + 1
        elif kind in _TOOL_TYPES:
            changes["tool_interactions"] = self.tool_interactions + 1
        elif kind == "content_engagement":
            changes["content_engagement"] = self.content_engagement + 1
        elif kind == "cta_click":
            changes["cta_clicks"] = self.cta_clicks + 1
        elif kind == "exit_intent":
            changes["exit_intent"] = True
        elif isinstance(interaction, ScrollDepthInteraction):
            changes["max_scroll_depth"] = max(self.max_scroll_depth, interaction.depth)

        if kind in _CONVERSION_TYPES:
            changes["conversion_events"] = self.conversion_events + 1
        return replace(self, **changes)

    def signals(self) -> Tuple[str, ...]:
        tags: List[str] = []
        if self.exit_intent:
            tags.append("exit_intent_detected")
        if self.duration_seconds > LONG_SESSION_SECONDS:
            tags.append("long_session")
        if self.tool_interactions >= TOOL_EXPLORER_MIN:
            tags.append("tool_explorer")
        if self.cta_clicks >= HIGH_CTA_MIN:
            tags.append("high_cta_engagement")
        if self.page_views >= CONTENT_BROWSER_MIN:
            tags.append("content_browser")
        if self.max_scroll_depth > DEEP_READER_DEPTH:
            tags.append("deep_reader")
        if self.conversion_events > 0:
            tags.append("converter")
        return tuple(tags)


class SessionActivityTracker:
    """Folds interactions into cached per-session activity."""

    def __init__(self, cache: TTLCache):
        self._cache = cache
        self._lock = threading.Lock()

    def observe(
        self,
        session_id: str,
        user_id: str,
        interaction,
        now: Optional[datetime] = None,
    ) -> SessionActivity:
        with self._lock:
            current = self._cache.get(session_id) or SessionActivity(session_id=session_id, user_id=user_id)
            updated = current.observe(interaction, now)
            self._cache.set(session_id, updated)
        return updated

    def clear(self) -> None:
        self._cache.clear()
