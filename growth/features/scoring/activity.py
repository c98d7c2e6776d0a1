"""
growth/features/scoring/activity.py

Activity aggregator: reads cumulative per-user counters from the tracked
event tables. Pure read on the scoring path; the record_* helpers are used by
the tracking endpoint to feed it.

In-memory implementation by default, SQL when DATABASE_URL is reachable.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from growth.core.database import (
    check_connection,
    content_engagement,
    get_db_session,
    interactions,
    tool_usage,
)
from growth.core.errors import PersistenceError
from growth.models.lead_score import UserActivitySnapshot, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionRow:
    user_id: str
    interaction_type: str
    created_at: datetime
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def build_snapshot(
    user_id: str,
    *,
    page_views: int,
    completed_tools: int,
    downloads: int,
    webinar_registrations: int,
    session_seconds: List[float],
    scroll_depths: List[float],
    cta_clicks: int,
    last_activity_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> UserActivitySnapshot:
    """Fold raw aggregates into a snapshot (minutes and depth to one decimal)."""
    return UserActivitySnapshot(
        user_id=user_id,
        page_views_count=page_views,
        tool_usage_count=completed_tools,
        content_downloads_count=downloads,
        webinar_registrations_count=webinar_registrations,
        total_time_on_site_minutes=round_half_up(sum(session_seconds) / 60.0, 1),
        average_scroll_depth=round_half_up(_mean(scroll_depths), 1),
        cta_clicks_count=cta_clicks,
        last_activity_at=last_activity_at or now or datetime.now(timezone.utc),
    )


def _session_seconds(metadata: Optional[Dict[str, Any]]) -> float:
    return float((metadata or {}).get("sessionDuration") or 0)


def _scroll_depth(metadata: Optional[Dict[str, Any]]) -> float:
    return float((metadata or {}).get("scrollDepth") or 0)


class InMemoryActivityStore:
    """Process-local activity tables, used in tests and without a database."""

    def __init__(self):
        self._interactions: List[InteractionRow] = []
        self._tool_runs: List[Dict[str, Any]] = []
        self._content: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def record_interaction(
        self,
        user_id: str,
        interaction_type: str,
        *,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        row = InteractionRow(
            user_id=user_id,
            interaction_type=interaction_type,
            created_at=now or datetime.now(timezone.utc),
            session_id=session_id,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._interactions.append(row)

    def record_tool_usage(self, user_id: str, tool_name: str, *, completed: bool) -> None:
        with self._lock:
            self._tool_runs.append({"user_id": user_id, "tool_name": tool_name, "is_completed": completed})

    def record_content_engagement(self, user_id: str, content_id: str, engagement_type: str) -> None:
        with self._lock:
            self._content.append({"user_id": user_id, "content_id": content_id, "engagement_type": engagement_type})

    def get_user_activity_snapshot(self, user_id: str, now: Optional[datetime] = None) -> UserActivitySnapshot:
        with self._lock:
            rows = [r for r in self._interactions if r.user_id == user_id]
            completed_tools = sum(1 for t in self._tool_runs if t["user_id"] == user_id and t["is_completed"])
            downloads = sum(
                1 for c in self._content
                if c["user_id"] == user_id and c["engagement_type"] == "download"
            )

        def of_type(kind: str) -> List[InteractionRow]:
            return [r for r in rows if r.interaction_type == kind]

        return build_snapshot(
            user_id,
            page_views=len(of_type("page_view")),
            completed_tools=completed_tools,
            downloads=downloads,
            webinar_registrations=len(of_type("webinar_registration")),
            session_seconds=[_session_seconds(r.metadata) for r in of_type("session_end")],
            scroll_depths=[_scroll_depth(r.metadata) for r in of_type("scroll_depth")],
            cta_clicks=len(of_type("cta_click")),
            last_activity_at=max((r.created_at for r in rows), default=None),
            now=now,
        )

    def clear(self) -> None:
        with self._lock:
            self._interactions.clear()
            self._tool_runs.clear()
            self._content.clear()


class SqlActivityStore:
    """Counter reads over the interactions, tool_usage and content_engagement tables."""

    def record_interaction(
        self,
        user_id: str,
        interaction_type: str,
        *,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        try:
            with get_db_session() as session:
                session.execute(
                    insert(interactions).values(
                        user_id=user_id,
                        session_id=session_id,
                        interaction_type=interaction_type,
                        metadata=dict(metadata or {}),
                        created_at=now or datetime.now(timezone.utc),
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record interaction for {user_id}") from exc

    def record_tool_usage(self, user_id: str, tool_name: str, *, completed: bool) -> None:
        try:
            with get_db_session() as session:
                session.execute(
                    insert(tool_usage).values(user_id=user_id, tool_name=tool_name, is_completed=completed)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record tool usage for {user_id}") from exc

    def record_content_engagement(self, user_id: str, content_id: str, engagement_type: str) -> None:
        try:
            with get_db_session() as session:
                session.execute(
                    insert(content_engagement).values(
                        user_id=user_id, content_id=content_id, engagement_type=engagement_type
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to record content engagement for {user_id}") from exc

    def get_user_activity_snapshot(self, user_id: str, now: Optional[datetime] = None) -> UserActivitySnapshot:
        ix = interactions.c

        def count_of(session, kind: str) -> int:
            stmt = select(func.count()).select_from(interactions).where(
                and_(ix.user_id == user_id, ix.interaction_type == kind)
            )
            return int(session.execute(stmt).scalar() or 0)

        def metadata_of(session, kind: str) -> List[Dict[str, Any]]:
            stmt = select(ix["metadata"]).where(and_(ix.user_id == user_id, ix.interaction_type == kind))
            return [row[0] or {} for row in session.execute(stmt)]

        try:
            with get_db_session() as session:
                completed_tools = session.execute(
                    select(func.count()).select_from(tool_usage).where(
                        and_(tool_usage.c.user_id == user_id, tool_usage.c.is_completed.is_(True))
                    )
                ).scalar() or 0
                downloads = session.execute(
                    select(func.count()).select_from(content_engagement).where(
                        and_(
                            content_engagement.c.user_id == user_id,
                            content_engagement.c.engagement_type == "download",
                        )
                    )
                ).scalar() or 0
                last_activity_at = session.execute(
                    select(func.max(ix.created_at)).where(ix.user_id == user_id)
                ).scalar()

                return build_snapshot(
                    user_id,
                    page_views=count_of(session, "page_view"),
                    completed_tools=int(completed_tools),
                    downloads=int(downloads),
                    webinar_registrations=count_of(session, "webinar_registration"),
                    session_seconds=[_session_seconds(m) for m in metadata_of(session, "session_end")],
                    scroll_depths=[_scroll_depth(m) for m in metadata_of(session, "scroll_depth")],
                    cta_clicks=count_of(session, "cta_click"),
                    last_activity_at=last_activity_at,
                    now=now,
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read activity for {user_id}") from exc


def get_activity_store():
    """SQL activity tables when DATABASE_URL is set and reachable, in-memory otherwise."""
    if os.getenv("DATABASE_URL"):
        if check_connection():
            return SqlActivityStore()
        logger.warning("[activity] database unavailable, falling back to in-memory store")
    return InMemoryActivityStore()


def record_tracked_interaction(
    activity,
    user_id: str,
    session_id: Optional[str],
    interaction,
    data: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> None:
    """Write a validated interaction into the tables the aggregator counts."""
    metadata = dict(data or {})
    if interaction.type == "scroll_depth":
        metadata["scrollDepth"] = interaction.depth

    activity.record_interaction(
        user_id,
        interaction.type,
        session_id=session_id,
        metadata=metadata,
        now=now,
    )

    if interaction.type in ("tool_start", "tool_complete"):
        activity.record_tool_usage(
            user_id,
            interaction.tool_name or "unknown",
            completed=interaction.type == "tool_complete",
        )
    elif interaction.type == "content_download":
        activity.record_content_engagement(user_id, str(metadata.get("contentId") or "unknown"), "download")
    elif interaction.type == "content_engagement":
        activity.record_content_engagement(
            user_id,
            interaction.content_id or "unknown",
            str(metadata.get("engagementType") or "view"),
        )
