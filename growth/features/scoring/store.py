"""
growth/features/scoring/store.py

Lead score persistence: one record per user, full-record writes keyed by
user_id. The tier progression is stored with the record and only grows.

InMemoryLeadScoreStore is the default; SqlLeadScoreStore keeps the same
interface over the lead_scores table.
"""

import copy
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from growth.core.database import check_connection, get_db_session, lead_scores
from growth.core.errors import PersistenceError
from growth.models.lead_score import (
    LeadScoreRecord,
    ScoreBreakdown,
    Tier,
    TierProgressionEntry,
)

logger = logging.getLogger(__name__)


class InMemoryLeadScoreStore:
    """Dict-backed store; hands out copies so callers never alias stored rows."""

    def __init__(self):
        self._records: Dict[str, LeadScoreRecord] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[LeadScoreRecord]:
        with self._lock:
            record = self._records.get(user_id)
            return copy.deepcopy(record) if record else None

    def upsert(self, record: LeadScoreRecord) -> None:
        with self._lock:
            existing = self._records.get(record.user_id)
            if existing and len(record.tier_progression) < len(existing.tier_progression):
                raise PersistenceError(
                    f"Refusing to truncate tier progression for {record.user_id}"
                )
            self._records[record.user_id] = copy.deepcopy(record)

    def list_records(self) -> List[LeadScoreRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]

    def list_by_tier(self, tier: Tier) -> List[LeadScoreRecord]:
        return [r for r in self.list_records() if r.tier == tier]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def _breakdown_columns(breakdown: ScoreBreakdown) -> dict:
    return {
        "page_views_score": breakdown.page_views_score,
        "tool_usage_score": breakdown.tool_usage_score,
        "content_downloads_score": breakdown.content_downloads_score,
        "webinar_registration_score": breakdown.webinar_registration_score,
        "time_on_site_score": breakdown.time_on_site_score,
        "scroll_depth_score": breakdown.scroll_depth_score,
        "cta_engagement_score": breakdown.cta_engagement_score,
        "breakdown_total": breakdown.total_score,
    }


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_record(row) -> LeadScoreRecord:
    breakdown = ScoreBreakdown(
        page_views_score=row.page_views_score,
        tool_usage_score=row.tool_usage_score,
        content_downloads_score=row.content_downloads_score,
        webinar_registration_score=row.webinar_registration_score,
        time_on_site_score=row.time_on_site_score,
        scroll_depth_score=row.scroll_depth_score,
        cta_engagement_score=row.cta_engagement_score,
        total_score=row.breakdown_total,
        raw_total=float(row.breakdown_total),
    )
    return LeadScoreRecord(
        user_id=row.user_id,
        breakdown=breakdown,
        score=row.score,
        previous_score=row.previous_score,
        tier=Tier.parse(row.tier),
        previous_tier=Tier.parse(row.previous_tier),
        scoring_data=dict(row.scoring_data or {}),
        tier_progression=[TierProgressionEntry.from_dict(e) for e in (row.tier_progression or [])],
        calculated_at=_as_utc(row.calculated_at),
        tier_changed_at=_as_utc(row.tier_changed_at),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class SqlLeadScoreStore:
    """lead_scores table; SQLAlchemy failures surface as PersistenceError."""

    def get(self, user_id: str) -> Optional[LeadScoreRecord]:
        try:
            with get_db_session() as session:
                row = session.execute(
                    select(lead_scores).where(lead_scores.c.user_id == user_id)
                ).first()
                return _row_to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load lead score for {user_id}") from exc

    def upsert(self, record: LeadScoreRecord) -> None:
        now = datetime.now(timezone.utc)
        values = {
            **_breakdown_columns(record.breakdown),
            "score": record.score,
            "previous_score": record.previous_score,
            "tier": record.tier.value,
            "previous_tier": record.previous_tier.value,
            "scoring_data": dict(record.scoring_data),
            "tier_progression": [e.to_dict() for e in record.tier_progression],
            "calculated_at": record.calculated_at,
            "tier_changed_at": record.tier_changed_at,
            "updated_at": record.updated_at or now,
        }
        try:
            with get_db_session() as session:
                exists = session.execute(
                    select(lead_scores.c.user_id).where(lead_scores.c.user_id == record.user_id)
                ).first()
                if exists:
                    session.execute(
                        update(lead_scores)
                        .where(lead_scores.c.user_id == record.user_id)
                        .values(**values)
                    )
                else:
                    session.execute(
                        insert(lead_scores).values(
                            user_id=record.user_id,
                            created_at=record.created_at or now,
                            **values,
                        )
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write lead score for {record.user_id}") from exc

    def list_records(self) -> List[LeadScoreRecord]:
        try:
            with get_db_session() as session:
                rows = session.execute(select(lead_scores).order_by(lead_scores.c.user_id)).fetchall()
                return [_row_to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list lead scores") from exc

    def list_by_tier(self, tier: Tier) -> List[LeadScoreRecord]:
        try:
            with get_db_session() as session:
                rows = session.execute(
                    select(lead_scores)
                    .where(lead_scores.c.tier == tier.value)
                    .order_by(lead_scores.c.score.desc())
                ).fetchall()
                return [_row_to_record(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list {tier.value} lead scores") from exc

    def clear(self) -> None:
        """FOR TESTING ONLY."""
        with get_db_session() as session:
            session.execute(lead_scores.delete())


def get_lead_score_store():
    """
    Pick the lead score store implementation.

    SQL when DATABASE_URL is set and reachable, in-memory otherwise.
    """
    if os.getenv("DATABASE_URL"):
        if check_connection():
            return SqlLeadScoreStore()
        logger.warning("[lead_scores] database unavailable, falling back to in-memory store")
    return InMemoryLeadScoreStore()

