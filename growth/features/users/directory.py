"""
User directory: the user reads and denormalized writes the scoring engine needs.

- get_user(user_id) / ensure_user(user_id, email)
- list_user_ids()
- set_user_tier(), set_engagement_score(), set_personalization()
"""

import copy
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from growth.core.database import check_connection, get_db_session, users as app_users
from growth.core.errors import PersistenceError
from growth.models.lead_score import Tier
from growth.models.user import User

logger = logging.getLogger(__name__)


def personalization_settings(tier: Tier, updates: Sequence[str], now: datetime) -> Dict:
    """Settings blob written to the user after a tier change."""
    return {
        "tier": tier.value,
        "updates": list(updates),
        "lastUpdated": now.isoformat(),
    }


class InMemoryUserDirectory:
    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user else None

    def ensure_user(self, user_id: str, email: Optional[str] = None) -> User:
        with self._lock:
            if user_id not in self._users:
                self._users[user_id] = User(
                    user_id=user_id,
                    email=email,
                    created_at=datetime.now(timezone.utc),
                )
            return copy.deepcopy(self._users[user_id])

    def list_user_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._users)

    def set_user_tier(self, user_id: str, tier: Tier) -> None:
        with self._lock:
            if user_id in self._users:
                self._users[user_id].current_tier = tier

    def set_engagement_score(self, user_id: str, score: float) -> None:
        with self._lock:
            if user_id in self._users:
                self._users[user_id].engagement_score = score

    def set_personalization(self, user_id: str, tier: Tier, updates: Sequence[str], now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            if user_id in self._users:
                self._users[user_id].personalization_settings = personalization_settings(tier, updates, now)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        current_tier=Tier.parse(row.current_tier),
        engagement_score=float(row.engagement_score or 0),
        personalization_settings=dict(row.personalization_settings or {}),
        created_at=row.created_at,
    )


class SqlUserDirectory:
    """app_users table; SQLAlchemy failures surface as PersistenceError."""

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            with get_db_session() as session:
                row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
                return _row_to_user(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load user {user_id}") from exc

    def ensure_user(self, user_id: str, email: Optional[str] = None) -> User:
        existing = self.get_user(user_id)
        if existing:
            return existing

        now = datetime.now(timezone.utc)
        try:
            with get_db_session() as session:
                session.execute(
                    insert(app_users).values(
                        user_id=user_id,
                        email=email,
                        current_tier=Tier.BROWSER.value,
                        engagement_score=0.0,
                        created_at=now,
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create user {user_id}") from exc
        return User(user_id=user_id, email=email, created_at=now)

    def list_user_ids(self) -> List[str]:
        try:
            with get_db_session() as session:
                rows = session.execute(select(app_users.c.user_id).order_by(app_users.c.user_id)).fetchall()
                return [row[0] for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list users") from exc

    def _update(self, user_id: str, **values) -> None:
        try:
            with get_db_session() as session:
                session.execute(
                    update(app_users)
                    .where(app_users.c.user_id == user_id)
                    .values(updated_at=datetime.now(timezone.utc), **values)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update user {user_id}") from exc

    def set_user_tier(self, user_id: str, tier: Tier) -> None:
        self._update(user_id, current_tier=tier.value)

    def set_engagement_score(self, user_id: str, score: float) -> None:
        self._update(user_id, engagement_score=score)

    def set_personalization(self, user_id: str, tier: Tier, updates: Sequence[str], now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        self._update(user_id, personalization_settings=personalization_settings(tier, updates, now))


def get_user_directory():
    """SQL directory when DATABASE_URL is set and reachable, in-memory otherwise."""
    if os.getenv("DATABASE_URL"):
        if check_connection():
            return SqlUserDirectory()
        logger.warning("[users] database unavailable, falling back to in-memory directory")
    return InMemoryUserDirectory()
