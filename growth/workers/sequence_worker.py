"""
rq job functions for email sequence triggers.

Run a worker with: rq worker -u redis://localhost:6379 email-sequences
or: python -m growth.workers.sequence_worker
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis import Redis
from rq import Queue, Worker
from sqlalchemy import insert

from growth.core.config import settings
from growth.core.database import get_db_session, sequence_triggers
from growth.core.logging import configure_logging

logger = logging.getLogger("growth")


def record_sequence_trigger(user_id: str, sequence_id: str, context: Optional[Dict[str, Any]] = None) -> Dict:
    """Persist a pending trigger row for the email pipeline to pick up."""
    now = datetime.now(timezone.utc)
    with get_db_session() as session:
        session.execute(
            insert(sequence_triggers).values(
                user_id=user_id,
                sequence_id=sequence_id,
                context=dict(context or {}),
                status="pending",
                created_at=now,
            )
        )
    logger.info(f"[sequence_worker] recorded {sequence_id} for user {user_id}")
    return {"user_id": user_id, "sequence_id": sequence_id, "status": "pending"}


def main() -> int:
    configure_logging(settings.ENV)
    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker([Queue(settings.SEQUENCE_QUEUE_NAME, connection=conn)], connection=conn)
    logger.info(f"Starting RQ worker on {settings.SEQUENCE_QUEUE_NAME}.")
    worker.work()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
