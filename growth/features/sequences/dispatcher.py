"""
growth/features/sequences/dispatcher.py

Email sequence triggers. The scoring engine only asks for a sequence to start;
rendering and delivery belong to the email pipeline behind the queue.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from redis import Redis
from rq import Queue

from growth.core.config import settings
from growth.core.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequenceTrigger:
    user_id: str
    sequence_id: str
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


class InMemorySequenceDispatcher:
    """Records triggers in process; used without a queue and in tests."""

    def __init__(self):
        self._triggers: List[SequenceTrigger] = []
        self._lock = threading.Lock()

    def trigger_sequence(self, user_id: str, sequence_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        trigger = SequenceTrigger(
            user_id=user_id,
            sequence_id=sequence_id,
            context=dict(context or {}),
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._triggers.append(trigger)
        logger.info(f"[sequences] triggered {sequence_id} for user {user_id}")

    def triggers_for(self, user_id: str) -> List[SequenceTrigger]:
        with self._lock:
            return [t for t in self._triggers if t.user_id == user_id]

    @property
    def triggers(self) -> List[SequenceTrigger]:
        with self._lock:
            return list(self._triggers)

    def clear(self) -> None:
        with self._lock:
            self._triggers.clear()


class RqSequenceDispatcher:
    """Enqueues record_sequence_trigger jobs on an rq queue over Redis."""

    def __init__(self, queue: Optional[Queue] = None):
        if queue is None:
            redis_conn = Redis.from_url(settings.REDIS_URL)
            queue = Queue(settings.SEQUENCE_QUEUE_NAME, connection=redis_conn)
        self._queue = queue

    def trigger_sequence(self, user_id: str, sequence_id: str, context: Optional[Dict[str, Any]] = None) -> None:
        try:
            job = self._queue.enqueue(
                "growth.workers.sequence_worker.record_sequence_trigger",
                user_id,
                sequence_id,
                dict(context or {}),
                job_timeout="1m",
                result_ttl=3600,
            )
        except Exception as exc:
            raise NotificationError(
                f"Failed to enqueue sequence {sequence_id} for {user_id}",
                kind="sequence",
                target=sequence_id,
            ) from exc
        logger.info(f"[sequences] enqueued {sequence_id} for user {user_id}, job={job.id}")


def get_sequence_dispatcher():
    """rq dispatcher when SEQUENCE_QUEUE_ENABLED, in-process recorder otherwise."""
    if settings.SEQUENCE_QUEUE_ENABLED:
        return RqSequenceDispatcher()
    return InMemorySequenceDispatcher()
