"""
Post-commit side effects of a score write.

These run strictly after the score and tier are durably written. A failure
here is logged and counted, never raised: the committed change stands.
"""

from datetime import datetime
from typing import Callable, List, Optional

from growth.core.errors import NotificationError
from growth.core.logging import log_event
from growth.core.metrics import notification_failures_total, tier_transitions_total
from growth.models.lead_score import TierChangeResult


def _report(failure: NotificationError, user_id: str) -> None:
    notification_failures_total.inc(labels={"kind": failure.kind})
    log_event(
        "warning",
        "scoring.post_commit_failed",
        user_id=user_id,
        event_type="scoring.post_commit",
        error_code=failure.code,
        extra={"kind": failure.kind, "target": failure.target, "error": failure.message},
    )


def after_commit(
    kind: str,
    user_id: str,
    func: Callable[..., object],
    *args,
    target: Optional[str] = None,
    **kwargs,
) -> Optional[NotificationError]:
    """
    Run one side effect of an already committed score write.

    Returns the failure (logged and counted) or None.
    """
    try:
        func(*args, **kwargs)
        return None
    except Exception as exc:
        if isinstance(exc, NotificationError):
            failure = exc
        else:
            failure = NotificationError(str(exc), kind=kind, target=target or user_id)
        _report(failure, user_id)
        return failure


def run_post_commit_hooks(
    result: TierChangeResult,
    dispatcher,
    users,
    *,
    trigger_sequences: bool = True,
    now: Optional[datetime] = None,
) -> List[NotificationError]:
    """
    Trigger each selected sequence, then write the personalization flags.

    Returns the failures (already logged) so callers can report them.
    """
    tier_transitions_total.inc(labels={"from_tier": result.previous_tier.value, "to_tier": result.new_tier.value})
    failures: List[NotificationError] = []

    if trigger_sequences:
        context = {
            "from": result.previous_tier.value,
            "to": result.new_tier.value,
            "score": result.total_score,
        }
        for sequence_id in result.triggered_sequences:
            failures.append(after_commit(
                "sequence",
                result.user_id,
                dispatcher.trigger_sequence,
                result.user_id,
                sequence_id,
                context,
                target=sequence_id,
            ))

    failures.append(after_commit(
        "personalization",
        result.user_id,
        users.set_personalization,
        result.user_id,
        result.new_tier,
        result.personalization_updates,
        now=now,
    ))
    return [f for f in failures if f is not None]
