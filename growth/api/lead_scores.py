"""
growth/api/lead_scores.py

Lead score endpoints: batch-path recompute and analytics reads.
Thin layer: parsing and response shaping only, logic lives in LeadScoringService.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from growth.core.errors import ValidationError
from growth.features.scoring.container import ScoringContainer, get_container
from growth.models.lead_score import Tier

router = APIRouter(prefix="/v1/lead-scores", tags=["lead-scores"])


class UpdateScoreRequest(BaseModel):
    userId: str
    triggerSequences: bool = True


class BatchUpdateRequest(BaseModel):
    userIds: List[str] = Field(default_factory=list)


class RecalculateRequest(BaseModel):
    confirm: bool = False


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    if not now:
        return None
    try:
        parsed = datetime.fromisoformat(now.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid now timestamp: {now}") from exc
    # offset-less timestamps are UTC
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_tier(tier: Optional[str]) -> Optional[Tier]:
    if not tier:
        return None
    try:
        return Tier.parse(tier)
    except ValueError as exc:
        raise ValidationError(f"Unknown tier: {tier}") from exc


@router.post("/update")
def update_lead_score(body: UpdateScoreRequest, container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    service = container.service
    result = service.update_lead_score(body.userId, trigger_sequences=body.triggerSequences)
    record = service.get_record(body.userId)
    return {
        "success": True,
        "leadScore": record.to_dict(readiness=service.get_readiness(record)),
        "tierChange": result.to_dict() if result else None,
    }


@router.post("/batch")
def batch_update(body: BatchUpdateRequest, container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    if not body.userIds:
        raise ValidationError("userIds must be a non-empty list")
    report = container.service.batch_update_report(body.userIds)
    return {
        "success": True,
        "processed": len(body.userIds),
        **report.summary(),
        "tierChanges": [r.to_dict() for r in report.tier_changes],
    }


@router.post("/recalculate")
def recalculate(body: RecalculateRequest, container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    if not body.confirm:
        raise ValidationError("Recalculation requires confirm=true")
    report = container.service.recalculate_all_scores()
    return {"success": True, **report}


@router.get("/analytics")
def scoring_analytics(
    now: Optional[str] = Query(None, description="ISO timestamp for deterministic results (testing only)"),
    container: ScoringContainer = Depends(get_container),
) -> Dict[str, Any]:
    return container.service.get_scoring_analytics(now=_parse_now(now)).to_dict()


@router.get("/distribution")
def score_distribution(container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    return container.service.get_score_distribution().to_dict()


@router.get("/progression")
def tier_progression(container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    return container.service.get_tier_progression_stats().to_dict()


@router.get("/recent-changes")
def recent_tier_changes(
    hours: int = Query(24, ge=1, le=24 * 30),
    now: Optional[str] = Query(None),
    container: ScoringContainer = Depends(get_container),
) -> Dict[str, Any]:
    now_dt = _parse_now(now)
    records = container.service.get_recent_tier_changes(hours, now=now_dt)
    return {"count": len(records), "records": [r.to_dict(now=now_dt) for r in records]}


@router.get("/top")
def top_scores(
    tier: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    container: ScoringContainer = Depends(get_container),
) -> Dict[str, Any]:
    entries = container.service.get_top_scores(limit=limit, tier=_parse_tier(tier))
    return {"topScores": [e.to_dict() for e in entries]}


@router.get("/{user_id}")
def get_lead_score(user_id: str, container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    service = container.service
    record = service.get_record(user_id)
    return {"leadScore": record.to_dict(readiness=service.get_readiness(record))}
