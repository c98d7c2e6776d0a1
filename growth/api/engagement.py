"""
growth/api/engagement.py

Interaction tracking endpoint: validates, applies the score increment,
records the interaction and broadcasts the engagement update.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from growth.core.logging import bound_engagement_context
from growth.features.scoring.container import ScoringContainer, get_container

router = APIRouter(prefix="/v1/engagement", tags=["engagement"])


class InteractionRequest(BaseModel):
    userId: Optional[str] = None
    sessionId: Optional[str] = None
    type: Optional[str] = None
    data: Optional[Any] = None


@router.post("/interactions")
async def track_interaction(body: InteractionRequest, container: ScoringContainer = Depends(get_container)) -> Dict[str, Any]:
    with bound_engagement_context(body.userId, body.sessionId):
        update = await container.orchestrator.apply_interaction(
            body.userId or "",
            body.sessionId or "",
            body.type or "",
            body.data,
        )
    return {"success": True, "update": update.to_dict()}
