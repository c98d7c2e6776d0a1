"""User domain model (the parts the scoring engine reads and writes)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from growth.models.lead_score import Tier


@dataclass
class User:
    user_id: str
    email: Optional[str] = None
    current_tier: Tier = Tier.BROWSER  # denormalized copy of the lead score tier
    engagement_score: float = 0.0
    personalization_settings: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "currentTier": self.current_tier.value,
            "engagementScore": round(self.engagement_score, 1),
            "personalizationSettings": dict(self.personalization_settings),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
