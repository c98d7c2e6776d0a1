"""
Wiring for the scoring engine: one explicit set of stores, collaborators and
services per process, built from settings.
"""

from dataclasses import dataclass
from typing import Optional

from growth.core.cache import TTLCache
from growth.core.config import Settings, settings
from growth.features.scoring.activity import get_activity_store
from growth.features.scoring.config import scoring_config_from_settings
from growth.features.scoring.engagement import EngagementOrchestrator
from growth.features.scoring.service import LeadScoringService
from growth.features.scoring.store import get_lead_score_store
from growth.features.sequences.dispatcher import get_sequence_dispatcher
from growth.features.users.directory import get_user_directory
from growth.realtime.hub import BroadcastHub, hub as default_hub


@dataclass
class ScoringContainer:
    activity: object
    store: object
    users: object
    dispatcher: object
    hub: BroadcastHub
    service: LeadScoringService
    orchestrator: EngagementOrchestrator


def build_container(settings_obj: Optional[Settings] = None, hub: Optional[BroadcastHub] = None) -> ScoringContainer:
    cfg = settings_obj or settings
    hub = hub or default_hub
    config = scoring_config_from_settings(cfg)

    activity = get_activity_store()
    store = get_lead_score_store()
    users = get_user_directory()
    dispatcher = get_sequence_dispatcher()

    service = LeadScoringService(
        activity,
        store,
        users,
        dispatcher,
        config=config,
        batch_size=cfg.SCORING_BATCH_SIZE,
        recalc_batch_size=cfg.RECALC_BATCH_SIZE,
        recalc_delay_seconds=cfg.RECALC_BATCH_DELAY_SECONDS,
    )
    orchestrator = EngagementOrchestrator(
        store,
        users,
        hub,
        dispatcher,
        session_cache=TTLCache(
            maxsize=cfg.SESSION_CACHE_MAX_ENTRIES,
            ttl_seconds=cfg.SESSION_CACHE_TTL_SECONDS,
        ),
        config=config,
        channel=cfg.ENGAGEMENT_CHANNEL,
        event_name=cfg.ENGAGEMENT_EVENT,
        activity=activity,
    )
    return ScoringContainer(
        activity=activity,
        store=store,
        users=users,
        dispatcher=dispatcher,
        hub=hub,
        service=service,
        orchestrator=orchestrator,
    )


_container: Optional[ScoringContainer] = None


def get_container() -> ScoringContainer:
    global _container
    if _container is None:
        _container = build_container()
    return _container


def reset_container() -> None:
    """FOR TESTING ONLY - forces re-initialization on next get_container() call."""
    global _container
    _container = None
