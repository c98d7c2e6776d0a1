import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: str = "redis://localhost:6379"

    # Email sequence queue (rq). Disabled = in-process recorder.
    SEQUENCE_QUEUE_ENABLED: bool = False
    SEQUENCE_QUEUE_NAME: str = "email-sequences"

    # Batch scoring
    SCORING_BATCH_SIZE: int = 5
    RECALC_BATCH_SIZE: int = 10
    RECALC_BATCH_DELAY_SECONDS: float = 0.1

    # Session behavior cache
    SESSION_CACHE_MAX_ENTRIES: int = 5000
    SESSION_CACHE_TTL_SECONDS: int = 1800

    # Real-time broadcast
    ENGAGEMENT_CHANNEL: str = "engagement-updates"
    ENGAGEMENT_EVENT: str = "real-time-engagement-update"
    WS_ALLOWED_ORIGINS: str = "*"  # comma-separated

    # Tier regression handling: "suppress" | "win_back"
    DOWNWARD_TIER_POLICY: str = "suppress"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("growth")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = ["DATABASE_URL"]
    if getattr(cfg, "SEQUENCE_QUEUE_ENABLED", False):
        required_keys.append("REDIS_URL")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    policy = str(getattr(cfg, "DOWNWARD_TIER_POLICY", "suppress")).lower()
    if policy not in ("suppress", "win_back"):
        message = f"Invalid DOWNWARD_TIER_POLICY: {policy}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
