"""
FITDUEL Configuration

Environment variables and engine defaults.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "FITDUEL Training Engine"
    DEBUG: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Exercise analyzer
    MIN_LANDMARK_VISIBILITY: float = 0.5
    STATE_HISTORY_SIZE: int = 10
    COMPLETED_SESSION_RETENTION: int = 100  # finished reports kept until deleted or evicted

    # Trust validator
    TRUST_SAMPLE_EVERY: int = 10          # run raw-frame checks on every Nth frame
    TRUST_MIN_SCORE: int = 50             # below this a session is rejected
    TRUST_REVIEW_MARGIN: int = 20         # scores in [min, min + margin) go to review
    TRUST_REFRESH_SECONDS: float = 5.0    # live trust score refresh cadence
    STATIC_GRACE_SAMPLES: int = 30
    MOTION_SPEED_LIMIT: float = 2.0       # multiple of the plausible human motion rate
    LOW_CONFIDENCE_THRESHOLD: float = 0.7

    # Rep timing patterns
    MAX_REPS_PER_MINUTE: float = 60.0
    MECHANICAL_TIMING_STD_MS: float = 50.0  # rep durations steadier than this look scripted
    MECHANICAL_TIMING_MIN_REPS: int = 5

    # Frame inspector
    HUMAN_MOTION_RATE: float = 40.0       # mean thumbnail diff per second for brisk exercise
    STATIC_DIFF_THRESHOLD: float = 1.0
    STATIC_CONSECUTIVE_SAMPLES: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
