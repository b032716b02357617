"""
Core settings and environment variables for CityFlux.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "CityFlux Alerts"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Firebase (Firestore + Realtime Database + Cloud Messaging)
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON
    FIREBASE_DATABASE_URL: Optional[str] = None  # e.g. https://<project>-default-rtdb.firebaseio.com

    # Congestion tuning
    RECENT_WINDOW_MINUTES: int = 10  # window to consider reports as clustered
    CLUSTER_THRESHOLD_HIGH: int = 3  # count >= this => HIGH
    CLUSTER_THRESHOLD_MEDIUM: int = 2  # count >= this => MEDIUM
    PROXIMITY_RADIUS_METERS: float = 400.0
    GEO_BUCKET_PRECISION: int = 3  # decimals, ~111m at the equator

    # Decay sweep
    CONGESTION_DECAY_MINUTES: int = 30  # buckets older than this step down one level
    DECAY_SWEEP_INTERVAL_MINUTES: float = 5
    DECAY_SWEEP_ENABLED: bool = True  # disable when an external scheduler calls /events/congestion/decay

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
