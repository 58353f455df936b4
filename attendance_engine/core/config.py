# attendance_engine/core/config.py
from functools import lru_cache

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (or a local `.env` file)
    at runtime.

    These settings are used for:
    - DB connection
    - Zoom API client credentials
    - Admin API key
    - Attendance engine policy constants (cliff thresholds, merge gap)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Session Attendance Engine"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")

    LOG_LEVEL: str = Field("INFO", description="Root log level.")
    LOG_FORMAT: str = Field(
        "text",
        description="'text' for human-readable logs, 'json' for structured logs.",
    )

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./attendance_engine.db",
        description="SQLAlchemy-compatible async database URL",
    )

    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="API key required for hitting /admin endpoints",
    )

    # --- Zoom (meeting provider) ---
    ZOOM_ACCOUNT_ID: str | None = None
    ZOOM_CLIENT_ID: str | None = None
    ZOOM_CLIENT_SECRET: str | None = None
    ZOOM_BASE_URL: AnyHttpUrl | None = None

    # --- Attendance engine policy ---
    SEGMENT_MERGE_GAP_MINUTES: float = Field(
        default=1.0,
        description="Segments separated by less than this many minutes are merged.",
    )
    CLIFF_BUCKET_WIDTH_MINUTES: int = Field(
        default=5,
        description="Width of each departure histogram bucket.",
    )
    CLIFF_WINDOW_MINUTES: int = Field(
        default=10,
        description="Width of the sliding window scanned for a mass departure.",
    )
    CLIFF_MIN_ABSOLUTE_DEPARTURES: int = Field(
        default=3,
        description="Minimum departures inside the window for a cliff to count.",
    )
    CLIFF_MIN_FRACTION: float = Field(
        default=0.25,
        description="Minimum share of all participants that must leave inside the window.",
    )
    CLIFF_MIN_SPIKE_RATIO: float = Field(
        default=2.0,
        description="Minimum window departure rate relative to the baseline rate.",
    )
    CLIFF_MIN_PARTICIPANTS: int = Field(
        default=5,
        description="Sessions with fewer participants are skipped.",
    )
    CLIFF_HIGH_SPIKE_RATIO: float = 3.0
    CLIFF_HIGH_FRACTION: float = 0.4
    CLIFF_MEDIUM_SPIKE_RATIO: float = 2.0
    CLIFF_MEDIUM_FRACTION: float = 0.25
    CLIFF_SPIKE_EPSILON: float = Field(
        default=0.25,
        description="Floor for the baseline departure rate (departures per bucket).",
    )

    BULK_FETCH_CONCURRENCY: int = Field(
        default=4,
        description="Maximum concurrent provider fetches during bulk detection.",
    )


class EngineConfig(BaseModel):
    """
    Immutable policy constants consumed by the pure engine components.

    Defaults mirror the Settings defaults so the components can be used
    (and tested) without any environment.
    """

    model_config = ConfigDict(frozen=True)

    merge_gap_minutes: float = 1.0
    bucket_width_minutes: int = Field(5, gt=0)
    cliff_window_minutes: int = Field(10, gt=0)
    min_absolute_departures: int = 3
    min_fraction: float = 0.25
    min_spike_ratio: float = 2.0
    min_participants: int = 5
    high_spike_ratio: float = 3.0
    high_fraction: float = 0.4
    medium_spike_ratio: float = 2.0
    medium_fraction: float = 0.25
    spike_epsilon: float = Field(0.25, gt=0)


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()


def get_engine_config() -> EngineConfig:
    """
    Build the engine policy from the current settings.
    """
    settings = get_settings()
    return EngineConfig(
        merge_gap_minutes=settings.SEGMENT_MERGE_GAP_MINUTES,
        bucket_width_minutes=settings.CLIFF_BUCKET_WIDTH_MINUTES,
        cliff_window_minutes=settings.CLIFF_WINDOW_MINUTES,
        min_absolute_departures=settings.CLIFF_MIN_ABSOLUTE_DEPARTURES,
        min_fraction=settings.CLIFF_MIN_FRACTION,
        min_spike_ratio=settings.CLIFF_MIN_SPIKE_RATIO,
        min_participants=settings.CLIFF_MIN_PARTICIPANTS,
        high_spike_ratio=settings.CLIFF_HIGH_SPIKE_RATIO,
        high_fraction=settings.CLIFF_HIGH_FRACTION,
        medium_spike_ratio=settings.CLIFF_MEDIUM_SPIKE_RATIO,
        medium_fraction=settings.CLIFF_MEDIUM_FRACTION,
        spike_epsilon=settings.CLIFF_SPIKE_EPSILON,
    )
