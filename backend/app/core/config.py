from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://presensi:presensi_secret@db:5432/presensi"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    RUN_MIGRATIONS_ON_STARTUP: bool = False

    # Calendar day boundaries for "today" are taken in this zone
    TIMEZONE: str = "UTC"

    # Fixes reporting a worse accuracy radius are rejected
    MAX_LOCATION_ACCURACY_METERS: float = 5000.0
    PIN_ADJUSTMENT_MAX_METERS: float = 100.0

    GEOFENCE_ENFORCED: bool = False
    GEOFENCE_RADIUS_METERS: float = 100.0
    GEOFENCE_ACCURACY_TOLERANCE_METERS: float = 5000.0
    OFFICE_LATITUDE: float | None = None
    OFFICE_LONGITUDE: float | None = None

    # Off: overtime_hours is always 0
    OVERTIME_ENABLED: bool = False
    STANDARD_WORK_HOURS: float = 8.0

    GRACE_PERIOD_MINUTES: int = 15

    # When False, a failed activity-log write aborts check-in/check-out
    ACTIVITY_LOG_BEST_EFFORT: bool = True


settings = Settings()
