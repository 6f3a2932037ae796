from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    APP_NAME: str = "Luggage Delivery API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Hosted Postgres often hands out postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Push notifications (Expo push gateway)
    NOTIFICATIONS_ENABLED: bool = True
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    EXPO_ACCESS_TOKEN: str = ""
    PUSH_TIMEOUT_SECONDS: int = 10

    # Vicinity gating (off by default; when off every action is permitted)
    VICINITY_FEATURE_ENABLED: bool = False
    PICKUP_VICINITY_METERS: float = 50.0
    DELIVERY_VICINITY_METERS: float = 50.0
    FAILURE_VICINITY_METERS: float = 50.0

    # Location forwarding
    LOCATION_INTERVAL_SECONDS: float = 5.0
    LOCATION_MIN_DISTANCE_METERS: float = 10.0
    TRACKING_CHECK_INTERVAL_SECONDS: float = 60.0
    SESSION_CHECK_TIMEOUT_SECONDS: float = 5.0

    # Proof / profile image storage
    FILE_LOCAL_DIR: str = "./data/files"
    SIGNED_URL_TTL_SECONDS: int = 31536000  # 1 year
    API_PUBLIC_URL: str = ""  # e.g. https://api.example.com - base for signed file URLs

    # Booking limits
    MAX_CONTRACTS_PER_BOOKING: int = 15
    MAX_LUGGAGE_PER_CONTRACT: int = 15


settings = Settings()
