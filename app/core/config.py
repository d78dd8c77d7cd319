from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Server ────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    API_PREFIX: str = ""
    LOG_LEVEL: str = "INFO"

    # ── CORS (credentials on, so the visitor cookie round-trips) ──
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    # ── Live stream ───────────────────────────────────────────
    HEARTBEAT_SEC: float = 15.0
    CONNECTION_QUEUE_SIZE: int = 100

    # ── Visitor identity cookie ───────────────────────────────
    VISITOR_COOKIE_NAME: str = "visitorId"
    VISITOR_COOKIE_MAX_AGE_SEC: int = 30 * 24 * 60 * 60
    VISITOR_COOKIE_SECURE: bool = False
    VISITOR_COOKIE_SAMESITE: str = "lax"


settings = Settings()
