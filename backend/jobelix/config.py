from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///jobelix.db"
    secret_key: str = "change-me-in-production"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30
    environment: str = "development"
    app_url: str = ""
    log_level: str = "INFO"
    cookie_secure: bool = False

    status_window_hours: int = 24
    user_cache_ttl_seconds: float = 3.0
    user_cache_sweep_seconds: float = 10.0
    bot_start_hourly_limit: int = 10
    bot_start_daily_limit: int = 50

    class Config:
        env_prefix = "JOBELIX_"


settings = Settings()
