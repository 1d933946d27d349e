from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://postgres:postgres@db:5432/aurora_hunts"
    redis_url: str = "redis://redis:6379/0"

    log_level: str = "INFO"

    # Shared secret for the cron-triggered cleanup endpoint
    cron_secret: str = ""

    # Participation rules
    request_timeout_days: int = 7  # Pending requests/payments expire after this
    max_rejection_count: int = 3  # Rejections before a user is blocked from a hunt

    # Auth settings
    session_cookie_name: str = "aurora_session"
    session_max_age: int = 86400 * 7  # 7 days
    session_cookie_secure: bool = False  # True in production

    class Config:
        env_file = ".env"


settings = Settings()
