from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./spireworks.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # No authentication: every request acts as this user
    PLACEHOLDER_USER_ID: str = "demo-user"

    # AI recommendations
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    AI_PROVIDER: str = ""  # "openai" or "anthropic"
    AI_MODEL: str = ""  # Override default model per provider
    AI_DAILY_LIMIT: int = 20
    RECOMMENDATION_TIMEOUT_SECONDS: float = 3.0

    # Study timer
    AUTOSAVE_INTERVAL_SECONDS: int = 60
    AUTO_START_DELAY_SECONDS: float = 2.0
    DAILY_GOAL_SECONDS: int = 4 * 3600

    # Solo practice
    QUIZ_QUESTION_SECONDS: int = 20
    QUIZ_ADVANCE_DELAY_SECONDS: float = 0.5
    PRACTICE_RESULTS_TTL_SECONDS: float = 600.0

    # Observability
    SENTRY_DSN: str = ""

    ENVIRONMENT: str = "development"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
