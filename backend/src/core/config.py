from pydantic_settings import BaseSettings
from typing import Optional
from functools import lru_cache

class Settings(BaseSettings):
    PROJECT_NAME: str = "Dental Office Assistant API"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Redis (dialog state store)
    REDIS_URL: str = "redis://localhost:6379/0"
    DIALOG_STATE_TTL: int = 7200  # 2 hours

    # Knowledge base (QnA Maker)
    QNA_KNOWLEDGE_BASE_ID: Optional[str] = None
    QNA_ENDPOINT_KEY: Optional[str] = None
    QNA_ENDPOINT_HOSTNAME: Optional[str] = None
    # Answers scoring below this are dropped by the client. Keep it under
    # ACTIVE_LEARNING_THRESHOLD or no low-confidence answers ever reach the card.
    QNA_SCORE_THRESHOLD: float = 0.2
    QNA_TOP: int = 3
    QNA_IS_TEST: bool = False

    # Top score at or below which close answers are offered for disambiguation
    ACTIVE_LEARNING_THRESHOLD: float = 0.3

    # Intent recognition (LUIS)
    LUIS_APP_ID: Optional[str] = None
    LUIS_API_KEY: Optional[str] = None
    LUIS_API_HOSTNAME: Optional[str] = None
    LUIS_SLOT: str = "production"

    # Appointment scheduler
    SCHEDULER_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
