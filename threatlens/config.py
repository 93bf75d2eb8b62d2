from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Configuration
    APP_NAME: str = "ThreatLens"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Whitelist / stats / settings persistence
    DATABASE_URL: str = "sqlite:///./threatlens.db"

    # Reference datasets (bundled JSON unless overridden)
    REFERENCE_DATA_DIR: Optional[str] = None
    REFERENCE_DATA_URL: Optional[str] = None
    REFERENCE_FETCH_TIMEOUT: float = 5.0

    # Threat level thresholds
    THREAT_CRITICAL: int = 90
    THREAT_HIGH: int = 70
    THREAT_MEDIUM: int = 40
    THREAT_LOW: int = 1

    # Lexical heuristics
    TYPOSQUATTING_THRESHOLD: int = 3
    ENTROPY_THRESHOLD: float = 4.0
    MAX_DOMAIN_LENGTH: int = 50

    # Result caches (seconds / entry count that triggers a sweep)
    URL_CACHE_EXPIRY: int = 300
    URL_CACHE_SWEEP_SIZE: int = 1000
    PAGE_CACHE_EXPIRY: int = 600
    PAGE_CACHE_SWEEP_SIZE: int = 500

    # Stats are flushed to the database every N analysed URLs
    STATS_FLUSH_INTERVAL: int = 10

    # Page data bounds
    MAX_TEXT_LENGTH: int = 10000
    MAX_IMAGES: int = 20

settings = Settings()
