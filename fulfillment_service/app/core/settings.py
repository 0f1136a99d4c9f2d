"""
Fulfillment Service configuration using shared patterns
"""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the fulfillment service directory path
FULFILLMENT_SERVICE_DIR = Path(__file__).parent.parent.parent
ENV_FILE = FULFILLMENT_SERVICE_DIR / ".env"


class FulfillmentSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Fulfillment Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Service specific
    SERVICE_NAME: str = "fulfillment-service"

    # Database
    FULFILLMENT_DATABASE_URL: str = "sqlite+aiosqlite:///./fulfillment.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Kafka for events
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    EVENTS_ENABLED: bool = False
    KAFKA_CONNECT_RETRIES: int = 10
    KAFKA_RETRY_DELAY_SECONDS: float = 2.0
    KAFKA_CONNECT_TIMEOUT_SECONDS: float = 30.0

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: List[str] = ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
    CORS_HEADERS: List[str] = ["*"]

    # Inventory rules
    LOW_STOCK_THRESHOLD: int = 5
    CRITICAL_STOCK_THRESHOLD: int = 2
    STOCK_UPDATE_MAX_ATTEMPTS: int = 3

    # Order listing
    LIST_QUERY_MAX_ATTEMPTS: int = 3
    LIST_QUERY_RETRY_DELAY_SECONDS: float = 1.0


# Create a singleton instance
_settings_instance = None


def get_settings() -> FulfillmentSettings:
    """Get settings singleton instance"""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = FulfillmentSettings()
    return _settings_instance
