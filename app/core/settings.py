"""
Core settings and environment variables for the report workflow service.
Uses pydantic-settings for type-safe environment variable loading.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Report Workflow Service"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - Frontend URLs allowed to access this API (comma separated)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:5174,http://127.0.0.1:5173"

    # Firebase/Firestore
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None  # Path to service account JSON

    # In-memory store for local development and tests
    USE_MOCK_DB: bool = False

    # Workflow policy
    OFFICER_CAN_VERIFY: bool = False  # assigned officer may move awaiting_verification -> verified
    LIST_DELETED_FOR_ADMINS: bool = True  # admins may opt in to see soft-deleted reports
    MAX_AFTER_PHOTOS: int = 10

    # Bulk operations
    MAX_BULK_IDS: int = 500
    BULK_MAX_WORKERS: int = 1  # >1 runs bulk items on a thread pool

    # Notifications
    NOTIFICATION_MAX_ATTEMPTS: int = 3

    # Audit
    AUDIT_MAX_PAGE_SIZE: int = 200

    # Category classifier (external service)
    CLASSIFIER_ENABLED: bool = True
    CLASSIFIER_URL: Optional[str] = None
    CLASSIFIER_API_KEY: Optional[str] = None
    CLASSIFIER_TIMEOUT_SECONDS: float = 5.0
    CLASSIFIER_MIN_CONFIDENCE: float = 0.6

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="allow")


# Global settings instance
settings = Settings()
