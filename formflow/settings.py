import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Remote submission service (account-opening backend)
    REMOTE_BASE_URL: str = os.getenv("REMOTE_BASE_URL", "http://localhost:5268/api")
    REMOTE_TIMEOUT_SEC: float = float(os.getenv("REMOTE_TIMEOUT_SEC", "10"))
    REMOTE_API_TOKEN: str = os.getenv("REMOTE_API_TOKEN", "")

    # Local draft store
    DRAFT_KEY_PREFIX: str = os.getenv("DRAFT_KEY_PREFIX", "draft")
    # 0 keeps drafts until explicitly discarded
    DRAFT_TTL_SEC: int = int(os.getenv("DRAFT_TTL_SEC", "0"))

    # Single in-flight synchronization per device
    SYNC_LOCK_TTL_MS: int = int(os.getenv("SYNC_LOCK_TTL_MS", "30000"))

    # Business rules
    MIN_APPLICANT_AGE: int = int(os.getenv("MIN_APPLICANT_AGE", "18"))
    CHECK_EXISTING_ACCOUNT: bool = os.getenv("CHECK_EXISTING_ACCOUNT", "true").lower() == "true"

    # Observability
    METRICS_ENABLED: bool = os.getenv("METRICS_ENABLED", "true").lower() == "true"
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"

    # Admin endpoints
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
