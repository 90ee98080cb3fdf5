from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "SSS.BE"
    JWT_AUDIENCE: str = "SSS.BE.Users"
    ACCESS_TOKEN_EXPIRE_HOURS: float = 24

    # Account lockout after repeated failed sign-ins
    LOCKOUT_MAX_FAILED_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15

    # Token revocation: "memory" (process-local) or "database" (shared)
    TOKEN_REVOCATION_BACKEND: str = "memory"

    # Reject access tokens that are not the user's latest stored token
    ENFORCE_SINGLE_SESSION: bool = False

    # CORS
    FRONTEND_URL: str = "http://localhost:4200"

    # Anti-spam
    SPAM_PREVENTION_ENABLED: bool = True
    SPAM_WINDOW_SECONDS: int = 60
    SPAM_DUPLICATE_REQUEST_THRESHOLD: int = 5
    SPAM_IP_REQUESTS_PER_MINUTE: int = 100
    SPAM_USER_REQUESTS_PER_MINUTE: int = 200
    SPAM_LOGGED_DUPLICATES_PER_HOUR: int = 10
    SPAM_BODY_SAMPLE_BYTES: int = 1024

    # Rate limiting over the request ledger
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 1000
    RATE_LIMIT_USER_MULTIPLIER: int = 2

    # Duplicate prevention
    DUPLICATE_LOOKBACK_HOURS: int = 24
    DUPLICATE_ATTEMPT_THRESHOLD: int = 5

    # Audit
    AUDIT_ACTIONS_PER_HOUR_THRESHOLD: int = 100
    SPAM_REQUESTS_PER_HOUR_THRESHOLD: int = 10
    AUDIT_APPLICATION_NAME: str = "SSS.BE"

    # Maintenance
    REQUEST_LOG_RETENTION_DAYS: int = 30
    MAINTENANCE_INTERVAL_HOURS: int = 6

    # Redis (optional, for distributed slowapi limits)
    REDIS_URL: Optional[str] = None

    def validate_required_secrets(self) -> list[str]:
        """Validate that critical secrets are set. Returns list of errors."""
        errors = []
        if not self.SECRET_KEY or len(self.SECRET_KEY) < 32:
            errors.append("SECRET_KEY must be set and at least 32 characters")
        if not self.DATABASE_URL:
            errors.append("DATABASE_URL must be set")
        if self.TOKEN_REVOCATION_BACKEND not in ("memory", "database"):
            errors.append("TOKEN_REVOCATION_BACKEND must be 'memory' or 'database'")
        if self.ENVIRONMENT == "production" and self.TOKEN_REVOCATION_BACKEND == "memory":
            errors.append("TOKEN_REVOCATION_BACKEND=memory does not share revocations across instances")
        return errors

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
