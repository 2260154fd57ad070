import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Settings read straight from environment variables.
    """
    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL")

    # Redis: login sessions and rate limiter storage are kept apart.
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL")

    # JWT and login sessions
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "change-me")
    ALGORITHM: str = os.environ.get("ALGORITHM", "HS256")
    SESSION_TTL_SECONDS: int = int(os.environ.get("SESSION_TTL_SECONDS", 3600))

    # Attendance rules
    ORGANIZATION_TIMEZONE: str = os.environ.get("ORGANIZATION_TIMEZONE", "Asia/Kolkata")
    SCAN_LOOKAHEAD_MINUTES: int = int(os.environ.get("SCAN_LOOKAHEAD_MINUTES", 120))
    DEFAULT_LATE_GRACE_MINUTES: int = int(os.environ.get("DEFAULT_LATE_GRACE_MINUTES", 30))
    ON_LEAVE_POLICY: str = os.environ.get("ON_LEAVE_POLICY", "exclude")
    LEAVE_SWEEP_INTERVAL_MINUTES: int = int(os.environ.get("LEAVE_SWEEP_INTERVAL_MINUTES", 10))

    # Logging
    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

# Single importable instance
settings = Config()
