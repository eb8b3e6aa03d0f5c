import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with common settings."""
    # Scheduler tunables
    SCHEDULER_UTC_OFFSET_HOURS = float(os.environ.get("SCHEDULER_UTC_OFFSET_HOURS", "2"))
    SCHEDULER_HORIZON_DAYS = int(os.environ.get("SCHEDULER_HORIZON_DAYS", "60"))
    SCHEDULER_ROLLOVER_MINUTES = int(os.environ.get("SCHEDULER_ROLLOVER_MINUTES", "60"))
    SCHEDULER_PERSIST_RETRY_ATTEMPTS = int(os.environ.get("SCHEDULER_PERSIST_RETRY_ATTEMPTS", "3"))
    SCHEDULER_PERSIST_RETRY_DELAY_SECONDS = float(os.environ.get("SCHEDULER_PERSIST_RETRY_DELAY_SECONDS", "0.5"))
    SCHEDULER_HOLIDAYS = os.environ.get("SCHEDULER_HOLIDAYS", "")  # comma-separated ISO dates

    # Nightly reschedule-all job (APScheduler)
    SCHEDULER_NIGHTLY_RESCHEDULE = os.environ.get("SCHEDULER_NIGHTLY_RESCHEDULE", "false").lower() in ("1", "true", "yes")
    SCHEDULER_NIGHTLY_HOUR = int(os.environ.get("SCHEDULER_NIGHTLY_HOUR", "2"))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")  # stdout only when unset

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


def get_config():
    """Get the appropriate configuration class based on environment variable.
    
    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    
    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()
    
    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
