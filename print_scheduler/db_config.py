"""Database configuration and setup for different environments."""
import os


def get_database_engine_options():
    """Get database engine options for PostgreSQL connections."""
    from sqlalchemy.pool import QueuePool
    
    return {
        "pool_pre_ping": True,        # Detect and refresh dead connections before use
        "pool_recycle": 280,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,
            "application_name": "print_scheduler",
            "options": "-c statement_timeout=30000"  # a full reschedule must not hang on one statement
        },
    }


def get_local_database_config():
    """Get database configuration for local development.
    
    Returns:
        tuple: (database_uri, engine_options)
    """
    database_uri = os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///scheduler.sqlite"
    engine_options = None  # SQLite doesn't need engine options
    return database_uri, engine_options


def get_remote_database_config(environment):
    """Get database configuration for sandbox or production.
    
    Returns:
        tuple: (database_uri, engine_options)
        
    Raises:
        ValueError: If database URL is not configured
    """
    env_var = "SANDBOX_DATABASE_URL" if environment == "sandbox" else "PRODUCTION_DATABASE_URL"
    database_url = os.environ.get(env_var) or os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError(f"{env_var} or DATABASE_URL must be set for {environment} environment")
    
    return database_url, get_database_engine_options()


def get_database_config(environment=None):
    """Get database configuration based on environment.
    
    Args:
        environment: Environment name ('local', 'sandbox', 'production')
                    If None, will be determined from ENVIRONMENT or FLASK_ENV env vars.
    
    Returns:
        tuple: (database_uri, engine_options)
    """
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    environment = environment.lower()
    
    if environment in ["sandbox", "staging", "stage"]:
        return get_remote_database_config("sandbox")
    elif environment in ["production", "prod"]:
        return get_remote_database_config("production")
    else:
        return get_local_database_config()


def configure_database(app, database_uri=None):
    """Configure database settings for the Flask app.
    
    Sets SQLALCHEMY_DATABASE_URI and SQLALCHEMY_ENGINE_OPTIONS on the app
    config. An explicit database_uri (tests) skips environment lookup.
    
    Args:
        app: Flask application instance
        database_uri: Optional URI overriding the environment
    """
    if database_uri:
        engine_options = None
    else:
        database_uri, engine_options = get_database_config()
    
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ECHO"] = False  # Set to True for SQL query debugging
    
    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
