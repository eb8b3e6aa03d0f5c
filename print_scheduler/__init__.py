import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS

from print_scheduler.api import scheduler_bp

# database imports
from print_scheduler.models import db

# scheduler imports
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from print_scheduler.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def run_nightly_reschedule(app):
    """Reschedule every pending job; runs on the APScheduler thread."""
    from print_scheduler.errors import RescheduleInProgressError
    from print_scheduler.scheduling.config import SchedulerSettings
    from print_scheduler.scheduling.service import default_service

    with app.app_context():
        try:
            result = default_service(SchedulerSettings.from_mapping(app.config)).reschedule_all_jobs(
                run_type="nightly"
            )
            logger.info("Nightly reschedule finished", **result.to_dict())
        except RescheduleInProgressError as e:
            logger.warning("Nightly reschedule skipped, another run is active", error=str(e))
        finally:
            db.session.remove()


def init_scheduler(app):
    """Start the nightly reschedule job if enabled."""

    if not app.config.get("SCHEDULER_NIGHTLY_RESCHEDULE") or app.config.get("TESTING"):
        logger.info("Nightly reschedule disabled")
        return None

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler in the reloader child or on the designated worker
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SCHEDULER_WORKER"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    executors = {"default": ThreadPoolExecutor(1)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=run_nightly_reschedule,
        args=[app],
        trigger="cron",
        hour=app.config.get("SCHEDULER_NIGHTLY_HOUR", 2),
        minute=0,
        id="nightly_reschedule",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started", job="nightly_reschedule", hour=app.config.get("SCHEDULER_NIGHTLY_HOUR", 2))
    return scheduler


def create_app(test_config=None):
    # Import config after dotenv is loaded
    from print_scheduler.config import get_config
    from print_scheduler.db_config import configure_database
    from print_scheduler.scheduling.repository import install_schedule_guard

    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    if test_config:
        app.config.update(test_config)

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))

    # Configure database separately
    configure_database(app, (test_config or {}).get("SQLALCHEMY_DATABASE_URI"))

    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "OPTIONS"])

    db.init_app(app)
    install_schedule_guard()

    app.register_blueprint(scheduler_bp, url_prefix="/scheduler")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    init_scheduler(app)

    return app
