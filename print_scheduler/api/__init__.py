# Package
from flask import Blueprint

from print_scheduler.logging_config import get_logger

logger = get_logger(__name__)

scheduler_bp = Blueprint("scheduler", __name__)

from print_scheduler.api import routes
