"""
HTTP routes for triggering reschedules and reading scheduling data.
"""
from datetime import date

from flask import current_app, jsonify, request

from print_scheduler.api import scheduler_bp
from print_scheduler.datetime_utils import get_local_timezone, parse_datetime
from print_scheduler.errors import JobNotFoundError, RescheduleInProgressError, SchedulingError, ValidationError
from print_scheduler.logging_config import get_logger
from print_scheduler.models import SchedulingRun, db
from print_scheduler.reschedule_lock import reschedule_lock_manager
from print_scheduler.scheduling.config import SchedulerSettings
from print_scheduler.scheduling.due_dates import DueDateEstimator
from print_scheduler.scheduling.preview import preview_reschedule, summarize_preview
from print_scheduler.scheduling.service import default_service

logger = get_logger(__name__)


def _service():
    return default_service(SchedulerSettings.from_mapping(current_app.config))


def _parse_start(service, value):
    """Optional ISO start time; a value without offset is shop-local time."""
    try:
        return parse_datetime(value, service.calendar.tz)
    except ValueError:
        raise ValidationError("start", value, "must be an ISO 8601 datetime")


def _parse_date(field, value):
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(field, value, "must be an ISO date (YYYY-MM-DD)")


def _error_response(exc, message):
    """Map scheduling errors to a JSON body and status code."""
    db.session.rollback()
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, JobNotFoundError):
        status = 404
    elif isinstance(exc, RescheduleInProgressError):
        status = 409
    else:
        status = 500
    details = exc.details if isinstance(exc, SchedulingError) else str(exc)
    return jsonify({"error": str(exc) if status != 500 else message, "details": details}), status


def _result_response(result):
    return jsonify(result.to_dict()), 200 if result.ok else 500


@scheduler_bp.route("/reschedule-all", methods=["POST"])
def reschedule_all():
    """Clear and rebuild the schedule of every pending stage instance."""
    try:
        data = request.get_json(silent=True) or {}
        service = _service()
        result = service.reschedule_all_jobs(start=_parse_start(service, data.get("start")))
        return _result_response(result)
    except Exception as exc:
        logger.error("Error in reschedule-all", error=str(exc))
        return _error_response(exc, "Failed to reschedule jobs")


@scheduler_bp.route("/jobs/<int:job_id>/reschedule", methods=["POST"])
def reschedule_single_job(job_id):
    """Reschedule one job's pending stages (e.g. after proof approval)."""
    try:
        data = request.get_json(silent=True) or {}
        service = _service()
        result = service.reschedule_job(job_id, start=_parse_start(service, data.get("start")))
        return _result_response(result)
    except Exception as exc:
        logger.error("Error rescheduling job", job_id=job_id, error=str(exc))
        return _error_response(exc, "Failed to reschedule job")


@scheduler_bp.route("/jobs/<int:job_id>/eligible-stages", methods=["GET"])
def eligible_stages(job_id):
    try:
        stages = _service().eligible_stages(job_id)
        return jsonify({
            "job_id": job_id,
            "workflow_complete": not stages,
            "eligible": [
                {
                    "stage_instance_id": s.id,
                    "stage_id": s.stage_id,
                    "stage_name": s.stage_name,
                    "stage_order": s.stage_order,
                    "status": s.status.value,
                    "part_assignment": s.part_assignment,
                }
                for s in stages
            ],
        }), 200
    except Exception as exc:
        logger.error("Error resolving eligible stages", job_id=job_id, error=str(exc))
        return _error_response(exc, "Failed to resolve eligible stages")


@scheduler_bp.route("/jobs/<int:job_id>/dependency-chain", methods=["GET"])
def dependency_chain(job_id):
    try:
        chain = _service().dependency_chain(job_id)
        return jsonify({
            "job_id": job_id,
            "chain": [entry.to_dict() for entry in chain],
            "critical_path": [e.stage_instance_id for e in chain if e.is_critical_path],
        }), 200
    except Exception as exc:
        logger.error("Error building dependency chain", job_id=job_id, error=str(exc))
        return _error_response(exc, "Failed to build dependency chain")


@scheduler_bp.route("/jobs/<int:job_id>/stage-timings", methods=["POST"])
def recalculate_stage_timings(job_id):
    """Recompute estimated durations of the job's pending stages."""
    try:
        stages = _service().recalculate_stage_durations(job_id)
        return jsonify({"job_id": job_id, "stages": stages}), 200
    except Exception as exc:
        logger.error("Error recalculating stage timings", job_id=job_id, error=str(exc))
        return _error_response(exc, "Failed to recalculate stage timings")


@scheduler_bp.route("/due-date-estimate", methods=["POST"])
def due_date_estimate():
    """
    Fast due-date estimate for a job at intake.

    Body: {"durations": [minutes, ...], "today": "YYYY-MM-DD" (optional)}
    """
    try:
        data = request.get_json(silent=True) or {}
        today = _parse_date("today", data["today"]) if data.get("today") else None
        service = _service()
        estimate = DueDateEstimator(service.calendar).estimate(data.get("durations") or [], today)
        return jsonify(estimate.to_dict()), 200
    except Exception as exc:
        logger.error("Error estimating due date", error=str(exc))
        return _error_response(exc, "Failed to estimate due date")


@scheduler_bp.route("/capacity", methods=["GET"])
def capacity():
    """Per-stage utilisation for ?date=YYYY-MM-DD (default: today)."""
    try:
        service = _service()
        value = request.args.get("date")
        day = _parse_date("date", value) if value else service.calendar.now().date()
        return jsonify({"date": day.isoformat(), "stages": service.capacity_snapshot(day)}), 200
    except Exception as exc:
        logger.error("Error building capacity snapshot", error=str(exc))
        return _error_response(exc, "Failed to build capacity snapshot")


@scheduler_bp.route("/preview", methods=["GET"])
def preview():
    """Dry run of reschedule-all; nothing is written."""
    try:
        service = _service()
        result = preview_reschedule(service, start=_parse_start(service, request.args.get("start")))
        return jsonify({**result, "summary": summarize_preview(result)}), 200
    except Exception as exc:
        logger.error("Error building reschedule preview", error=str(exc))
        return _error_response(exc, "Failed to build reschedule preview")


@scheduler_bp.route("/status", methods=["GET"])
def status():
    """Lock status and the most recent runs."""
    try:
        tz = get_local_timezone(SchedulerSettings.from_mapping(current_app.config).utc_offset_hours)
        runs = SchedulingRun.query.order_by(SchedulingRun.started_at.desc()).limit(10).all()
        return jsonify({
            "lock": reschedule_lock_manager.get_status(),
            "recent_runs": [run.to_dict(tz) for run in runs],
        }), 200
    except Exception as exc:
        logger.error("Error getting scheduler status", error=str(exc))
        return _error_response(exc, "Failed to get scheduler status")
