from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from enum import Enum

db = SQLAlchemy()


class RunStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class ProductionStage(db.Model):
    """A workstation or process step (printing, cutting, binding...)."""
    __tablename__ = "production_stages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    supports_parts = db.Column(db.Boolean, nullable=False, default=False)

    # Default timing, overridden per job by a StageSpecification
    running_speed_per_hour = db.Column(db.Float, nullable=True)
    make_ready_minutes = db.Column(db.Integer, nullable=True)
    speed_unit = db.Column(db.String(32), nullable=False, default="per_hour")
    ignore_quantity = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<ProductionStage {self.id} - {self.name}>"


class StageSpecification(db.Model):
    """Named timing variant of a stage (e.g. a paper or finish type)."""
    __tablename__ = "stage_specifications"

    id = db.Column(db.Integer, primary_key=True)
    production_stage_id = db.Column(db.Integer, db.ForeignKey("production_stages.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    running_speed_per_hour = db.Column(db.Float, nullable=True)
    make_ready_minutes = db.Column(db.Integer, nullable=True)
    speed_unit = db.Column(db.String(32), nullable=True)
    ignore_quantity = db.Column(db.Boolean, nullable=False, default=False)

    stage = db.relationship("ProductionStage")

    def __repr__(self):
        return f"<StageSpecification {self.id} - {self.name}>"


class ProductionJob(db.Model):
    __tablename__ = "production_jobs"

    id = db.Column(db.Integer, primary_key=True)
    wo_no = db.Column(db.String(32), nullable=False, unique=True)
    customer = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)

    # Date promised at intake; the scheduler never overwrites it
    promised_date = db.Column(db.Date, nullable=True)

    # Derived by the scheduler
    due_date = db.Column(db.Date, nullable=True)
    estimated_completion_date = db.Column(db.Date, nullable=True)
    due_date_warning_level = db.Column(db.String(16), nullable=True)
    last_scheduled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    stage_instances = db.relationship(
        "JobStageInstance",
        back_populates="job",
        order_by="JobStageInstance.stage_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ProductionJob {self.id} - {self.wo_no}>"

    def to_dict(self):
        return {
            'id': self.id,
            'wo_no': self.wo_no,
            'customer': self.customer,
            'quantity': self.quantity,
            'promised_date': self.promised_date.isoformat() if self.promised_date else None,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'estimated_completion_date': (
                self.estimated_completion_date.isoformat() if self.estimated_completion_date else None
            ),
            'due_date_warning_level': self.due_date_warning_level,
        }


class JobStageInstance(db.Model):
    """One stage of one job's workflow, with its schedule once placed."""
    __tablename__ = "job_stage_instances"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("production_jobs.id"), nullable=False, index=True)
    production_stage_id = db.Column(db.Integer, db.ForeignKey("production_stages.id"), nullable=False)
    stage_specification_id = db.Column(db.Integer, db.ForeignKey("stage_specifications.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, active, completed
    stage_order = db.Column(db.Integer, nullable=False)
    part_assignment = db.Column(db.String(32), nullable=True)  # 'cover', 'text', 'both'
    dependency_group = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    estimated_duration_minutes = db.Column(db.Integer, nullable=True)

    # Schedule (start/end stored as naive UTC, scheduled_date is the shop-local day)
    scheduled_date = db.Column(db.Date, nullable=True)
    scheduled_start_at = db.Column(db.DateTime, nullable=True)
    scheduled_end_at = db.Column(db.DateTime, nullable=True)
    queue_position = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=True, default=datetime.utcnow, onupdate=datetime.utcnow)

    job = db.relationship("ProductionJob", back_populates="stage_instances")
    stage = db.relationship("ProductionStage")
    specification = db.relationship("StageSpecification")

    __table_args__ = (
        db.CheckConstraint(
            "scheduled_start_at IS NULL OR scheduled_end_at > scheduled_start_at",
            name="ck_jsi_slot_order",
        ),
        db.CheckConstraint(
            "queue_position IS NULL OR queue_position >= 1",
            name="ck_jsi_queue_position",
        ),
        db.CheckConstraint(
            "estimated_duration_minutes IS NULL OR estimated_duration_minutes > 0",
            name="ck_jsi_duration",
        ),
        db.Index("idx_jsi_stage_day", "production_stage_id", "scheduled_date"),
    )

    def __repr__(self):
        return f"<JobStageInstance {self.id} - job {self.job_id} - stage {self.production_stage_id} - {self.status}>"


class SchedulingRun(db.Model):
    """Audit record of each reschedule invocation."""
    __tablename__ = "scheduling_runs"

    id = db.Column(db.Integer, primary_key=True)
    operation_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    run_type = db.Column(db.String(50), nullable=False, index=True)  # 'reschedule_all', 'reschedule_job', 'nightly'
    status = db.Column(db.Enum(RunStatus), nullable=False, default=RunStatus.IN_PROGRESS)
    job_id = db.Column(db.Integer, nullable=True, index=True)

    # Timing
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)

    # Outcome
    wrote_slots = db.Column(db.Integer, default=0)
    updated_jsi = db.Column(db.Integer, default=0)
    violations = db.Column(db.JSON, nullable=True)

    # Error information
    error_type = db.Column(db.String(100), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<SchedulingRun {self.operation_id} - {self.run_type} - {self.status}>"

    def to_dict(self, tz=None):
        """Serialize; times are rendered in the given shop timezone."""
        from print_scheduler.datetime_utils import format_datetime_local
        return {
            'id': self.id,
            'operation_id': self.operation_id,
            'run_type': self.run_type,
            'status': self.status.value,
            'job_id': self.job_id,
            'started_at': format_datetime_local(self.started_at, tz),
            'completed_at': format_datetime_local(self.completed_at, tz),
            'duration_seconds': self.duration_seconds,
            'wrote_slots': self.wrote_slots,
            'updated_jsi': self.updated_jsi,
            'violations': self.violations or [],
            'error_type': self.error_type,
            'error_message': self.error_message,
        }
