"""
Dry-run of a full reschedule: what would move, without writing anything.
"""
from datetime import datetime
from typing import List, Optional

import pandas as pd

from print_scheduler.datetime_utils import isoformat_or_none
from print_scheduler.scheduling.records import StageInstance
from print_scheduler.scheduling.service import RescheduleResult, SchedulingService, group_by_job

PREVIEW_COLUMNS = [
    "job_id",
    "stage_instance_id",
    "stage_id",
    "current_start",
    "proposed_start",
    "proposed_end",
    "queue_position",
    "changed",
]


def preview_reschedule(service: SchedulingService, start: Optional[datetime] = None) -> dict:
    """
    Compute the schedule a full reschedule would produce and diff it against storage.

    Returns:
        dict: {"rows": [...], "violations": [...]} with one row per pending
        stage instance that would be placed
    """
    tracker = service.build_tracker(exclude_pending=True, use_queue_source=False)
    pending: List[StageInstance] = service.repository.fetch_all_pending_stage_instances()
    current = {instance.id: instance for instance in pending}

    result = RescheduleResult(ok=True)
    schedules = service.schedule_jobs(group_by_job(pending), tracker, result, start)

    rows = []
    for schedule in schedules:
        for stage in schedule.stages:
            existing = current.get(stage.stage_instance_id)
            current_start = existing.scheduled_start if existing else None
            rows.append({
                "job_id": schedule.job_id,
                "stage_instance_id": stage.stage_instance_id,
                "stage_id": stage.slot.stage_id,
                "current_start": isoformat_or_none(current_start),
                "proposed_start": stage.slot.start.isoformat(),
                "proposed_end": stage.slot.end.isoformat(),
                "queue_position": stage.slot.queue_position,
                "changed": current_start is None or current_start != stage.slot.start,
            })

    return {"rows": rows, "violations": result.violations}


def preview_to_dataframe(preview: dict) -> pd.DataFrame:
    """Preview rows as a DataFrame, one row per stage instance."""
    df = pd.DataFrame(preview.get("rows", []), columns=PREVIEW_COLUMNS)
    if not df.empty:
        df = df.sort_values(["job_id", "proposed_start"]).reset_index(drop=True)
    return df


def summarize_preview(preview: dict) -> dict:
    """Counts per job of stages that would move."""
    df = preview_to_dataframe(preview)
    if df.empty:
        return {"jobs": 0, "stages": 0, "changed": 0, "by_job": []}

    by_job = (
        df.groupby("job_id")
        .agg(stages=("stage_instance_id", "count"), changed=("changed", "sum"))
        .reset_index()
    )
    return {
        "jobs": int(df["job_id"].nunique()),
        "stages": int(len(df)),
        "changed": int(df["changed"].sum()),
        "by_job": [
            {"job_id": int(r.job_id), "stages": int(r.stages), "changed": int(r.changed)}
            for r in by_job.itertuples(index=False)
        ],
    }


def print_preview(preview: dict) -> None:
    df = preview_to_dataframe(preview)
    if df.empty:
        print("No pending stages to schedule.")
        return
    print(df.to_string(index=False))
    for violation in preview.get("violations", []):
        print(f"! {violation}")
