"""
Which stages of a job may run next, and the job's critical path.

Stages without parts run strictly in stage_order. Part-supporting stages
form one track per part assignment ("cover", "text", ...) that progress
independently; stages with no part, or the part "both", are shared by every
track.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.records import StageInstance, StageStatus


def part_track(instance: StageInstance) -> Optional[str]:
    """Part tag of the instance's track, or None for a shared stage."""
    if not instance.supports_parts:
        return None
    if instance.part_assignment in SchedulingConfig.SHARED_PART_ASSIGNMENTS:
        return None
    return instance.part_assignment


def _completed(instances: Iterable[StageInstance]) -> bool:
    return all(i.status == StageStatus.COMPLETED for i in instances)


def resolve_eligible_stages(instances: Iterable[StageInstance]) -> List[StageInstance]:
    """
    Stage instances of one job that are ready to be worked on now.

    Pure and idempotent: the input is not modified and calling it twice on the
    same data gives the same answer.

    Returns:
        list: Eligible instances ordered by stage_order; empty when the
        workflow is complete
    """
    instances = list(instances)
    eligible: Dict[int, StageInstance] = {}

    for instance in instances:
        if instance.status == StageStatus.ACTIVE:
            eligible[instance.id] = instance

    # Shared (sequential) stages: the lowest open order, once everything below is done
    open_shared = [
        i for i in instances
        if part_track(i) is None and i.status != StageStatus.COMPLETED
    ]
    if open_shared:
        lowest = min(i.stage_order for i in open_shared)
        below = [i for i in instances if i.stage_order < lowest]
        if _completed(below):
            for instance in open_shared:
                if instance.stage_order == lowest and instance.status == StageStatus.PENDING:
                    eligible[instance.id] = instance

    # Part tracks progress independently of each other
    tracks: Dict[str, List[StageInstance]] = defaultdict(list)
    for instance in instances:
        track = part_track(instance)
        if track is not None:
            tracks[track].append(instance)

    for track, track_instances in tracks.items():
        if any(i.status == StageStatus.ACTIVE for i in track_instances):
            continue
        pending = [i for i in track_instances if i.status == StageStatus.PENDING]
        if not pending:
            continue
        candidate = min(pending, key=lambda i: i.sort_key())
        predecessors = [
            i for i in instances
            if i.stage_order < candidate.stage_order
            and i.dependency_group is None
            and part_track(i) in (None, track)
        ]
        if _completed(predecessors):
            eligible[candidate.id] = candidate

    return sorted(eligible.values(), key=lambda i: i.sort_key())


def is_workflow_complete(instances: Iterable[StageInstance]) -> bool:
    return not resolve_eligible_stages(instances)


@dataclass
class DependencyChainEntry:
    stage_instance_id: int
    stage_id: int
    stage_order: int
    part_assignment: Optional[str]
    duration_minutes: int
    predecessor_ids: List[int] = field(default_factory=list)
    successor_ids: List[int] = field(default_factory=list)
    earliest_start: int = 0
    earliest_finish: int = 0
    latest_start: int = 0
    latest_finish: int = 0

    @property
    def slack(self) -> int:
        return self.latest_start - self.earliest_start

    @property
    def is_critical_path(self) -> bool:
        return self.slack == 0

    def to_dict(self):
        return {
            'stage_instance_id': self.stage_instance_id,
            'stage_id': self.stage_id,
            'stage_order': self.stage_order,
            'part_assignment': self.part_assignment,
            'duration_minutes': self.duration_minutes,
            'predecessor_ids': self.predecessor_ids,
            'successor_ids': self.successor_ids,
            'earliest_start': self.earliest_start,
            'latest_start': self.latest_start,
            'slack': self.slack,
            'is_critical_path': self.is_critical_path,
        }


def _immediate_predecessors(instance: StageInstance, instances: List[StageInstance]) -> List[StageInstance]:
    track = part_track(instance)
    below = [
        i for i in instances
        if i.stage_order < instance.stage_order and (track is None or part_track(i) in (None, track))
    ]
    if not below:
        return []

    shared_orders = [i.stage_order for i in below if part_track(i) is None]
    shared_top = max(shared_orders) if shared_orders else None
    result = [i for i in below if part_track(i) is None and i.stage_order == shared_top]

    by_track: Dict[str, List[StageInstance]] = defaultdict(list)
    for i in below:
        if part_track(i) is not None:
            by_track[part_track(i)].append(i)
    for track_instances in by_track.values():
        top = max(i.stage_order for i in track_instances)
        if shared_top is None or top > shared_top:
            result.extend(i for i in track_instances if i.stage_order == top)
    return result


def build_dependency_chain(instances: Iterable[StageInstance]) -> List[DependencyChainEntry]:
    """
    Predecessor graph of a job's stages with a critical-path pass.

    Each entry carries earliest/latest start in minutes from the start of the
    workflow; entries with zero slack lie on the critical path.
    """
    ordered = sorted(instances, key=lambda i: i.sort_key())
    entries = {
        i.id: DependencyChainEntry(
            stage_instance_id=i.id,
            stage_id=i.stage_id,
            stage_order=i.stage_order,
            part_assignment=i.part_assignment,
            duration_minutes=i.estimated_duration_minutes or 0,
        )
        for i in ordered
    }

    for instance in ordered:
        for predecessor in _immediate_predecessors(instance, ordered):
            entries[instance.id].predecessor_ids.append(predecessor.id)
            entries[predecessor.id].successor_ids.append(instance.id)

    # Forward pass
    for instance in ordered:
        entry = entries[instance.id]
        entry.earliest_start = max(
            (entries[p].earliest_finish for p in entry.predecessor_ids), default=0
        )
        entry.earliest_finish = entry.earliest_start + entry.duration_minutes

    # Backward pass
    project_end = max((e.earliest_finish for e in entries.values()), default=0)
    for instance in reversed(ordered):
        entry = entries[instance.id]
        entry.latest_finish = min(
            (entries[s].latest_start for s in entry.successor_ids), default=project_end
        )
        entry.latest_start = entry.latest_finish - entry.duration_minutes

    return [entries[i.id] for i in ordered]


def critical_path(instances: Iterable[StageInstance]) -> List[int]:
    """Stage instance ids with zero slack, in workflow order."""
    return [e.stage_instance_id for e in build_dependency_chain(instances) if e.is_critical_path]
