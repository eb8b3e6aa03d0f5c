"""
Stage duration from quantity, running speed and make-ready time.

    duration = ceil(quantity / speed_per_hour * 60) + make_ready

Timing settings are taken from the job's stage specification when it has
them, then from the stage defaults, then from a fallback rate. The
calculation never raises; bad inputs fall through to the next source.
"""
import math
from dataclasses import dataclass
from typing import Optional

from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.records import ProductionStage, TimingSource

logger = get_logger(__name__)


@dataclass
class StageTiming:
    estimated_duration_minutes: int
    production_minutes: int
    make_ready_minutes: int
    source: str

    def to_dict(self):
        return {
            'estimated_duration_minutes': self.estimated_duration_minutes,
            'production_minutes': self.production_minutes,
            'make_ready_minutes': self.make_ready_minutes,
            'source': self.source,
        }


def _positive_number(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def _non_negative_int(value) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return int(math.ceil(number))


def _production_minutes(quantity: int, speed: float, speed_unit: Optional[str]) -> int:
    unit = (speed_unit or '').strip().lower()
    if unit in SchedulingConfig.DURATION_SPEED_UNITS:
        return int(math.ceil(quantity * speed))
    factor = SchedulingConfig.get_speed_unit_factor(unit)
    return int(math.ceil(quantity / speed * factor))


def _stage_source(stage: Optional[ProductionStage]) -> Optional[TimingSource]:
    if stage is None:
        return None
    return TimingSource(
        running_speed_per_hour=stage.running_speed_per_hour,
        make_ready_minutes=stage.make_ready_minutes,
        speed_unit=stage.speed_unit,
        ignore_quantity=stage.ignore_quantity,
        name=stage.name,
    )


def calculate_stage_timing(
    quantity,
    stage: Optional[ProductionStage] = None,
    specification: Optional[TimingSource] = None,
) -> StageTiming:
    """
    Estimate how long a stage will take for a quantity.

    Args:
        quantity: Units to produce; missing or negative counts as 0
        stage: Stage defaults
        specification: Job-specific timing, preferred over the stage defaults

    Returns:
        StageTiming: Never raises; falls back to 100 units/hour and a
        10-minute make-ready when no source has usable values
    """
    qty = _non_negative_int(quantity) or 0

    for label, source in (('specification', specification), ('stage', _stage_source(stage))):
        if source is None:
            continue

        # ignore_quantity: the stage takes its make-ready time only.
        # A booked slot needs start < end, so zero make-ready still books one minute.
        if source.ignore_quantity:
            make_ready = _non_negative_int(source.make_ready_minutes)
            if make_ready is None:
                make_ready = SchedulingConfig.FALLBACK_MAKE_READY_MINUTES
            return StageTiming(
                estimated_duration_minutes=max(1, make_ready),
                production_minutes=0,
                make_ready_minutes=make_ready,
                source=label,
            )

        speed = _positive_number(source.running_speed_per_hour)
        if speed is None:
            continue
        make_ready = _non_negative_int(source.make_ready_minutes)
        if make_ready is None:
            make_ready = SchedulingConfig.FALLBACK_MAKE_READY_MINUTES
        production = _production_minutes(qty, speed, source.speed_unit)
        return StageTiming(
            estimated_duration_minutes=max(1, production + make_ready),
            production_minutes=production,
            make_ready_minutes=make_ready,
            source=label,
        )

    logger.debug(
        "No usable timing source, using fallback rate",
        stage=stage.name if stage else None,
        quantity=qty,
    )
    production = _production_minutes(qty, SchedulingConfig.FALLBACK_SPEED_PER_HOUR, 'per_hour')
    make_ready = SchedulingConfig.FALLBACK_MAKE_READY_MINUTES
    return StageTiming(
        estimated_duration_minutes=max(1, production + make_ready),
        production_minutes=production,
        make_ready_minutes=make_ready,
        source='fallback',
    )
