"""Core data structures for the SLS scheduling and stage-execution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional


class JobStatus(str, Enum):
    """Lifecycle stages for a scheduled machine job."""

    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_closed(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.CANCELLED}


class ExecutionStatus(str, Enum):
    """State of a single production stage execution."""

    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


def to_local_naive(moment: datetime) -> datetime:
    """Convert an offset-aware ``moment`` to naive machine-local time.

    Stored schedules use naive local datetimes; naive values pass through.
    """

    if moment.tzinfo is None or moment.utcoffset() is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Half-open interval ``[start, end)`` in machine-local time."""

    start: datetime
    end: datetime

    @property
    def is_valid(self) -> bool:
        return self.end > self.start

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_hours(self) -> float:
        """Length in hours, zero for empty or inverted ranges."""

        return max(self.duration.total_seconds() / 3600, 0.0)

    def overlaps(self, other: "TimeRange") -> bool:
        # Touching boundaries (self.end == other.start) do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def days(self) -> List[date]:
        """Calendar days touched by the range."""

        if not self.is_valid:
            return []
        last = (self.end - timedelta(microseconds=1)).date()
        current = self.start.date()
        touched: List[date] = []
        while current <= last:
            touched.append(current)
            current += timedelta(days=1)
        return touched


@dataclass(slots=True)
class Machine:
    """An SLS machine that jobs are placed on."""

    id: str
    name: str
    machine_type: str = "SLS"
    current_material: str = ""
    supported_materials: FrozenSet[str] = frozenset()
    priority: int = 5
    max_laser_power_watts: float = 400.0
    max_scan_speed_mm_per_sec: float = 7000.0
    min_layer_thickness_microns: float = 20.0
    max_layer_thickness_microns: float = 60.0
    is_available_for_scheduling: bool = True
    location: str = ""

    def supports_material(self, material: str) -> bool:
        wanted = material.strip().lower()
        return any(item.strip().lower() == wanted for item in self.supported_materials)


@dataclass(slots=True)
class Part:
    """Part master data referenced by jobs."""

    id: str
    part_number: str
    description: str = ""
    sls_material: str = ""


@dataclass(slots=True)
class Job:
    """A build job scheduled on a specific machine."""

    id: str
    machine_id: str
    part_number: str
    scheduled_start: datetime
    scheduled_end: datetime
    part_id: str = ""
    status: JobStatus = JobStatus.SCHEDULED
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    quantity: int = 1
    priority: int = 3
    # SLS process parameters
    sls_material: str = "Ti-6Al-4V Grade 5"
    laser_power_watts: float = 200.0
    scan_speed_mm_per_sec: float = 1200.0
    layer_thickness_microns: float = 30.0
    hatch_spacing_microns: float = 120.0
    build_temperature_celsius: float = 180.0
    argon_purity_percent: float = 99.9
    oxygen_content_ppm: float = 50.0
    # Cost inputs
    estimated_powder_usage_kg: float = 0.0
    labor_cost_per_hour: Decimal = Decimal("0")
    machine_operating_cost_per_hour: Decimal = Decimal("0")
    argon_cost_per_hour: Decimal = Decimal("0")
    material_cost_per_kg: Optional[Decimal] = None
    notes: str = ""

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.scheduled_start, self.scheduled_end)

    @property
    def duration_hours(self) -> float:
        return self.time_range.duration_hours

    def overlaps_with(self, other: "Job") -> bool:
        return self.machine_id == other.machine_id and self.time_range.overlaps(
            other.time_range
        )


@dataclass(slots=True)
class ProductionStage:
    """A named step of the production workflow, e.g. printing or EDM."""

    id: str
    name: str
    display_order: int
    default_setup_minutes: int = 30
    is_active: bool = True
    description: str = ""


@dataclass(slots=True)
class PartStageRequirement:
    """Links a part to a stage it must pass through."""

    id: str
    part_id: str
    production_stage_id: str
    execution_order: int = 1
    estimated_hours: Optional[float] = None
    is_required: bool = True


@dataclass(slots=True)
class ProductionStageExecution:
    """Operator work on one stage of one job, created on punch-in."""

    id: str
    job_id: str
    production_stage_id: str
    operator_name: str
    start_date: datetime
    status: ExecutionStatus = ExecutionStatus.IN_PROGRESS
    completion_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    needs_review: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_active(self) -> bool:
        return self.status == ExecutionStatus.IN_PROGRESS


@dataclass(frozen=True, slots=True)
class MaterialTransition:
    """A requested change of the powder loaded in a machine."""

    machine_id: str
    from_material: str
    to_material: str
    changeover_minutes: int = 0

    @property
    def is_noop(self) -> bool:
        return self.from_material.strip().lower() == self.to_material.strip().lower()


__all__ = [
    "JobStatus",
    "ExecutionStatus",
    "TimeRange",
    "Machine",
    "Part",
    "Job",
    "ProductionStage",
    "PartStageRequirement",
    "ProductionStageExecution",
    "MaterialTransition",
    "to_local_naive",
]
