"""Service layer that exposes the scheduling engine to presentation code."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from .domain import Job, JobStatus, Machine, TimeRange, to_local_naive
from .layout import MachineLayoutCalculator, ScheduleView, ScheduleViewBuilder
from .planning import ChangeoverCalculator, CostEstimator
from .repository import ProductionStore, RecordNotFoundError
from .settings import SchedulerSettings
from .tracking import PunchResult, StageExecutionTracker
from .validation import (
    IssueKind,
    JobConflictValidator,
    SLSParameterValidator,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _round_to_business_hour(moment: datetime, settings: SchedulerSettings) -> datetime:
    """First full hour at or after ``moment`` inside the business day."""

    rounded = moment.replace(minute=0, second=0, microsecond=0)
    if rounded < moment:
        rounded += timedelta(hours=1)
    day_start = datetime.combine(rounded.date(), settings.business_day_start)
    if rounded < day_start:
        rounded = day_start
    elif rounded.time() >= settings.business_day_end:
        rounded = _next_business_day(rounded.date(), settings)
    while not settings.is_operating_day(rounded.date()):
        rounded = _next_business_day(rounded.date(), settings)
    return rounded


def _next_business_day(day: date, settings: SchedulerSettings) -> datetime:
    candidate = day + timedelta(days=1)
    for _ in range(7):
        if settings.is_operating_day(candidate):
            break
        candidate += timedelta(days=1)
    return datetime.combine(candidate, settings.business_day_start)


def _local_job(job: Job) -> Job:
    start = to_local_naive(job.scheduled_start)
    end = to_local_naive(job.scheduled_end)
    if start is job.scheduled_start and end is job.scheduled_end:
        return job
    return replace(job, scheduled_start=start, scheduled_end=end)


def _local_range(time_range: TimeRange) -> TimeRange:
    return TimeRange(to_local_naive(time_range.start), to_local_naive(time_range.end))


@dataclass(slots=True)
class SchedulerSummary:
    """Row layout of one machine for the scheduler page."""

    machine_id: str
    max_layers: int
    row_height_px: int
    job_count: int


class SchedulerService:
    """Facade that exposes scheduling and stage-tracking use-cases to clients."""

    def __init__(
        self,
        store: Optional[ProductionStore] = None,
        settings: Optional[SchedulerSettings] = None,
        *,
        tracker: Optional[StageExecutionTracker] = None,
    ) -> None:
        self.store = store or ProductionStore()
        self.settings = settings or SchedulerSettings()
        self.parameter_validator = SLSParameterValidator(self.settings)
        self.conflict_validator = JobConflictValidator(
            self.settings, parameter_validator=self.parameter_validator
        )
        self.layout_calculator = MachineLayoutCalculator(self.settings)
        self.view_builder = ScheduleViewBuilder(self.store.get_machines)
        self.cost_estimator = CostEstimator()
        self.tracker = tracker or StageExecutionTracker(self.store, self.settings)

    # ------------------------------------------------------------------
    # Job scheduling
    # ------------------------------------------------------------------
    def validate_job_scheduling(
        self, candidate: Job, existing_jobs: Optional[Sequence[Job]] = None
    ) -> Tuple[bool, List[str]]:
        """Return ``(is_valid, errors)``; warnings are left out."""

        return self.check_job_scheduling(candidate, existing_jobs).as_tuple()

    def check_job_scheduling(
        self, candidate: Job, existing_jobs: Optional[Sequence[Job]] = None
    ) -> ValidationResult:
        """Full validation result including warnings.

        Without ``existing_jobs`` the jobs already stored on the candidate's
        machine are used. Offset-aware times are compared in machine-local time.
        """

        candidate = _local_job(candidate)
        if existing_jobs is None:
            existing_jobs = self.store.get_jobs_for_machine(candidate.machine_id)
        return self.conflict_validator.validate(
            candidate, existing_jobs, self._find_machine(candidate.machine_id)
        )

    def schedule_job(self, job: Job) -> ValidationResult:
        """Validate ``job`` against the stored schedule and persist it when valid."""

        job = _local_job(job)
        with self.store.transaction() as store:
            if job.machine_id not in store.machines:
                result = ValidationResult()
                result.add(
                    IssueKind.NOT_FOUND,
                    f"Machine {job.machine_id} not found",
                    "machine_id",
                )
                return result
            result = self.check_job_scheduling(job)
            if result.is_valid:
                store.add_job(job)
                logger.info(
                    "Scheduled job %s on %s from %s to %s",
                    job.id,
                    job.machine_id,
                    job.scheduled_start,
                    job.scheduled_end,
                )
            else:
                logger.debug("Rejected job %s: %s", job.id, "; ".join(result.errors))
        return result

    def find_next_available_slot(
        self,
        machine_id: str,
        duration_hours: float = 8.0,
        earliest: Optional[datetime] = None,
    ) -> Optional[TimeRange]:
        """First hour-aligned start in business hours with no conflicting job.

        Returns ``None`` when nothing is free within the search horizon.
        """

        duration = self._slot_duration(duration_hours)
        self.store.get_machine(machine_id)
        settings = self.settings
        start = _round_to_business_hour(to_local_naive(earliest or datetime.now()), settings)
        horizon = start + timedelta(days=settings.slot_search_horizon_days)
        booked = self._booked_ranges(machine_id)
        while start < horizon:
            proposal = TimeRange(start, start + duration)
            if not any(proposal.overlaps(existing) for existing in booked):
                logger.debug("Next free slot on %s: %s", machine_id, start)
                return proposal
            start = _round_to_business_hour(start + timedelta(hours=1), settings)
        logger.warning(
            "No %.1f h slot free on %s within %d days",
            duration_hours,
            machine_id,
            settings.slot_search_horizon_days,
        )
        return None

    def available_time_slots(
        self,
        machine_id: str,
        start: datetime,
        end: datetime,
        duration_hours: float = 8.0,
    ) -> List[TimeRange]:
        """Every free hour-aligned slot starting in business hours in ``[start, end)``.

        Consecutive slots may overlap each other; each one is free on its own.
        """

        duration = self._slot_duration(duration_hours)
        self.store.get_machine(machine_id)
        start, end = to_local_naive(start), to_local_naive(end)
        booked = self._booked_ranges(machine_id)
        slots: List[TimeRange] = []
        current = _round_to_business_hour(start, self.settings)
        while current < end:
            proposal = TimeRange(current, current + duration)
            if not any(proposal.overlaps(existing) for existing in booked):
                slots.append(proposal)
            current = _round_to_business_hour(current + timedelta(hours=1), self.settings)
        logger.debug(
            "%d free %.1f h slots on %s between %s and %s",
            len(slots),
            duration_hours,
            machine_id,
            start,
            end,
        )
        return slots

    def conflicting_jobs(
        self,
        machine_id: str,
        time_range: TimeRange,
        exclude_job_id: Optional[str] = None,
    ) -> List[Job]:
        """Active jobs on ``machine_id`` overlapping ``time_range``.

        ``exclude_job_id`` leaves out the job being edited.
        """

        self.store.get_machine(machine_id)
        time_range = _local_range(time_range)
        return [
            job
            for job in self.store.get_jobs_for_machine(machine_id, time_range)
            if job.status != JobStatus.CANCELLED and job.id != exclude_job_id
        ]

    def is_time_slot_available(
        self,
        machine_id: str,
        time_range: TimeRange,
        exclude_job_id: Optional[str] = None,
    ) -> bool:
        return not self.conflicting_jobs(machine_id, time_range, exclude_job_id)

    # ------------------------------------------------------------------
    # Scheduler page
    # ------------------------------------------------------------------
    def get_scheduler_view(
        self, view_mode: str, start_date: Union[date, datetime, None] = None
    ) -> ScheduleView:
        return self.view_builder.build_view(view_mode, start_date)

    def calculate_machine_row_layout(
        self, machine_id: str, jobs: Optional[Sequence[Job]] = None
    ) -> Tuple[int, int]:
        if jobs is None:
            jobs = self.store.get_jobs_for_machine(machine_id)
        return self.layout_calculator.row_layout(machine_id, jobs)

    def machine_summaries(self, date_range: Optional[TimeRange] = None) -> List[SchedulerSummary]:
        summaries: List[SchedulerSummary] = []
        for machine_id in self.view_builder.build_view("day").machines:
            jobs = self.store.get_jobs_for_machine(machine_id, date_range)
            layers, height = self.layout_calculator.row_layout(machine_id, jobs)
            summaries.append(SchedulerSummary(machine_id, layers, height, len(jobs)))
        return summaries

    # ------------------------------------------------------------------
    # SLS process
    # ------------------------------------------------------------------
    def validate_sls_job_compatibility(self, job: Job) -> bool:
        machine = self._find_machine(job.machine_id)
        if machine is None:
            logger.debug("Job %s refers to unknown machine %s", job.id, job.machine_id)
            return False
        return self.parameter_validator.is_compatible(job, machine)

    def calculate_optimal_powder_changeover_time(
        self, machine_id: str, from_material: str, to_material: str
    ) -> int:
        calculator = ChangeoverCalculator(
            self.settings, [machine.id for machine in self.store.get_machines()]
        )
        return calculator.optimal_changeover_minutes(machine_id, from_material, to_material)

    def calculate_sls_job_cost_estimate(
        self, job: Job, *, include_changeover: bool = False
    ) -> Decimal:
        """Estimated job cost, optionally billing the powder swap it requires."""

        changeover_minutes = 0
        if include_changeover:
            machine = self._find_machine(job.machine_id)
            if machine is not None:
                changeover_minutes = self.conflict_validator.changeover.plan_transition(
                    machine, job.sls_material
                ).changeover_minutes
        return self.cost_estimator.estimate(job, changeover_minutes)

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------
    def punch_in(self, job_id: str, stage_id: str, operator_name: str) -> PunchResult:
        return self.tracker.punch_in(job_id, stage_id, operator_name)

    def punch_out(self, job_id: str, stage_id: str) -> PunchResult:
        return self.tracker.punch_out(job_id, stage_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _slot_duration(duration_hours: float) -> timedelta:
        if duration_hours <= 0:
            raise ValueError("duration_hours must be greater than 0")
        return timedelta(hours=duration_hours)

    def _booked_ranges(self, machine_id: str) -> List[TimeRange]:
        return [
            job.time_range
            for job in self.store.get_jobs_for_machine(machine_id)
            if job.status != JobStatus.CANCELLED
        ]

    def _find_machine(self, machine_id: str) -> Optional[Machine]:
        try:
            return self.store.get_machine(machine_id)
        except RecordNotFoundError:
            return None


__all__ = ["SchedulerService", "SchedulerSummary"]
