"""Operator punch-in/punch-out tracking of production stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from .domain import (
    ExecutionStatus,
    Job,
    JobStatus,
    PartStageRequirement,
    ProductionStage,
    ProductionStageExecution,
)
from .planning import ChangeoverCalculator
from .repository import ProductionStore, RecordNotFoundError
from .settings import SchedulerSettings
from .validation import IssueKind

logger = logging.getLogger(__name__)


class StageState(str, Enum):
    """Progress of one stage of one job."""

    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


@dataclass(slots=True)
class PunchResult:
    """Outcome of a punch-in or punch-out request."""

    success: bool
    message: str
    kind: Optional[IssueKind] = None
    execution: Optional[ProductionStageExecution] = None
    job_status: Optional[JobStatus] = None

    def as_tuple(self) -> Tuple[bool, str]:
        return self.success, self.message


def _failure(kind: IssueKind, message: str) -> PunchResult:
    return PunchResult(success=False, message=message, kind=kind)


class StageExecutionTracker:
    """State machine over :class:`ProductionStageExecution` records.

    Per ``(job, stage)`` pair the states are NotStarted, InProgress and
    Completed, the last one terminal. An operator holds at most one
    InProgress execution across all jobs and stages. Checks run in a fixed
    order (existence, pair conflict, operator exclusivity) inside one store
    transaction, so concurrent requests cannot both pass them.
    """

    def __init__(
        self,
        store: ProductionStore,
        settings: Optional[SchedulerSettings] = None,
        changeover: Optional[ChangeoverCalculator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.settings = settings or SchedulerSettings()
        self.changeover = changeover or ChangeoverCalculator(
            self.settings, strict_machines=False
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Punch in
    # ------------------------------------------------------------------
    def punch_in(self, job_id: str, stage_id: str, operator_name: str) -> PunchResult:
        operator = (operator_name or "").strip()
        if not operator:
            return _failure(IssueKind.VALIDATION, "Operator name is required")

        with self.store.transaction() as store:
            try:
                job = store.get_job(job_id)
                stage = store.get_stage(stage_id)
            except RecordNotFoundError:
                return _failure(IssueKind.NOT_FOUND, "Job or stage not found")

            active = store.get_active_execution(job_id, stage_id)
            if active is not None:
                return _failure(
                    IssueKind.CONFLICT,
                    f"{stage.name} is already in progress for job {job_id} "
                    f"(punched in by {active.operator_name})",
                )
            if self._is_completed(job_id, stage_id):
                return _failure(
                    IssueKind.CONFLICT,
                    f"{stage.name} is already completed for job {job_id}",
                )

            busy = store.get_operator_active_execution(operator)
            if busy is not None:
                return _failure(
                    IssueKind.CONFLICT,
                    f"{operator} is still punched into stage {busy.production_stage_id} "
                    f"of job {busy.job_id}; operators work one stage at a time",
                )

            if job.status.is_closed:
                return _failure(
                    IssueKind.VALIDATION,
                    f"Job {job_id} is {job.status.value}; no further stages can start",
                )
            if not stage.is_active:
                return _failure(IssueKind.VALIDATION, f"{stage.name} is not an active stage")

            if self.settings.enforce_stage_sequence:
                blocking = self._unfinished_predecessor(
                    job, stage_id, self._required_stages(job)
                )
                if blocking is not None:
                    return _failure(
                        IssueKind.VALIDATION,
                        f"{stage.name} cannot start before {blocking.name} is completed",
                    )

            now = self.clock()
            execution = ProductionStageExecution(
                id=str(uuid4()),
                job_id=job_id,
                production_stage_id=stage_id,
                operator_name=operator,
                start_date=now,
                estimated_hours=self._estimated_hours(job, stage),
                created_at=now,
            )
            store.save_execution(execution)
            if job.status == JobStatus.SCHEDULED:
                job = store.update_job_status(job_id, JobStatus.IN_PROGRESS, actual_start=now)

        logger.info("Operator %s punched into stage %s for job %s", operator, stage_id, job_id)
        return PunchResult(
            success=True,
            message=f"Punched into {stage.name} successfully",
            execution=execution,
            job_status=job.status,
        )

    # ------------------------------------------------------------------
    # Punch out
    # ------------------------------------------------------------------
    def punch_out(self, job_id: str, stage_id: str) -> PunchResult:
        with self.store.transaction() as store:
            if job_id not in store.jobs:
                return _failure(IssueKind.NOT_FOUND, "Job not found")
            execution = store.get_active_execution(job_id, stage_id)
            if execution is None:
                return _failure(
                    IssueKind.CONFLICT,
                    f"No active punch-in found for stage {stage_id} of job {job_id}",
                )

            now = self.clock()
            hours = (now - execution.start_date).total_seconds() / 3600
            if hours < 0:
                logger.warning(
                    "Clock skew on execution %s (job %s, stage %s): %.4f h, flagged for review",
                    execution.id,
                    job_id,
                    stage_id,
                    hours,
                )
                hours = 0.0
                execution.needs_review = True
            execution.status = ExecutionStatus.COMPLETED
            execution.completion_date = now
            execution.actual_hours = hours
            store.save_execution(execution)

            job = store.get_job(job_id)
            if not job.status.is_closed and self._all_required_completed(job):
                job = store.update_job_status(job_id, JobStatus.COMPLETED, actual_end=now)
                self._load_job_material(job)
            stage_name = self._stage_name(stage_id)

        logger.info(
            "Operator %s punched out of stage %s for job %s after %.2f h",
            execution.operator_name,
            stage_id,
            job_id,
            hours,
        )
        return PunchResult(
            success=True,
            message=f"Punched out of {stage_name} successfully",
            execution=execution,
            job_status=job.status,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def stage_state(self, job_id: str, stage_id: str) -> StageState:
        if self.store.get_active_execution(job_id, stage_id) is not None:
            return StageState.IN_PROGRESS
        if self._is_completed(job_id, stage_id):
            return StageState.COMPLETED
        return StageState.NOT_STARTED

    def operator_execution(self, operator_name: str) -> Optional[ProductionStageExecution]:
        return self.store.get_operator_active_execution(operator_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _is_completed(self, job_id: str, stage_id: str) -> bool:
        return any(
            execution.production_stage_id == stage_id
            and execution.status == ExecutionStatus.COMPLETED
            for execution in self.store.get_executions_for_job(job_id)
        )

    def _required_stages(self, job: Job) -> List[PartStageRequirement]:
        if not job.part_id:
            return []
        return [
            requirement
            for requirement in self.store.get_part_stage_requirements(job.part_id)
            if requirement.is_required
        ]

    def _all_required_completed(self, job: Job) -> bool:
        requirements = self._required_stages(job)
        if not requirements:
            return True
        completed = {
            execution.production_stage_id
            for execution in self.store.get_executions_for_job(job.id)
            if execution.status == ExecutionStatus.COMPLETED
        }
        return all(requirement.production_stage_id in completed for requirement in requirements)

    def _unfinished_predecessor(
        self, job: Job, stage_id: str, requirements: List[PartStageRequirement]
    ) -> Optional[ProductionStage]:
        current = next(
            (item for item in requirements if item.production_stage_id == stage_id), None
        )
        if current is None:
            return None
        for requirement in requirements:
            if requirement.execution_order >= current.execution_order:
                break
            if not self._is_completed(job.id, requirement.production_stage_id):
                return self.store.get_stage(requirement.production_stage_id)
        return None

    def _estimated_hours(self, job: Job, stage: ProductionStage) -> float:
        requirements = (
            self.store.get_part_stage_requirements(job.part_id) if job.part_id else []
        )
        for requirement in requirements:
            if (
                requirement.production_stage_id == stage.id
                and requirement.estimated_hours is not None
            ):
                return requirement.estimated_hours
        return stage.default_setup_minutes / 60

    def _load_job_material(self, job: Job) -> None:
        if not job.sls_material:
            return
        try:
            machine = self.store.get_machine(job.machine_id)
        except RecordNotFoundError:
            logger.debug("Machine %s not registered; material left unchanged", job.machine_id)
            return
        transition = self.changeover.plan_transition(machine, job.sls_material)
        if not transition.is_noop:
            self.store.apply_material_transition(transition)

    def _stage_name(self, stage_id: str) -> str:
        try:
            return self.store.get_stage(stage_id).name
        except RecordNotFoundError:
            return stage_id


__all__ = ["StageState", "PunchResult", "StageExecutionTracker"]
