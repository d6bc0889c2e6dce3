"""In-memory repositories and the production store used by the engine."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import (
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    Protocol,
    TypeVar,
)

from .domain import (
    Job,
    JobStatus,
    Machine,
    MaterialTransition,
    Part,
    PartStageRequirement,
    ProductionStage,
    ProductionStageExecution,
    TimeRange,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class Repository(Protocol[T]):
    """CRUD surface shared by the in-memory and SQLite repositories."""

    def __contains__(self, item_id: object) -> bool: ...

    def __iter__(self) -> Iterator[T]: ...

    def add(self, item_id: str, item: T) -> None: ...

    def upsert(self, item_id: str, item: T) -> None: ...

    def get(self, item_id: str) -> T: ...

    def remove(self, item_id: str) -> None: ...

    def list(self) -> List[T]: ...


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._items:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
        self._items[item_id] = item

    def upsert(self, item_id: str, item: T) -> None:
        self._items[item_id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        if item_id not in self._items:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        del self._items[item_id]

    def list(self) -> List[T]:
        return list(self._items.values())

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))


def _same_operator(first: str, second: str) -> bool:
    return first.strip().casefold() == second.strip().casefold()


class ProductionStore:
    """Job, machine and stage data the scheduling engine reads and writes.

    Every check-then-act sequence that must be atomic runs inside
    :meth:`transaction`, which serialises writers on one re-entrant lock.
    """

    def __init__(
        self,
        job_repo: Optional[Repository[Job]] = None,
        machine_repo: Optional[Repository[Machine]] = None,
        part_repo: Optional[Repository[Part]] = None,
        stage_repo: Optional[Repository[ProductionStage]] = None,
        requirement_repo: Optional[Repository[PartStageRequirement]] = None,
        execution_repo: Optional[Repository[ProductionStageExecution]] = None,
    ) -> None:
        self.jobs = job_repo if job_repo is not None else InMemoryRepository()
        self.machines = (
            machine_repo if machine_repo is not None else InMemoryRepository()
        )
        self.parts = part_repo if part_repo is not None else InMemoryRepository()
        self.stages = stage_repo if stage_repo is not None else InMemoryRepository()
        self.requirements = (
            requirement_repo if requirement_repo is not None else InMemoryRepository()
        )
        self.executions = (
            execution_repo if execution_repo is not None else InMemoryRepository()
        )
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["ProductionStore"]:
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def add_job(self, job: Job) -> Job:
        with self._lock:
            self.jobs.add(job.id, job)
        return job

    def get_job(self, job_id: str) -> Job:
        return self.jobs.get(job_id)

    def get_jobs_for_machine(
        self, machine_id: str, date_range: Optional[TimeRange] = None
    ) -> List[Job]:
        """Jobs on ``machine_id`` ordered by start, optionally clipped to a range."""

        jobs = [
            job
            for job in self.jobs
            if job.machine_id == machine_id
            and (date_range is None or job.time_range.overlaps(date_range))
        ]
        jobs.sort(key=lambda job: (job.scheduled_start, job.id))
        return jobs

    def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        actual_start: Optional[datetime] = None,
        actual_end: Optional[datetime] = None,
    ) -> Job:
        with self._lock:
            job = self.jobs.get(job_id)
            previous = job.status
            job.status = status
            if actual_start is not None:
                job.actual_start = actual_start
            if actual_end is not None:
                job.actual_end = actual_end
            self.jobs.upsert(job.id, job)
        logger.info("Job %s status %s -> %s", job_id, previous.value, status.value)
        return job

    # ------------------------------------------------------------------
    # Machines
    # ------------------------------------------------------------------
    def add_machine(self, machine: Machine) -> Machine:
        with self._lock:
            self.machines.add(machine.id, machine)
        return machine

    def get_machine(self, machine_id: str) -> Machine:
        return self.machines.get(machine_id)

    def get_machines(self) -> List[Machine]:
        return sorted(self.machines.list(), key=lambda machine: machine.id)

    def apply_material_transition(self, transition: MaterialTransition) -> Machine:
        with self._lock:
            machine = self.machines.get(transition.machine_id)
            if transition.is_noop:
                return machine
            machine.current_material = transition.to_material
            self.machines.upsert(machine.id, machine)
        logger.info(
            "Machine %s material %r -> %r (%d min changeover)",
            transition.machine_id,
            transition.from_material,
            transition.to_material,
            transition.changeover_minutes,
        )
        return machine

    # ------------------------------------------------------------------
    # Parts and stages
    # ------------------------------------------------------------------
    def add_part(self, part: Part) -> Part:
        with self._lock:
            self.parts.add(part.id, part)
        return part

    def add_stage(self, stage: ProductionStage) -> ProductionStage:
        with self._lock:
            self.stages.add(stage.id, stage)
        return stage

    def get_stage(self, stage_id: str) -> ProductionStage:
        return self.stages.get(stage_id)

    def get_stages(self) -> List[ProductionStage]:
        return sorted(
            self.stages.list(), key=lambda stage: (stage.display_order, stage.id)
        )

    def add_requirement(self, requirement: PartStageRequirement) -> PartStageRequirement:
        with self._lock:
            self.requirements.add(requirement.id, requirement)
        return requirement

    def get_part_stage_requirements(self, part_id: str) -> List[PartStageRequirement]:
        requirements = [
            requirement
            for requirement in self.requirements
            if requirement.part_id == part_id
        ]
        requirements.sort(key=lambda requirement: (requirement.execution_order, requirement.id))
        return requirements

    # ------------------------------------------------------------------
    # Stage executions
    # ------------------------------------------------------------------
    def get_executions_for_job(self, job_id: str) -> List[ProductionStageExecution]:
        executions = [
            execution for execution in self.executions if execution.job_id == job_id
        ]
        executions.sort(key=lambda execution: execution.start_date)
        return executions

    def get_active_execution(
        self, job_id: str, stage_id: str
    ) -> Optional[ProductionStageExecution]:
        for execution in self.executions:
            if (
                execution.is_active
                and execution.job_id == job_id
                and execution.production_stage_id == stage_id
            ):
                return execution
        return None

    def get_operator_active_execution(
        self, operator_name: str
    ) -> Optional[ProductionStageExecution]:
        for execution in self.executions:
            if execution.is_active and _same_operator(execution.operator_name, operator_name):
                return execution
        return None

    def save_execution(self, execution: ProductionStageExecution) -> ProductionStageExecution:
        with self._lock:
            self.executions.upsert(execution.id, execution)
        return execution


__all__ = [
    "InMemoryRepository",
    "ProductionStore",
    "Repository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
