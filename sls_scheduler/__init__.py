"""Scheduling and stage-execution engine for an SLS metal printing shop.

This package provides data models, in-memory and SQLite persistence, job
conflict and process-parameter validation, powder changeover and cost
calculations, scheduler layout helpers and operator punch-in tracking.
"""

from .domain import (
    ExecutionStatus,
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
from .layout import InvalidViewModeError, ScheduleView
from .materials import SlsMaterial
from .services import SchedulerService, SchedulerSummary
from .settings import SchedulerSettings
from .tracking import PunchResult
from .validation import IssueKind, ValidationResult

__all__ = [
    "ExecutionStatus",
    "Job",
    "JobStatus",
    "Machine",
    "MaterialTransition",
    "Part",
    "PartStageRequirement",
    "ProductionStage",
    "ProductionStageExecution",
    "TimeRange",
    "InvalidViewModeError",
    "ScheduleView",
    "SlsMaterial",
    "SchedulerService",
    "SchedulerSummary",
    "SchedulerSettings",
    "PunchResult",
    "IssueKind",
    "ValidationResult",
]
