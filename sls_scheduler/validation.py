"""Job scheduling and SLS process-parameter validation.

Validation never raises for bad input. Problems come back as
:class:`ValidationIssue` records so a caller can show every one of them at
once; only the blocking kinds make a job invalid, warnings are advisory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from .domain import Job, JobStatus, Machine
from .materials import lookup_material
from .planning import ChangeoverCalculator
from .settings import SchedulerSettings

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%d %H:%M"


class IssueKind(str, Enum):
    """Category of a reported problem."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    WARNING = "warning"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    kind: IssueKind
    message: str
    field: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.kind != IssueKind.WARNING


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating a job; valid when nothing blocking was found."""

    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(issue.is_blocking for issue in self.issues)

    @property
    def errors(self) -> List[str]:
        return [issue.message for issue in self.issues if issue.is_blocking]

    @property
    def warnings(self) -> List[str]:
        return [issue.message for issue in self.issues if not issue.is_blocking]

    def of_kind(self, kind: IssueKind) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.kind == kind]

    def add(self, kind: IssueKind, message: str, field: Optional[str] = None) -> None:
        self.issues.append(ValidationIssue(kind, message, field))

    def extend(self, issues: Iterable[ValidationIssue]) -> None:
        self.issues.extend(issues)

    def as_tuple(self) -> Tuple[bool, List[str]]:
        return self.is_valid, self.errors


class SLSParameterValidator:
    """Checks laser and powder-bed parameters of a job."""

    def __init__(self, settings: Optional[SchedulerSettings] = None) -> None:
        self.settings = settings or SchedulerSettings()

    def validate_parameters(self, job: Job) -> List[str]:
        """Hard parameter errors only; an empty list means the job may be scheduled."""

        return [issue.message for issue in self._core_checks(job)]

    def check(self, job: Job, machine: Optional[Machine] = None) -> List[ValidationIssue]:
        issues = self._core_checks(job)
        issues.extend(self._material_checks(job))
        issues.extend(self._atmosphere_checks(job))
        if machine is not None:
            issues.extend(self._machine_checks(job, machine))
        return issues

    def is_compatible(self, job: Job, machine: Machine) -> bool:
        """Whether ``machine`` can build ``job`` as parameterised."""

        if not machine.is_available_for_scheduling:
            return False
        if self._core_checks(job):
            return False
        if lookup_material(job.sls_material) is None:
            return False
        return not self._machine_checks(job, machine)

    def _core_checks(self, job: Job) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if not job.laser_power_watts > 0:
            issues.append(
                ValidationIssue(
                    IssueKind.VALIDATION,
                    f"Laser power must be greater than 0 W (got {job.laser_power_watts:g})",
                    "laser_power_watts",
                )
            )
        if not job.scan_speed_mm_per_sec > 0:
            issues.append(
                ValidationIssue(
                    IssueKind.VALIDATION,
                    f"Scan speed must be greater than 0 mm/s (got {job.scan_speed_mm_per_sec:g})",
                    "scan_speed_mm_per_sec",
                )
            )
        if not job.layer_thickness_microns > 0:
            issues.append(
                ValidationIssue(
                    IssueKind.VALIDATION,
                    "Layer thickness must be greater than 0 microns "
                    f"(got {job.layer_thickness_microns:g})",
                    "layer_thickness_microns",
                )
            )
        if not job.hatch_spacing_microns > 0:
            issues.append(
                ValidationIssue(
                    IssueKind.VALIDATION,
                    "Hatch spacing must be greater than 0 microns "
                    f"(got {job.hatch_spacing_microns:g})",
                    "hatch_spacing_microns",
                )
            )
        return issues

    def _material_checks(self, job: Job) -> List[ValidationIssue]:
        material = lookup_material(job.sls_material)
        if material is None:
            return [
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Material {job.sls_material!r} is not in the material catalogue; "
                    "process windows were not checked",
                    "sls_material",
                )
            ]
        profile = material.profile
        issues: List[ValidationIssue] = []
        windows = (
            ("laser_power_watts", "Laser power", "W", profile.laser_power_watts),
            ("scan_speed_mm_per_sec", "Scan speed", "mm/s", profile.scan_speed_mm_per_sec),
            (
                "layer_thickness_microns",
                "Layer thickness",
                "microns",
                profile.layer_thickness_microns,
            ),
            (
                "build_temperature_celsius",
                "Build temperature",
                "C",
                profile.build_temperature_celsius,
            ),
        )
        for attribute, label, unit, window in windows:
            value = getattr(job, attribute)
            # Non-positive values are already hard errors.
            if value <= 0 and attribute != "build_temperature_celsius":
                continue
            if not window.contains(value):
                issues.append(
                    ValidationIssue(
                        IssueKind.WARNING,
                        f"{label} {value:g} {unit} is outside the recommended "
                        f"{window.describe()} {unit} window for {material.value}",
                        attribute,
                    )
                )
        return issues

    def _atmosphere_checks(self, job: Job) -> List[ValidationIssue]:
        settings = self.settings
        issues: List[ValidationIssue] = []
        if job.argon_purity_percent < settings.min_argon_purity_percent:
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Argon purity {job.argon_purity_percent:g}% is below the "
                    f"{settings.min_argon_purity_percent:g}% minimum",
                    "argon_purity_percent",
                )
            )
        if job.oxygen_content_ppm > settings.max_oxygen_content_ppm:
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Oxygen content {job.oxygen_content_ppm:g} ppm exceeds the "
                    f"{settings.max_oxygen_content_ppm:g} ppm maximum",
                    "oxygen_content_ppm",
                )
            )
        return issues

    def _machine_checks(self, job: Job, machine: Machine) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if machine.supported_materials and not machine.supports_material(job.sls_material):
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"{machine.id} does not list {job.sls_material} as a supported material",
                    "sls_material",
                )
            )
        if job.laser_power_watts > machine.max_laser_power_watts:
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Laser power {job.laser_power_watts:g} W exceeds {machine.id} "
                    f"maximum of {machine.max_laser_power_watts:g} W",
                    "laser_power_watts",
                )
            )
        if job.scan_speed_mm_per_sec > machine.max_scan_speed_mm_per_sec:
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Scan speed {job.scan_speed_mm_per_sec:g} mm/s exceeds {machine.id} "
                    f"maximum of {machine.max_scan_speed_mm_per_sec:g} mm/s",
                    "scan_speed_mm_per_sec",
                )
            )
        if job.layer_thickness_microns > 0 and not (
            machine.min_layer_thickness_microns
            <= job.layer_thickness_microns
            <= machine.max_layer_thickness_microns
        ):
            issues.append(
                ValidationIssue(
                    IssueKind.WARNING,
                    f"Layer thickness {job.layer_thickness_microns:g} microns is outside "
                    f"{machine.id} range of {machine.min_layer_thickness_microns:g}-"
                    f"{machine.max_layer_thickness_microns:g} microns",
                    "layer_thickness_microns",
                )
            )
        return issues


class JobConflictValidator:
    """Decides whether a candidate job can be placed next to existing jobs.

    The caller supplies the jobs already on the candidate's machine; the
    validator does no lookups of its own.
    """

    def __init__(
        self,
        settings: Optional[SchedulerSettings] = None,
        parameter_validator: Optional[SLSParameterValidator] = None,
        changeover: Optional[ChangeoverCalculator] = None,
    ) -> None:
        self.settings = settings or SchedulerSettings()
        self.parameter_validator = parameter_validator or SLSParameterValidator(
            self.settings
        )
        self.changeover = changeover or ChangeoverCalculator(
            self.settings, strict_machines=False
        )

    def validate(
        self,
        candidate: Job,
        existing_jobs: Sequence[Job],
        machine: Optional[Machine] = None,
    ) -> ValidationResult:
        result = ValidationResult()
        self._check_shape(candidate, result)

        time_range = candidate.time_range
        if not time_range.is_valid:
            result.add(
                IssueKind.VALIDATION,
                "End time must be after start time",
                "scheduled_end",
            )

        previous: Optional[Job] = None
        for job in existing_jobs:
            if job.id == candidate.id or job.status == JobStatus.CANCELLED:
                continue
            if job.machine_id != candidate.machine_id:
                continue
            if job.scheduled_end <= candidate.scheduled_start and (
                previous is None or job.scheduled_end > previous.scheduled_end
            ):
                previous = job
            if time_range.is_valid and time_range.overlaps(job.time_range):
                result.add(
                    IssueKind.CONFLICT,
                    f"Job {candidate.part_number or candidate.id} conflicts with existing "
                    f"job {job.id} ({job.part_number}) scheduled "
                    f"{job.scheduled_start:{_TIME_FORMAT}} - {job.scheduled_end:{_TIME_FORMAT}}",
                    "scheduled_start",
                )

        result.extend(self.parameter_validator.check(candidate, machine))
        self._check_changeover(candidate, previous, machine, result)
        if time_range.is_valid:
            self._check_operating_hours(candidate, result)

        logger.debug(
            "Validated job %s on %s: %d errors, %d warnings",
            candidate.id,
            candidate.machine_id,
            len(result.errors),
            len(result.warnings),
        )
        return result

    def conflicts(self, first: Job, second: Job) -> bool:
        return first.overlaps_with(second)

    @staticmethod
    def _check_shape(candidate: Job, result: ValidationResult) -> None:
        if not candidate.machine_id.strip():
            result.add(IssueKind.VALIDATION, "Machine is required", "machine_id")
        if not (candidate.part_number.strip() or candidate.part_id.strip()):
            result.add(IssueKind.VALIDATION, "Part is required", "part_number")
        if candidate.quantity <= 0:
            result.add(IssueKind.VALIDATION, "Quantity must be greater than 0", "quantity")

    def _check_changeover(
        self,
        candidate: Job,
        previous: Optional[Job],
        machine: Optional[Machine],
        result: ValidationResult,
    ) -> None:
        if previous is not None:
            loaded, source = previous.sls_material, f"after job {previous.id}"
        elif machine is not None and machine.current_material:
            loaded, source = machine.current_material, f"on {machine.id}"
        else:
            return
        minutes = self.changeover.optimal_changeover_minutes(
            candidate.machine_id, loaded, candidate.sls_material
        )
        if minutes > 0:
            result.add(
                IssueKind.WARNING,
                f"Material changeover from {loaded} to {candidate.sls_material} "
                f"required {source} ({minutes} min)",
                "sls_material",
            )

    def _check_operating_hours(self, candidate: Job, result: ValidationResult) -> None:
        settings = self.settings
        for day in candidate.time_range.days():
            if not settings.is_operating_day(day):
                result.add(
                    IssueKind.WARNING,
                    f"Job runs on {day:%A} {day.isoformat()}, when "
                    f"{candidate.machine_id} is not operating",
                    "scheduled_start",
                )
        if settings.covering_shift(candidate.scheduled_start) is None:
            result.add(
                IssueKind.WARNING,
                f"Job starts at {candidate.scheduled_start:%H:%M}, outside every configured shift",
                "scheduled_start",
            )


__all__ = [
    "IssueKind",
    "ValidationIssue",
    "ValidationResult",
    "SLSParameterValidator",
    "JobConflictValidator",
]
