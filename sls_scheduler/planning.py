"""Powder changeover and job cost calculations."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Collection, Optional

from .domain import Job, Machine, MaterialTransition
from .materials import lookup_material, same_material
from .repository import RecordNotFoundError
from .settings import SchedulerSettings

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_ZERO = Decimal("0")


class ChangeoverCalculator:
    """Minutes needed to switch a machine from one powder to another.

    ``known_machines`` is the caller's machine configuration. With
    ``strict_machines`` an id outside it raises :class:`RecordNotFoundError`;
    otherwise the usual material rules apply to any machine.
    """

    def __init__(
        self,
        settings: Optional[SchedulerSettings] = None,
        known_machines: Optional[Collection[str]] = None,
        *,
        strict_machines: bool = True,
    ) -> None:
        self.settings = settings or SchedulerSettings()
        self.known_machines = (
            frozenset(known_machines) if known_machines is not None else None
        )
        self.strict_machines = strict_machines

    def optimal_changeover_minutes(
        self, machine_id: str, from_material: Optional[str], to_material: Optional[str]
    ) -> int:
        if (
            self.strict_machines
            and self.known_machines is not None
            and machine_id not in self.known_machines
        ):
            raise RecordNotFoundError(f"Machine {machine_id!r} is not configured")

        settings = self.settings
        # An empty machine or a job without material needs no powder swap.
        if not (from_material or "").strip() or not (to_material or "").strip():
            return 0
        if same_material(from_material, to_material):
            return 0

        source = lookup_material(from_material)
        target = lookup_material(to_material)
        if source is None or target is None:
            minutes = settings.default_changeover_minutes
        elif source.family == target.family:
            family_minutes = settings.family_changeover_minutes(source.family)
            minutes = (
                family_minutes
                if family_minutes is not None
                else settings.default_changeover_minutes
            )
        else:
            minutes = settings.cross_family_changeover_minutes
        return max(int(minutes), 0)

    def plan_transition(self, machine: Machine, to_material: str) -> MaterialTransition:
        """Describe loading ``to_material`` into ``machine`` without applying it."""

        minutes = self.optimal_changeover_minutes(
            machine.id, machine.current_material, to_material
        )
        return MaterialTransition(
            machine_id=machine.id,
            from_material=machine.current_material,
            to_material=to_material,
            changeover_minutes=minutes,
        )


def _as_decimal(value: object) -> Decimal:
    """Non-negative decimal for a cost input; missing or invalid inputs are 0."""

    if value is None:
        return _ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return _ZERO
    if not amount.is_finite() or amount < 0:
        return _ZERO
    return amount


class CostEstimator:
    """Estimated total cost of an SLS job."""

    def material_cost(self, job: Job) -> Decimal:
        rate = job.material_cost_per_kg
        if rate is None:
            material = lookup_material(job.sls_material)
            rate = material.profile.cost_per_kg if material is not None else _ZERO
        return _as_decimal(job.estimated_powder_usage_kg) * _as_decimal(rate)

    def estimate(self, job: Job, changeover_minutes: int = 0) -> Decimal:
        """``material + (labor + machine + argon) * hours``, never negative.

        Changeover time is billed at the machine operating rate.
        """

        hours = _as_decimal(job.duration_hours)
        machine_rate = _as_decimal(job.machine_operating_cost_per_hour)
        hourly = (
            _as_decimal(job.labor_cost_per_hour)
            + machine_rate
            + _as_decimal(job.argon_cost_per_hour)
        )
        changeover_hours = _as_decimal(changeover_minutes) / Decimal(60)
        amount = self.material_cost(job) + hourly * hours + machine_rate * changeover_hours
        amount = max(amount, _ZERO).quantize(_CENT, rounding=ROUND_HALF_UP)
        logger.debug("Cost estimate for job %s: %s", job.id, amount)
        return amount


__all__ = ["ChangeoverCalculator", "CostEstimator"]
