"""Configuration for the scheduler engine and the process hosting it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

from .materials import MaterialFamily


@dataclass(frozen=True, slots=True)
class ShiftWindow:
    """Daily operator shift. ``end`` before ``start`` means it spans midnight."""

    name: str
    start: time
    end: time

    @property
    def spans_midnight(self) -> bool:
        return self.end <= self.start

    def covers(self, moment: time) -> bool:
        if self.spans_midnight:
            return moment >= self.start or moment < self.end
        return self.start <= moment < self.end


def _default_shifts() -> Tuple[ShiftWindow, ...]:
    return (
        ShiftWindow("Standard", time(7, 0), time(15, 0)),
        ShiftWindow("Evening", time(15, 0), time(23, 0)),
        ShiftWindow("Night", time(23, 0), time(7, 0)),
    )


@dataclass(slots=True)
class SchedulerSettings:
    """Tuning values used by the validators, calculators and tracker."""

    # Powder changeover
    titanium_changeover_minutes: int = 30
    nickel_changeover_minutes: int = 45
    cross_family_changeover_minutes: int = 120
    default_changeover_minutes: int = 60
    # Operating hours
    shifts: Tuple[ShiftWindow, ...] = field(default_factory=_default_shifts)
    saturday_operations: bool = False
    sunday_operations: bool = False
    business_day_start: time = time(6, 0)
    business_day_end: time = time(18, 0)
    slot_search_horizon_days: int = 30
    # Scheduler row layout
    base_row_height_px: int = 160
    layer_height_px: int = 40
    min_row_height_px: int = 160
    max_row_height_px: int = 400
    # Build atmosphere
    min_argon_purity_percent: float = 99.5
    max_oxygen_content_ppm: float = 1000.0
    # Stage tracking
    enforce_stage_sequence: bool = False

    def family_changeover_minutes(self, family: MaterialFamily) -> Optional[int]:
        """Changeover inside one family, ``None`` when not configured."""

        return {
            MaterialFamily.TITANIUM: self.titanium_changeover_minutes,
            MaterialFamily.NICKEL: self.nickel_changeover_minutes,
        }.get(family)

    def is_operating_day(self, day: date) -> bool:
        weekday = day.weekday()
        if weekday == 5:
            return self.saturday_operations
        if weekday == 6:
            return self.sunday_operations
        return True

    def covering_shift(self, moment: datetime) -> Optional[ShiftWindow]:
        for shift in self.shifts:
            if shift.covers(moment.time()):
                return shift
        return None

    def validate(self) -> List[str]:
        """Return human readable problems with the configured values."""

        errors: List[str] = []
        for shift in self.shifts:
            if shift.start == shift.end:
                errors.append(f"{shift.name} shift start and end times cannot be the same")
        if self.titanium_changeover_minutes > self.cross_family_changeover_minutes:
            errors.append(
                "Same-material changeover should be faster than cross-material changeover"
            )
        if self.nickel_changeover_minutes > self.cross_family_changeover_minutes:
            errors.append(
                "Same-material changeover should be faster than cross-material changeover"
            )
        if min(
            self.titanium_changeover_minutes,
            self.nickel_changeover_minutes,
            self.cross_family_changeover_minutes,
            self.default_changeover_minutes,
        ) < 0:
            errors.append("Changeover minutes cannot be negative")
        if self.min_row_height_px > self.max_row_height_px:
            errors.append("Minimum row height must not exceed maximum row height")
        if self.business_day_start >= self.business_day_end:
            errors.append("Business day start must be before business day end")
        return errors


class AppSettings(BaseSettings):
    """Process level settings read from ``SLS_SCHEDULER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SLS_SCHEDULER_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    project_name: str = "SLS Scheduler"
    database_path: str = "sls_scheduler.sqlite3"
    log_level: str = "INFO"
    seed_demo_data: bool = True


__all__ = ["ShiftWindow", "SchedulerSettings", "AppSettings"]
