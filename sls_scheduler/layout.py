"""Scheduler grid and machine row layout calculations."""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .domain import Job, Machine
from .settings import SchedulerSettings

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440

# view mode -> (visible days, minutes per slot)
VIEW_MODES: Dict[str, Tuple[int, int]] = {
    "week": (7, MINUTES_PER_DAY),
    "day": (1, MINUTES_PER_DAY),
    "hour": (1, 60),
    "30min": (1, 30),
    "15min": (1, 15),
}


class InvalidViewModeError(ValueError):
    """Raised for a scheduler view mode that is not supported."""

    def __init__(self, view_mode: str) -> None:
        supported = ", ".join(VIEW_MODES)
        super().__init__(f"Unknown view mode {view_mode!r}; expected one of: {supported}")
        self.view_mode = view_mode


@dataclass(slots=True)
class ScheduleView:
    """Time-slot grid the scheduler page is drawn on."""

    view_mode: str
    start_date: date
    dates: List[date]
    slots_per_day: int
    slot_minutes: int
    machines: List[str] = field(default_factory=list)


class ScheduleViewBuilder:
    """Builds the date/slot grid for a view mode, independent of jobs."""

    def __init__(
        self, machine_source: Optional[Callable[[], Iterable[Machine]]] = None
    ) -> None:
        self._machine_source = machine_source

    def build_view(
        self, view_mode: str, start_date: Union[date, datetime, None] = None
    ) -> ScheduleView:
        mode = (view_mode or "").strip().lower()
        if mode not in VIEW_MODES:
            raise InvalidViewModeError(view_mode)
        if start_date is None:
            start_date = date.today()
        elif isinstance(start_date, datetime):
            start_date = start_date.date()

        days, slot_minutes = VIEW_MODES[mode]
        return ScheduleView(
            view_mode=mode,
            start_date=start_date,
            dates=[start_date + timedelta(days=offset) for offset in range(days)],
            slots_per_day=MINUTES_PER_DAY // slot_minutes,
            slot_minutes=slot_minutes,
            machines=self._machine_ids(),
        )

    def _machine_ids(self) -> List[str]:
        if self._machine_source is None:
            return []
        machines = sorted(
            self._machine_source(), key=lambda machine: (machine.priority, machine.id)
        )
        return [machine.id for machine in machines]


class MachineLayoutCalculator:
    """Sizes a machine row so overlapping jobs can be stacked without collisions."""

    def __init__(self, settings: Optional[SchedulerSettings] = None) -> None:
        self.settings = settings or SchedulerSettings()

    def row_layout(self, machine_id: str, jobs: Sequence[Job]) -> Tuple[int, int]:
        """Return ``(max_layers, row_height_px)`` for the jobs on ``machine_id``."""

        machine_jobs = [job for job in jobs if job.machine_id == machine_id]
        layers = max(self.max_concurrency(machine_jobs), 1)
        height = self.row_height(layers)
        logger.debug(
            "Row layout for %s: %d jobs, %d layers, %dpx",
            machine_id,
            len(machine_jobs),
            layers,
            height,
        )
        return layers, height

    def row_height(self, layers: int) -> int:
        settings = self.settings
        height = settings.base_row_height_px + (max(layers, 1) - 1) * settings.layer_height_px
        return max(settings.min_row_height_px, min(settings.max_row_height_px, height))

    @staticmethod
    def max_concurrency(jobs: Iterable[Job]) -> int:
        """Largest number of jobs running at the same instant."""

        events: List[Tuple[datetime, int]] = []
        for job in jobs:
            if job.scheduled_end > job.scheduled_start:
                events.append((job.scheduled_start, 1))
                events.append((job.scheduled_end, -1))
        # Ends sort before starts at the same instant: touching jobs share a track.
        events.sort()
        running = peak = 0
        for _, delta in events:
            running += delta
            peak = max(peak, running)
        return peak

    @staticmethod
    def assign_layers(jobs: Iterable[Job]) -> List[List[Job]]:
        """Distribute jobs over the fewest tracks so no track holds overlapping jobs."""

        layers: List[List[Job]] = []
        free_at: List[Tuple[datetime, int]] = []
        for job in sorted(jobs, key=lambda job: (job.scheduled_start, job.scheduled_end)):
            end = max(job.scheduled_end, job.scheduled_start)
            if free_at and free_at[0][0] <= job.scheduled_start:
                _, index = heapq.heappop(free_at)
            else:
                index = len(layers)
                layers.append([])
            layers[index].append(job)
            heapq.heappush(free_at, (end, index))
        return layers

    @staticmethod
    def date_range(jobs: Sequence[Job], today: Optional[date] = None) -> List[date]:
        """Visible dates: the jobs' span plus a buffer, between one week and a month."""

        if not jobs:
            first = today or date.today()
            return [first + timedelta(days=offset) for offset in range(14)]
        first = min(job.scheduled_start.date() for job in jobs)
        last = max(job.scheduled_end.date() for job in jobs)
        days = max(7, min(30, (last - first).days + 3))
        return [first + timedelta(days=offset) for offset in range(days)]

    @staticmethod
    def slot_position(moment: datetime, start_date: date, slot_minutes: int) -> float:
        """Fractional slot index of ``moment`` relative to midnight of ``start_date``."""

        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")
        origin = datetime.combine(start_date, datetime.min.time())
        return (moment - origin).total_seconds() / 60 / slot_minutes


__all__ = [
    "VIEW_MODES",
    "InvalidViewModeError",
    "ScheduleView",
    "ScheduleViewBuilder",
    "MachineLayoutCalculator",
]
