"""Shared fixtures for the scheduler test-suite."""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Sequence

import pytest

from sls_scheduler.domain import (
    Job,
    Machine,
    Part,
    PartStageRequirement,
    ProductionStage,
)
from sls_scheduler.materials import SlsMaterial
from sls_scheduler.repository import ProductionStore
from sls_scheduler.services import SchedulerService
from sls_scheduler.settings import SchedulerSettings
from sls_scheduler.tracking import StageExecutionTracker

# 2025-01-06 is a Monday.
MONDAY = datetime(2025, 1, 6)

TITANIUM = SlsMaterial.TI64_GRADE_5.value
TITANIUM_ELI = SlsMaterial.TI64_ELI_GRADE_23.value
INCONEL = SlsMaterial.INCONEL_718.value


class FakeClock:
    """Manually advanced replacement for ``datetime.now``."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def seed_store(store: ProductionStore) -> ProductionStore:
    store.add_machine(
        Machine(
            id="TI1",
            name="Titanium 1",
            current_material=TITANIUM,
            supported_materials=frozenset({TITANIUM, TITANIUM_ELI}),
            priority=1,
        )
    )
    store.add_machine(
        Machine(
            id="TI2",
            name="Titanium 2",
            current_material=TITANIUM,
            supported_materials=frozenset({TITANIUM, TITANIUM_ELI}),
            priority=2,
        )
    )
    store.add_machine(
        Machine(
            id="INC",
            name="Inconel",
            current_material=INCONEL,
            supported_materials=frozenset({INCONEL}),
            priority=3,
        )
    )
    store.add_stage(ProductionStage("print", "SLS Printing", 1, default_setup_minutes=45))
    store.add_stage(ProductionStage("edm", "EDM", 2, default_setup_minutes=60))
    store.add_stage(ProductionStage("coat", "Coating", 3, default_setup_minutes=30))
    store.add_part(Part("part-1", "14-5396", "Baffle", TITANIUM))
    store.add_requirement(PartStageRequirement("req-print", "part-1", "print", 1, 8.0))
    store.add_requirement(PartStageRequirement("req-edm", "part-1", "edm", 2))
    store.add_requirement(
        PartStageRequirement("req-coat", "part-1", "coat", 3, 1.5, is_required=False)
    )
    return store


@pytest.fixture
def make_job() -> Callable[..., Job]:
    counter = itertools.count(1)

    def factory(
        start_hour: float = 9,
        end_hour: float = 13,
        *,
        job_id: str = "",
        machine_id: str = "TI1",
        day: datetime = MONDAY,
        **overrides,
    ) -> Job:
        number = next(counter)
        overrides.setdefault("part_number", f"PN-{number:03d}")
        return Job(
            id=job_id or f"job-{number}",
            machine_id=machine_id,
            scheduled_start=day + timedelta(hours=start_hour),
            scheduled_end=day + timedelta(hours=end_hour),
            **overrides,
        )

    return factory


@pytest.fixture
def store_factory() -> Callable[[], ProductionStore]:
    return lambda: seed_store(ProductionStore())


@pytest.fixture
def store(store_factory) -> ProductionStore:
    return store_factory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(MONDAY + timedelta(hours=8))


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings()


@pytest.fixture
def tracker(store, settings, clock) -> StageExecutionTracker:
    return StageExecutionTracker(store, settings, clock=clock)


@pytest.fixture
def service(store, settings, tracker) -> SchedulerService:
    return SchedulerService(store, settings, tracker=tracker)


@pytest.fixture
def scheduled_job(store, make_job) -> Job:
    return store.add_job(make_job(job_id="job-1", part_id="part-1"))


@pytest.fixture
def seeder() -> Callable[[ProductionStore], ProductionStore]:
    return seed_store


@pytest.fixture
def race() -> Callable[[Sequence[Callable[[], object]]], List[object]]:
    """Run the given calls on separate threads released at the same moment."""

    def run(calls: Sequence[Callable[[], object]]) -> List[object]:
        barrier = threading.Barrier(len(calls))
        results: List[object] = [None] * len(calls)

        def worker(index: int, call: Callable[[], object]) -> None:
            barrier.wait()
            results[index] = call()

        threads = [
            threading.Thread(target=worker, args=(index, call))
            for index, call in enumerate(calls)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return results

    return run
