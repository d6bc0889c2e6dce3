"""Demonstration script for the SLS scheduling and stage-tracking engine."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from pprint import pprint

from . import (
    Job,
    Machine,
    Part,
    PartStageRequirement,
    ProductionStage,
    SchedulerService,
    SlsMaterial,
)


def main() -> None:
    scheduler = SchedulerService()
    store = scheduler.store

    # Master data
    store.add_machine(
        Machine(
            id="TI1",
            name="TruPrint 3000 #1",
            current_material=SlsMaterial.TI64_GRADE_5.value,
            priority=1,
        )
    )
    store.add_machine(
        Machine(
            id="INC",
            name="TruPrint 3000 Inconel",
            current_material=SlsMaterial.INCONEL_718.value,
            priority=2,
        )
    )
    printing = store.add_stage(ProductionStage("sls-printing", "SLS Printing", 1, 45))
    edm = store.add_stage(ProductionStage("edm", "EDM", 2, 60))
    part = store.add_part(
        Part("part-1", "14-5396", "Suppressor baffle", SlsMaterial.TI64_GRADE_5.value)
    )
    store.add_requirement(PartStageRequirement("req-1", part.id, printing.id, 1, 8.0))
    store.add_requirement(PartStageRequirement("req-2", part.id, edm.id, 2, 2.0))

    # Scheduling
    start = datetime.now().replace(hour=9, minute=0, second=0, microsecond=0)
    first = Job(
        id="job-a",
        machine_id="TI1",
        part_number=part.part_number,
        part_id=part.id,
        scheduled_start=start,
        scheduled_end=start + timedelta(hours=4),
        estimated_powder_usage_kg=0.5,
        labor_cost_per_hour=Decimal("85"),
        machine_operating_cost_per_hour=Decimal("125"),
    )
    print("Scheduling job A:")
    pprint(scheduler.schedule_job(first).issues)

    overlapping = Job(
        id="job-b",
        machine_id="TI1",
        part_number="14-5397",
        scheduled_start=start + timedelta(hours=2),
        scheduled_end=start + timedelta(hours=6),
    )
    print("\nValidating overlapping job B:")
    pprint(scheduler.validate_job_scheduling(overlapping))

    print("\nNext free 4 h slot on TI1:")
    pprint(scheduler.find_next_available_slot("TI1", 4.0, earliest=start))

    print("\nRow layout for TI1:", scheduler.calculate_machine_row_layout("TI1"))
    print(
        "Changeover Ti-6Al-4V -> Inconel 718:",
        scheduler.calculate_optimal_powder_changeover_time(
            "TI1", SlsMaterial.TI64_GRADE_5.value, SlsMaterial.INCONEL_718.value
        ),
        "min",
    )
    print("Cost estimate for job A:", scheduler.calculate_sls_job_cost_estimate(first))
    print("Compatible with TI1:", scheduler.validate_sls_job_compatibility(first))

    # Stage execution
    print("\nStage tracking:")
    for result in (
        scheduler.punch_in(first.id, printing.id, "alice"),
        scheduler.punch_in(first.id, edm.id, "alice"),
        scheduler.punch_out(first.id, printing.id),
        scheduler.punch_in(first.id, edm.id, "alice"),
        scheduler.punch_out(first.id, edm.id),
    ):
        print(f"  {result.success!s:5} {result.message}")
    print("Job A status:", store.get_job(first.id).status.value)


if __name__ == "__main__":  # pragma: no cover - manual demonstration
    main()
