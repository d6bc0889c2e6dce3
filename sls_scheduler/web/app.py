"""FastAPI-based JSON interface for the SLS scheduler."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from ..domain import (
    Job,
    Machine,
    Part,
    PartStageRequirement,
    ProductionStage,
    TimeRange,
    to_local_naive,
)
from ..layout import InvalidViewModeError
from ..materials import SlsMaterial
from ..repository import DuplicateRecordError, RecordNotFoundError, RepositoryError
from ..services import SchedulerService
from ..settings import AppSettings, SchedulerSettings
from ..storage import SchedulerDatabase
from ..tracking import PunchResult
from ..validation import IssueKind, ValidationResult

logger = logging.getLogger(__name__)

_PUNCH_STATUS = {
    IssueKind.NOT_FOUND: 404,
    IssueKind.CONFLICT: 409,
    IssueKind.VALIDATION: 422,
}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------------------------------------------------
# Request models
# ----------------------------------------------------------------------
class JobPayload(BaseModel):
    id: Optional[str] = None
    machine_id: str
    part_number: str
    part_id: str = ""
    scheduled_start: datetime
    scheduled_end: datetime
    quantity: int = 1
    priority: int = 3
    sls_material: str = SlsMaterial.TI64_GRADE_5.value
    laser_power_watts: float = 200.0
    scan_speed_mm_per_sec: float = 1200.0
    layer_thickness_microns: float = 30.0
    hatch_spacing_microns: float = 120.0
    build_temperature_celsius: float = 180.0
    argon_purity_percent: float = 99.9
    oxygen_content_ppm: float = 50.0
    estimated_powder_usage_kg: float = 0.0
    labor_cost_per_hour: Decimal = Decimal("0")
    machine_operating_cost_per_hour: Decimal = Decimal("0")
    argon_cost_per_hour: Decimal = Decimal("0")
    material_cost_per_kg: Optional[Decimal] = None
    notes: str = ""

    @field_validator("scheduled_start", "scheduled_end")
    @classmethod
    def _machine_local(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    def to_job(self) -> Job:
        return Job(id=self.id or str(uuid4()), **self.model_dump(exclude={"id"}))


class PunchInPayload(BaseModel):
    job_id: str
    stage_id: str
    operator_name: str = Field(min_length=1)


class PunchOutPayload(BaseModel):
    job_id: str
    stage_id: str


# ----------------------------------------------------------------------
# Response helpers
# ----------------------------------------------------------------------
def _validation_body(result: ValidationResult) -> Dict[str, object]:
    return {
        "is_valid": result.is_valid,
        "errors": result.errors,
        "warnings": result.warnings,
        "issues": [
            {"kind": issue.kind.value, "message": issue.message, "field": issue.field}
            for issue in result.issues
        ],
    }


def _slot_body(slot: TimeRange) -> Dict[str, str]:
    return {"start": slot.start.isoformat(), "end": slot.end.isoformat()}


def _punch_response(result: PunchResult) -> JSONResponse:
    body = {
        "success": result.success,
        "message": result.message,
        "kind": result.kind.value if result.kind else None,
        "execution_id": result.execution.id if result.execution else None,
        "job_status": result.job_status.value if result.job_status else None,
    }
    status_code = 200 if result.success else _PUNCH_STATUS.get(result.kind, 400)
    return JSONResponse(body, status_code=status_code)


def create_app(
    database_path: Optional[str] = None,
    *,
    settings: Optional[AppSettings] = None,
    scheduler_settings: Optional[SchedulerSettings] = None,
) -> FastAPI:
    app_settings = settings or AppSettings()
    configure_logging(app_settings.log_level)
    database = SchedulerDatabase(database_path or app_settings.database_path)
    service = SchedulerService(database.create_store(), scheduler_settings)
    if app_settings.seed_demo_data:
        ensure_demo_data(service)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:  # pragma: no cover - framework hook
        yield
        database.close()

    app = FastAPI(title=app_settings.project_name, lifespan=lifespan)
    app.state.scheduler_service = service
    app.state.database = database

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------
    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(DuplicateRecordError)
    async def duplicate_handler(request: Request, exc: DuplicateRecordError):
        return JSONResponse({"detail": str(exc)}, status_code=409)

    @app.exception_handler(RepositoryError)
    async def repository_handler(request: Request, exc: RepositoryError):
        logger.error("Repository failure on %s: %s", request.url.path, exc)
        return JSONResponse({"detail": "Storage unavailable"}, status_code=503)

    @app.exception_handler(InvalidViewModeError)
    async def view_mode_handler(request: Request, exc: InvalidViewModeError):
        return JSONResponse({"detail": str(exc)}, status_code=400)

    # ------------------------------------------------------------------
    # Scheduler page
    # ------------------------------------------------------------------
    @app.get("/scheduler")
    async def scheduler_view(
        request: Request, view_mode: str = "day", start_date: Optional[date] = None
    ):
        service: SchedulerService = request.app.state.scheduler_service
        view = service.get_scheduler_view(view_mode, start_date)
        window = TimeRange(
            datetime.combine(view.dates[0], datetime.min.time()),
            datetime.combine(view.dates[-1] + timedelta(days=1), datetime.min.time()),
        )
        rows = [asdict(summary) for summary in service.machine_summaries(window)]
        return {
            "view_mode": view.view_mode,
            "start_date": view.start_date.isoformat(),
            "dates": [day.isoformat() for day in view.dates],
            "slots_per_day": view.slots_per_day,
            "slot_minutes": view.slot_minutes,
            "machines": view.machines,
            "rows": rows,
        }

    @app.get("/machines")
    async def list_machines(request: Request):
        service: SchedulerService = request.app.state.scheduler_service
        return [asdict(machine) for machine in service.store.get_machines()]

    @app.get("/machines/{machine_id}/layout")
    async def machine_layout(request: Request, machine_id: str):
        service: SchedulerService = request.app.state.scheduler_service
        service.store.get_machine(machine_id)
        jobs = service.store.get_jobs_for_machine(machine_id)
        layers, height = service.calculate_machine_row_layout(machine_id, jobs)
        tracks = service.layout_calculator.assign_layers(jobs)
        return {
            "machine_id": machine_id,
            "max_layers": layers,
            "row_height_px": height,
            "tracks": [[job.id for job in track] for track in tracks],
        }

    @app.get("/machines/{machine_id}/changeover")
    async def machine_changeover(
        request: Request,
        machine_id: str,
        to_material: str,
        from_material: Optional[str] = None,
    ):
        service: SchedulerService = request.app.state.scheduler_service
        if from_material is None:
            from_material = service.store.get_machine(machine_id).current_material
        minutes = service.calculate_optimal_powder_changeover_time(
            machine_id, from_material, to_material
        )
        return {
            "machine_id": machine_id,
            "from_material": from_material,
            "to_material": to_material,
            "changeover_minutes": minutes,
        }

    @app.get("/machines/{machine_id}/next-slot")
    async def next_slot(
        request: Request,
        machine_id: str,
        duration_hours: float = Query(8.0, gt=0),
        earliest: Optional[datetime] = None,
    ):
        service: SchedulerService = request.app.state.scheduler_service
        if earliest is not None:
            earliest = to_local_naive(earliest)
        slot = service.find_next_available_slot(machine_id, duration_hours, earliest)
        if slot is None:
            return {"machine_id": machine_id, "start": None, "end": None}
        return {"machine_id": machine_id, **_slot_body(slot)}

    @app.get("/machines/{machine_id}/slots")
    async def available_slots(
        request: Request,
        machine_id: str,
        start: datetime,
        end: datetime,
        duration_hours: float = Query(8.0, gt=0),
    ):
        service: SchedulerService = request.app.state.scheduler_service
        slots = service.available_time_slots(
            machine_id, to_local_naive(start), to_local_naive(end), duration_hours
        )
        return {"machine_id": machine_id, "slots": [_slot_body(slot) for slot in slots]}

    @app.get("/machines/{machine_id}/conflicts")
    async def machine_conflicts(
        request: Request,
        machine_id: str,
        start: datetime,
        end: datetime,
        exclude_job_id: Optional[str] = None,
    ):
        service: SchedulerService = request.app.state.scheduler_service
        window = TimeRange(to_local_naive(start), to_local_naive(end))
        jobs = service.conflicting_jobs(machine_id, window, exclude_job_id)
        return {
            "machine_id": machine_id,
            "available": not jobs,
            "conflicting_job_ids": [job.id for job in jobs],
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    @app.post("/jobs/validate")
    async def validate_job(request: Request, payload: JobPayload):
        service: SchedulerService = request.app.state.scheduler_service
        return _validation_body(service.check_job_scheduling(payload.to_job()))

    @app.post("/jobs")
    async def create_job(request: Request, payload: JobPayload):
        service: SchedulerService = request.app.state.scheduler_service
        job = payload.to_job()
        result = service.schedule_job(job)
        body = _validation_body(result)
        if result.of_kind(IssueKind.NOT_FOUND):
            return JSONResponse(body, status_code=404)
        if not result.is_valid:
            return JSONResponse(body, status_code=422)
        body["job_id"] = job.id
        return JSONResponse(body, status_code=201)

    @app.get("/jobs/{job_id}")
    async def get_job(request: Request, job_id: str):
        service: SchedulerService = request.app.state.scheduler_service
        return asdict(service.store.get_job(job_id))

    @app.get("/jobs/{job_id}/cost")
    async def job_cost(request: Request, job_id: str, include_changeover: bool = False):
        service: SchedulerService = request.app.state.scheduler_service
        job = service.store.get_job(job_id)
        amount = service.calculate_sls_job_cost_estimate(
            job, include_changeover=include_changeover
        )
        return {"job_id": job_id, "estimated_cost": str(amount)}

    @app.get("/jobs/{job_id}/compatibility")
    async def job_compatibility(request: Request, job_id: str):
        service: SchedulerService = request.app.state.scheduler_service
        job = service.store.get_job(job_id)
        return {
            "job_id": job_id,
            "machine_id": job.machine_id,
            "compatible": service.validate_sls_job_compatibility(job),
        }

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------
    @app.post("/stages/punch-in")
    async def punch_in(request: Request, payload: PunchInPayload):
        service: SchedulerService = request.app.state.scheduler_service
        return _punch_response(
            service.punch_in(payload.job_id, payload.stage_id, payload.operator_name)
        )

    @app.post("/stages/punch-out")
    async def punch_out(request: Request, payload: PunchOutPayload):
        service: SchedulerService = request.app.state.scheduler_service
        return _punch_response(service.punch_out(payload.job_id, payload.stage_id))

    return app


def ensure_demo_data(service: SchedulerService) -> None:
    store = service.store
    if store.get_machines():
        return

    machines: List[Machine] = [
        Machine(
            id="TI1",
            name="TruPrint 3000 #1",
            current_material=SlsMaterial.TI64_GRADE_5.value,
            supported_materials=frozenset(
                {SlsMaterial.TI64_GRADE_5.value, SlsMaterial.TI64_ELI_GRADE_23.value}
            ),
            priority=1,
            location="Print Bay A",
        ),
        Machine(
            id="TI2",
            name="TruPrint 3000 #2",
            current_material=SlsMaterial.TI64_GRADE_5.value,
            supported_materials=frozenset(
                {SlsMaterial.TI64_GRADE_5.value, SlsMaterial.TI64_ELI_GRADE_23.value}
            ),
            priority=2,
            location="Print Bay A",
        ),
        Machine(
            id="INC",
            name="TruPrint 3000 Inconel",
            current_material=SlsMaterial.INCONEL_718.value,
            supported_materials=frozenset(
                {SlsMaterial.INCONEL_718.value, SlsMaterial.INCONEL_625.value}
            ),
            priority=3,
            location="Print Bay B",
        ),
    ]
    for machine in machines:
        store.add_machine(machine)

    stages = [
        ProductionStage(
            id="sls-printing",
            name="SLS Printing",
            display_order=1,
            default_setup_minutes=45,
            description="Selective laser sintering of the build plate",
        ),
        ProductionStage(
            id="cnc-machining",
            name="CNC Machining",
            display_order=2,
            default_setup_minutes=30,
            description="Precision machining of critical features",
        ),
        ProductionStage(
            id="edm",
            name="EDM",
            display_order=3,
            default_setup_minutes=60,
            description="Wire EDM removal from the build plate",
        ),
        ProductionStage(
            id="coating",
            name="Coating/Cerakote",
            display_order=4,
            default_setup_minutes=45,
            description="Surface treatment and corrosion protection",
        ),
        ProductionStage(
            id="assembly",
            name="Assembly",
            display_order=5,
            default_setup_minutes=20,
            description="Component assembly and integration",
        ),
    ]
    for stage in stages:
        store.add_stage(stage)

    baffle = store.add_part(
        Part(
            id="part-14-5396",
            part_number="14-5396",
            description="Suppressor baffle, titanium",
            sls_material=SlsMaterial.TI64_GRADE_5.value,
        )
    )
    for order, (stage_id, hours) in enumerate(
        (("sls-printing", 8.0), ("edm", 2.0), ("coating", 1.5)), start=1
    ):
        store.add_requirement(
            PartStageRequirement(
                id=f"{baffle.id}-{stage_id}",
                part_id=baffle.id,
                production_stage_id=stage_id,
                execution_order=order,
                estimated_hours=hours,
            )
        )

    start = datetime.combine(date.today(), datetime.min.time()).replace(hour=7)
    service.schedule_job(
        Job(
            id="job-demo-1",
            machine_id="TI1",
            part_number=baffle.part_number,
            part_id=baffle.id,
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=8),
            estimated_powder_usage_kg=0.5,
            labor_cost_per_hour=Decimal("85"),
            machine_operating_cost_per_hour=Decimal("125"),
            argon_cost_per_hour=Decimal("15"),
        )
    )
    logger.info("Seeded demo machines, stages and jobs")
