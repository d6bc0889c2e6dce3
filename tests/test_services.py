from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sls_scheduler.domain import JobStatus, TimeRange, to_local_naive
from sls_scheduler.materials import SlsMaterial
from sls_scheduler.repository import RecordNotFoundError
from sls_scheduler.services import SchedulerService
from sls_scheduler.settings import SchedulerSettings
from sls_scheduler.validation import IssueKind

MONDAY = datetime(2025, 1, 6)
INCONEL = SlsMaterial.INCONEL_718.value


class TestJobScheduling:
    def test_conflicting_and_touching_candidates(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))

        rejected = service.validate_job_scheduling(make_job(11, 15, job_id="B"))
        accepted = service.validate_job_scheduling(make_job(13, 17, job_id="C"))

        assert rejected[0] is False
        assert len(rejected[1]) == 1
        assert "conflicts with existing job A" in rejected[1][0]
        assert accepted == (True, [])

    def test_explicit_existing_jobs_replace_stored_ones(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))

        assert service.validate_job_scheduling(make_job(11, 15), []) == (True, [])

    def test_check_reports_machine_warnings(self, service, make_job):
        result = service.check_job_scheduling(make_job(9, 13, sls_material=INCONEL))

        assert result.is_valid
        assert any("does not list Inconel 718" in warning for warning in result.warnings)
        assert any("Material changeover" in warning for warning in result.warnings)

    def test_schedule_job_persists_valid_jobs(self, service, store, make_job):
        result = service.schedule_job(make_job(9, 13, job_id="A"))

        assert result.is_valid
        assert store.get_job("A").status == JobStatus.SCHEDULED

    def test_schedule_job_rejects_conflicts(self, service, store, make_job):
        service.schedule_job(make_job(9, 13, job_id="A"))

        result = service.schedule_job(make_job(10, 12, job_id="B"))

        assert not result.is_valid
        assert "B" not in store.jobs

    def test_schedule_job_on_unknown_machine(self, service, store, make_job):
        result = service.schedule_job(make_job(machine_id="XX9", job_id="A"))

        assert [issue.kind for issue in result.issues] == [IssueKind.NOT_FOUND]
        assert result.errors == ["Machine XX9 not found"]
        assert "A" not in store.jobs


class TestOffsetAwareTimes:
    UTC_MONDAY = datetime(2025, 1, 6, tzinfo=timezone.utc)

    def test_aware_candidate_is_checked_in_local_time(self, service, store, make_job):
        local_nine = to_local_naive(self.UTC_MONDAY + timedelta(hours=9))
        store.add_job(make_job(0, 4, job_id="A", day=local_nine))

        valid, errors = service.validate_job_scheduling(
            make_job(9, 13, job_id="B", day=self.UTC_MONDAY)
        )

        assert not valid
        assert "conflicts with existing job A" in errors[0]

    def test_scheduled_job_is_stored_naive(self, service, store, make_job):
        result = service.schedule_job(make_job(9, 13, job_id="B", day=self.UTC_MONDAY))

        assert result.is_valid
        stored = store.get_job("B")
        assert stored.scheduled_start.tzinfo is None
        assert stored.scheduled_start == to_local_naive(self.UTC_MONDAY + timedelta(hours=9))

    def test_aware_earliest_for_slot_search(self, service):
        earliest = self.UTC_MONDAY + timedelta(hours=9)

        slot = service.find_next_available_slot("TI1", 2, earliest)

        assert slot.start.tzinfo is None
        assert slot.start >= to_local_naive(earliest)


class TestNextAvailableSlot:
    def test_rounds_up_to_next_hour(self, service):
        slot = service.find_next_available_slot("TI1", 4, MONDAY + timedelta(hours=8, minutes=30))

        assert slot == TimeRange(MONDAY.replace(hour=9), MONDAY.replace(hour=13))

    def test_skips_booked_time(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))

        slot = service.find_next_available_slot("TI1", 4, MONDAY.replace(hour=9))

        assert slot.start == MONDAY.replace(hour=13)

    def test_cancelled_jobs_are_free_time(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A", status=JobStatus.CANCELLED))

        slot = service.find_next_available_slot("TI1", 4, MONDAY.replace(hour=9))

        assert slot.start == MONDAY.replace(hour=9)

    def test_early_morning_moves_to_business_start(self, service):
        slot = service.find_next_available_slot("TI1", 2, MONDAY.replace(hour=5))

        assert slot.start == MONDAY.replace(hour=6)

    def test_friday_evening_moves_to_monday(self, service):
        friday_evening = MONDAY + timedelta(days=4, hours=17, minutes=30)

        slot = service.find_next_available_slot("TI1", 2, friday_evening)

        assert slot.start == datetime(2025, 1, 13, 6)

    def test_nothing_free_within_horizon(self, store):
        service = SchedulerService(store, SchedulerSettings(slot_search_horizon_days=0))

        assert service.find_next_available_slot("TI1", 2, MONDAY.replace(hour=9)) is None

    def test_invalid_requests(self, service):
        with pytest.raises(ValueError):
            service.find_next_available_slot("TI1", 0)
        with pytest.raises(RecordNotFoundError):
            service.find_next_available_slot("XX9", 2)


class TestAvailableTimeSlots:
    def test_lists_free_starts_within_business_hours(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))

        slots = service.available_time_slots(
            "TI1", MONDAY.replace(hour=6), MONDAY.replace(hour=18), 4
        )

        assert [slot.start.hour for slot in slots] == [13, 14, 15, 16, 17]
        assert all(slot.duration_hours == 4 for slot in slots)

    def test_window_spans_the_night(self, service):
        slots = service.available_time_slots(
            "TI2", MONDAY.replace(hour=16), MONDAY + timedelta(days=1, hours=8), 2
        )

        assert [slot.start for slot in slots] == [
            MONDAY.replace(hour=16),
            MONDAY.replace(hour=17),
            datetime(2025, 1, 7, 6),
            datetime(2025, 1, 7, 7),
        ]

    def test_empty_or_inverted_window(self, service):
        nine = MONDAY.replace(hour=9)

        assert service.available_time_slots("TI1", nine, nine, 2) == []
        assert service.available_time_slots("TI1", nine, MONDAY.replace(hour=8), 2) == []

    def test_invalid_requests(self, service):
        with pytest.raises(ValueError):
            service.available_time_slots("TI1", MONDAY, MONDAY + timedelta(days=1), 0)
        with pytest.raises(RecordNotFoundError):
            service.available_time_slots("XX9", MONDAY, MONDAY + timedelta(days=1), 2)


class TestConflictingJobs:
    def test_overlapping_jobs_are_returned(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))
        store.add_job(make_job(13, 15, job_id="B"))
        store.add_job(make_job(9, 13, job_id="C", machine_id="TI2"))
        window = TimeRange(MONDAY.replace(hour=12), MONDAY.replace(hour=14))

        assert [job.id for job in service.conflicting_jobs("TI1", window)] == ["A", "B"]
        assert not service.is_time_slot_available("TI1", window)

    def test_edited_job_is_excluded(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))
        moved = TimeRange(MONDAY.replace(hour=10), MONDAY.replace(hour=14))

        assert service.conflicting_jobs("TI1", moved, exclude_job_id="A") == []
        assert service.is_time_slot_available("TI1", moved, exclude_job_id="A")

    def test_cancelled_and_touching_jobs_do_not_block(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A", status=JobStatus.CANCELLED))
        store.add_job(make_job(13, 15, job_id="B"))

        window = TimeRange(MONDAY.replace(hour=9), MONDAY.replace(hour=13))

        assert service.is_time_slot_available("TI1", window)

    def test_unknown_machine(self, service):
        with pytest.raises(RecordNotFoundError):
            service.conflicting_jobs("XX9", TimeRange(MONDAY, MONDAY + timedelta(hours=1)))


class TestSchedulerPage:
    def test_view_lists_machines_by_priority(self, service):
        view = service.get_scheduler_view("week", date(2025, 1, 6))

        assert view.machines == ["TI1", "TI2", "INC"]
        assert len(view.dates) == 7

    def test_row_layout_from_store(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))
        store.add_job(make_job(11, 15, job_id="B"))

        assert service.calculate_machine_row_layout("TI1") == (2, 200)
        assert service.calculate_machine_row_layout("TI1", []) == (1, 160)

    def test_machine_summaries(self, service, store, make_job):
        store.add_job(make_job(9, 13, job_id="A"))
        store.add_job(make_job(9, 13, job_id="B", day=MONDAY + timedelta(days=3)))
        monday = TimeRange(MONDAY, MONDAY + timedelta(days=1))

        summaries = service.machine_summaries(monday)

        assert [summary.machine_id for summary in summaries] == ["TI1", "TI2", "INC"]
        assert summaries[0].job_count == 1
        assert (summaries[0].max_layers, summaries[0].row_height_px) == (1, 160)


class TestSlsOperations:
    def test_changeover_time(self, service):
        minutes = service.calculate_optimal_powder_changeover_time(
            "TI1", SlsMaterial.TI64_GRADE_5.value, INCONEL
        )

        assert minutes == 120

    def test_changeover_for_unknown_machine(self, service):
        with pytest.raises(RecordNotFoundError):
            service.calculate_optimal_powder_changeover_time(
                "XX9", SlsMaterial.TI64_GRADE_5.value, INCONEL
            )

    def test_cost_estimate_with_changeover(self, service, make_job):
        job = make_job(
            9, 10, sls_material=INCONEL, machine_operating_cost_per_hour=Decimal("60")
        )

        assert service.calculate_sls_job_cost_estimate(job) == Decimal("60.00")
        assert service.calculate_sls_job_cost_estimate(
            job, include_changeover=True
        ) == Decimal("180.00")

    def test_compatibility(self, service, make_job):
        assert service.validate_sls_job_compatibility(make_job())
        assert not service.validate_sls_job_compatibility(make_job(sls_material=INCONEL))
        assert service.validate_sls_job_compatibility(
            make_job(machine_id="INC", sls_material=INCONEL)
        )
        assert not service.validate_sls_job_compatibility(make_job(machine_id="XX9"))


class TestStageTracking:
    def test_punch_in_and_out(self, service, scheduled_job, clock):
        assert service.punch_in("job-1", "print", "alice").success
        clock.advance(hours=1)
        result = service.punch_out("job-1", "print")

        assert result.success
        assert result.execution.actual_hours == 1.0

    def test_default_tracker_uses_the_service_store(self, store, make_job):
        store.add_job(make_job(job_id="job-1"))
        service = SchedulerService(store)

        assert service.punch_in("job-1", "print", "alice").success
        assert store.get_operator_active_execution("alice").job_id == "job-1"
