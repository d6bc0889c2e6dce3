from datetime import date, datetime, timedelta, timezone

from hypothesis import given, strategies as st

from sls_scheduler.domain import (
    ExecutionStatus,
    JobStatus,
    MaterialTransition,
    ProductionStageExecution,
    TimeRange,
    to_local_naive,
)

MONDAY = datetime(2025, 1, 6)

offsets = st.integers(min_value=0, max_value=7 * 24 * 60)
lengths = st.integers(min_value=1, max_value=24 * 60)


def _range(start_minutes: int, length_minutes: int) -> TimeRange:
    start = MONDAY + timedelta(minutes=start_minutes)
    return TimeRange(start, start + timedelta(minutes=length_minutes))


class TestTimeRange:
    def test_touching_ranges_do_not_overlap(self):
        first = TimeRange(MONDAY.replace(hour=9), MONDAY.replace(hour=13))
        second = TimeRange(MONDAY.replace(hour=13), MONDAY.replace(hour=17))

        assert not first.overlaps(second)
        assert not second.overlaps(first)

    def test_partial_overlap(self):
        first = TimeRange(MONDAY.replace(hour=9), MONDAY.replace(hour=13))
        second = TimeRange(MONDAY.replace(hour=11), MONDAY.replace(hour=15))

        assert first.overlaps(second)

    def test_inverted_range_is_invalid_and_has_no_duration(self):
        inverted = TimeRange(MONDAY.replace(hour=13), MONDAY.replace(hour=9))

        assert not inverted.is_valid
        assert inverted.duration_hours == 0.0
        assert inverted.days() == []

    def test_contains_is_half_open(self):
        window = TimeRange(MONDAY.replace(hour=9), MONDAY.replace(hour=13))

        assert window.contains(MONDAY.replace(hour=9))
        assert not window.contains(MONDAY.replace(hour=13))

    def test_days_ending_at_midnight_excludes_next_day(self):
        window = TimeRange(MONDAY.replace(hour=20), MONDAY + timedelta(days=1))

        assert window.days() == [date(2025, 1, 6)]

    def test_days_spanning_midnight(self):
        window = TimeRange(MONDAY.replace(hour=20), MONDAY + timedelta(days=1, hours=2))

        assert window.days() == [date(2025, 1, 6), date(2025, 1, 7)]

    @given(offsets, lengths, offsets, lengths)
    def test_overlap_is_symmetric(self, start_a, length_a, start_b, length_b):
        first = _range(start_a, length_a)
        second = _range(start_b, length_b)

        assert first.overlaps(second) == second.overlaps(first)

    @given(offsets, lengths, lengths)
    def test_back_to_back_ranges_never_overlap(self, start, length_a, length_b):
        first = _range(start, length_a)
        second = _range(start + length_a, length_b)

        assert not first.overlaps(second)


class TestStatuses:
    def test_closed_job_statuses(self):
        assert JobStatus.COMPLETED.is_closed
        assert JobStatus.CANCELLED.is_closed
        assert not JobStatus.SCHEDULED.is_closed
        assert not JobStatus.IN_PROGRESS.is_closed

    def test_execution_is_active_only_while_in_progress(self):
        execution = ProductionStageExecution("e1", "job-1", "print", "alice", MONDAY)
        assert execution.is_active

        execution.status = ExecutionStatus.COMPLETED
        assert not execution.is_active


class TestMaterialTransition:
    def test_same_material_ignoring_case_is_noop(self):
        transition = MaterialTransition("TI1", "Inconel 718", " inconel 718 ")

        assert transition.is_noop

    def test_different_material_is_not_noop(self):
        transition = MaterialTransition("TI1", "Inconel 718", "Ti-6Al-4V Grade 5", 120)

        assert not transition.is_noop


class TestLocalTime:
    def test_naive_values_pass_through(self):
        moment = MONDAY.replace(hour=9)

        assert to_local_naive(moment) is moment

    def test_aware_values_become_local_naive(self):
        moment = datetime(2025, 1, 6, 9, tzinfo=timezone.utc)

        local = to_local_naive(moment)

        assert local.tzinfo is None
        assert local == moment.astimezone().replace(tzinfo=None)

    def test_same_instant_in_different_zones(self):
        utc = datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
        plus_two = datetime(2025, 1, 6, 11, tzinfo=timezone(timedelta(hours=2)))

        assert to_local_naive(utc) == to_local_naive(plus_two)
