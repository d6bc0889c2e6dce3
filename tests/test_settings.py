from datetime import date, datetime, time

from sls_scheduler.materials import MaterialFamily
from sls_scheduler.settings import AppSettings, SchedulerSettings, ShiftWindow


class TestSchedulerSettings:
    def test_defaults_are_consistent(self):
        assert SchedulerSettings().validate() == []

    def test_identical_shift_times_are_reported(self):
        settings = SchedulerSettings(shifts=(ShiftWindow("Broken", time(8), time(8)),))

        assert settings.validate() == ["Broken shift start and end times cannot be the same"]

    def test_same_family_slower_than_cross_family_is_reported(self):
        settings = SchedulerSettings(titanium_changeover_minutes=180)

        assert settings.validate() == [
            "Same-material changeover should be faster than cross-material changeover"
        ]

    def test_negative_changeover_and_row_limits_are_reported(self):
        settings = SchedulerSettings(
            default_changeover_minutes=-5, min_row_height_px=500, max_row_height_px=400
        )

        assert settings.validate() == [
            "Changeover minutes cannot be negative",
            "Minimum row height must not exceed maximum row height",
        ]

    def test_business_day_order_is_reported(self):
        settings = SchedulerSettings(business_day_start=time(18), business_day_end=time(6))

        assert "Business day start must be before business day end" in settings.validate()

    def test_weekends_are_off_by_default(self):
        settings = SchedulerSettings()

        assert settings.is_operating_day(date(2025, 1, 10))  # Friday
        assert not settings.is_operating_day(date(2025, 1, 11))
        assert not settings.is_operating_day(date(2025, 1, 12))

    def test_weekend_operation_can_be_enabled(self):
        settings = SchedulerSettings(saturday_operations=True)

        assert settings.is_operating_day(date(2025, 1, 11))
        assert not settings.is_operating_day(date(2025, 1, 12))

    def test_covering_shift(self):
        settings = SchedulerSettings()

        assert settings.covering_shift(datetime(2025, 1, 6, 7)).name == "Standard"
        assert settings.covering_shift(datetime(2025, 1, 6, 15)).name == "Evening"
        assert settings.covering_shift(datetime(2025, 1, 6, 2)).name == "Night"

    def test_family_changeover_minutes(self):
        settings = SchedulerSettings()

        assert settings.family_changeover_minutes(MaterialFamily.TITANIUM) == 30
        assert settings.family_changeover_minutes(MaterialFamily.NICKEL) == 45
        assert settings.family_changeover_minutes(MaterialFamily.STEEL) is None


class TestShiftWindow:
    def test_day_shift(self):
        shift = ShiftWindow("Standard", time(7), time(15))

        assert not shift.spans_midnight
        assert shift.covers(time(7))
        assert not shift.covers(time(15))

    def test_night_shift_spans_midnight(self):
        shift = ShiftWindow("Night", time(23), time(7))

        assert shift.spans_midnight
        assert shift.covers(time(23, 30))
        assert shift.covers(time(6, 59))
        assert not shift.covers(time(7))


class TestAppSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        settings = AppSettings()

        assert settings.database_path == "sls_scheduler.sqlite3"
        assert settings.log_level == "INFO"
        assert settings.seed_demo_data is True

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SLS_SCHEDULER_DATABASE_PATH", str(tmp_path / "prod.sqlite3"))
        monkeypatch.setenv("SLS_SCHEDULER_SEED_DEMO_DATA", "false")
        monkeypatch.setenv("SLS_SCHEDULER_LOG_LEVEL", "")

        settings = AppSettings()

        assert settings.database_path == str(tmp_path / "prod.sqlite3")
        assert settings.seed_demo_data is False
        assert settings.log_level == "INFO"

    def test_env_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("SLS_SCHEDULER_PROJECT_NAME=Print Floor\n")

        assert AppSettings().project_name == "Print Floor"
