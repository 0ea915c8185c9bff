"""Tests for building the monthly problem instance."""

import pytest

from dutyroster.domain.calendar import CalendarGenerator
from dutyroster.domain.models import (
    PeriodKey,
    ScheduleStatus,
    SlotKind,
    StaffConstraints,
    StaffMember,
)
from dutyroster.domain.policies import StrictRegenerationPolicy
from dutyroster.exceptions import CalendarNotFound, ScheduleAlreadyExists
from dutyroster.persistence.repositories import InMemorySlotRepository
from dutyroster.scheduling.problem_builder import ProblemBuilder


class FailingSlotRepository(InMemorySlotRepository):
    """Slot repository that fails while saving."""

    def save_all(self, slots):
        raise RuntimeError("disk full")


def _builder(repos, **kwargs) -> ProblemBuilder:
    return ProblemBuilder(repos.calendars, repos.schedules, repos.staff, repos.slots, **kwargs)


def _seed(repos, key, staff):
    repos.calendars.save(CalendarGenerator().generate(key))
    repos.staff.save_all(staff)


class TestProblemBuilder:
    """Tests for ProblemBuilder.build."""

    def test_builds_baseline_instance(self, builder, february):
        """Ten staff with min 2 leave the 2-per-day baseline in force."""
        schedule = builder.build(february)

        kinds = [s.kind for s in schedule.slots]
        assert schedule.status == ScheduleStatus.BEING_GENERATED
        assert kinds.count(SlotKind.REGULAR) == 40
        assert kinds.count(SlotKind.CONSULTATION) == 0
        assert kinds.count(SlotKind.ON_CALL) == 10
        assert len(schedule.assignments) == len(schedule.slots)
        assert all(a.staff_id is None for a in schedule.assignments)
        assert [a.id for a in schedule.assignments] == list(range(1, 51))

    def test_on_call_on_even_working_days(self, builder, february):
        schedule = builder.build(february)
        on_call_days = [s.day for s in schedule.slots if s.kind == SlotKind.ON_CALL]
        assert on_call_days == [2, 4, 6, 10, 12, 16, 18, 20, 24, 26]

    def test_demand_raises_capacity(self, repos, february, staff_factory):
        """10 staff with min 5 need 50 regular slots; the first 10 working days get 3."""
        _seed(repos, february, staff_factory(10, min_slots=5))
        schedule = _builder(repos).build(february)

        regular = {d.day: d.planned_regular_count for d in schedule.days if d.is_working_day}
        assert sum(regular.values()) == 50
        three = [day for day, amount in regular.items() if amount == 3]
        assert three == [2, 3, 4, 5, 6, 9, 10, 11, 12, 13]
        assert all(amount == 2 for day, amount in regular.items() if day not in three)

    def test_weak_demand_keeps_baseline(self, repos, february, staff_factory):
        _seed(repos, february, staff_factory(10, min_slots=1))
        schedule = _builder(repos).build(february)
        assert sum(d.planned_regular_count for d in schedule.days) == 40

    def test_non_working_days_have_no_slots(self, builder, february):
        schedule = builder.build(february)
        weekend = {1, 7, 8, 14, 15, 21, 22, 28}
        assert not [s for s in schedule.slots if s.day in weekend]
        assert all(
            d.planned_regular_count == 0 for d in schedule.days if d.day in weekend
        )

    def test_calendar_is_not_modified(self, builder, seeded_repos, february):
        builder.build(february)
        calendar = seeded_repos.calendars.find_by_period(february)
        assert all(d.planned_regular_count == 0 for d in calendar.days)

    def test_only_eligible_staff_snapshotted(self, seeded_repos, builder, february):
        unconfigured = StaffMember(id=50, first_name="New")
        seeded_repos.staff.save(unconfigured)
        schedule = builder.build(february)
        assert [m.id for m in schedule.staff] == list(range(1, 11))

    def test_missing_calendar(self, builder):
        """No calendar: CalendarNotFound and nothing persisted."""
        key = PeriodKey(3, 2026)
        with pytest.raises(CalendarNotFound) as exc_info:
            builder.build(key)
        assert exc_info.value.month == 3
        assert builder.schedule_repository.find_by_period(key) is None

    def test_in_flight_schedule_is_not_rebuilt(self, builder, february):
        builder.build(february)
        with pytest.raises(ScheduleAlreadyExists) as exc_info:
            builder.build(february)
        assert exc_info.value.status == ScheduleStatus.BEING_GENERATED

    def test_confirmed_schedule_is_not_rebuilt(self, builder, february):
        schedule = builder.build(february)
        schedule.status = ScheduleStatus.CONFIRMED
        with pytest.raises(ScheduleAlreadyExists):
            builder.build(february)

    @pytest.mark.parametrize(
        "status", [ScheduleStatus.GENERATION_ERROR, ScheduleStatus.PENDING_CONFIRMATION]
    )
    def test_rebuild_is_idempotent(self, builder, seeded_repos, february, status):
        """Rebuilding purges the previous instance instead of duplicating it."""
        first = builder.build(february)
        first.status = status
        second = builder.build(february)

        assert second is not first
        assert second.status == ScheduleStatus.BEING_GENERATED
        assert seeded_repos.schedules.count_assignments(february) == 50
        assert len(seeded_repos.slots.find_by_period(february)) == 50
        assert len(seeded_repos.schedules.find_all()) == 1

    def test_strict_policy_refuses_pending(self, builder, february):
        schedule = builder.build(february)
        schedule.status = ScheduleStatus.PENDING_CONFIRMATION
        with pytest.raises(ScheduleAlreadyExists):
            builder.build(february, regeneration_policy=StrictRegenerationPolicy())

    def test_failure_rolls_back_purge(self, seeded_repos, builder, february):
        """A failure mid-build leaves the previous instance in place."""
        builder.build(february).status = ScheduleStatus.GENERATION_ERROR

        failing = ProblemBuilder(
            seeded_repos.calendars,
            seeded_repos.schedules,
            seeded_repos.staff,
            FailingSlotRepository(seeded_repos.database),
        )
        with pytest.raises(RuntimeError):
            failing.build(february)

        restored = seeded_repos.schedules.find_by_period(february)
        assert restored.status == ScheduleStatus.GENERATION_ERROR
        assert seeded_repos.schedules.count_assignments(february) == 50
        assert len(seeded_repos.slots.find_by_period(february)) == 50

    def test_persisted_with_flush(self, builder, seeded_repos, february):
        builder.build(february)
        assert seeded_repos.database.flush_count == 1


class TestStaffSnapshot:
    """Tests for the elastic max-slot adjustment."""

    def test_max_raised_to_cover_slots(self, repos, february, staff_factory):
        """10 staff capped at 3 cannot cover 50 slots; each cap rises to 5."""
        _seed(repos, february, staff_factory(10, max_slots=3))
        schedule = _builder(repos).build(february)
        assert [m.constraints.max_slots for m in schedule.staff] == [5] * 10

    def test_stored_staff_untouched(self, repos, february, staff_factory):
        _seed(repos, february, staff_factory(10, max_slots=3))
        _builder(repos).build(february)
        assert all(m.constraints.max_slots == 3 for m in repos.staff.find_all())

    def test_sufficient_caps_unchanged(self, builder, february):
        schedule = builder.build(february)
        assert all(m.constraints.max_slots == 10 for m in schedule.staff)

    def test_uncapped_members_stay_uncapped(self, builder):
        staff = [
            StaffMember(id=1, first_name="A", constraints=StaffConstraints(staff_id=1, max_slots=0)),
            StaffMember(id=2, first_name="B", constraints=StaffConstraints(staff_id=2, max_slots=2)),
        ]
        snapshot = builder.snapshot_staff(staff, 10)
        assert snapshot[0].constraints.max_slots == 0
        assert snapshot[1].constraints.max_slots == 10

    def test_cap_never_below_minimum(self, builder):
        staff = [
            StaffMember(
                id=1,
                first_name="A",
                constraints=StaffConstraints(staff_id=1, min_slots=8, max_slots=3),
            )
        ]
        assert builder.snapshot_staff(staff, 3)[0].constraints.max_slots == 8

    def test_deficit_remainder_goes_to_lowest_ids(self, builder, staff_factory):
        staff = staff_factory(3, min_slots=0, max_slots=1)
        snapshot = builder.snapshot_staff(staff, 5)
        assert [m.constraints.max_slots for m in snapshot] == [2, 2, 1]
