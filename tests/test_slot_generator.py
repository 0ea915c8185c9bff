"""Tests for slot generation."""

from dutyroster.domain.models import DayDescriptor, PeriodKey, SlotKind
from dutyroster.domain.policies import DefaultGenerationPolicy
from dutyroster.scheduling.slot_generator import SlotGenerator

KEY = PeriodKey(2, 2026)


def _day(day: int, regular: int = 0, consultation: int = 0, working: bool = True) -> DayDescriptor:
    return DayDescriptor(
        day=day,
        period=KEY,
        is_working_day=working,
        planned_regular_count=regular,
        planned_consultation_count=consultation,
    )


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def test_kinds_in_order_within_day(self):
        """Regular, then consultation, then on-call on an even working day."""
        slots = SlotGenerator().generate([_day(2, regular=2, consultation=1)])
        assert [s.kind for s in slots] == [
            SlotKind.REGULAR,
            SlotKind.REGULAR,
            SlotKind.CONSULTATION,
            SlotKind.ON_CALL,
        ]

    def test_odd_day_has_no_on_call(self):
        slots = SlotGenerator().generate([_day(3, regular=1)])
        assert [s.kind for s in slots] == [SlotKind.REGULAR]

    def test_non_working_day_has_no_on_call(self):
        assert SlotGenerator().generate([_day(8, working=False)]) == []

    def test_ids_sequential_in_day_order(self):
        """Days given out of order still yield ids ascending by day."""
        slots = SlotGenerator().generate(
            [_day(4, regular=1), _day(3, regular=2)], first_id=10
        )
        assert [s.id for s in slots] == [10, 11, 12, 13]
        assert [s.day for s in slots] == [3, 3, 4, 4]

    def test_deterministic(self):
        days = [_day(2, regular=2), _day(3, regular=3, consultation=1)]
        assert SlotGenerator().generate(days) == SlotGenerator().generate(days)

    def test_required_skill_from_policy(self):
        policy = DefaultGenerationPolicy(skill_by_kind={SlotKind.ON_CALL: "icu"})
        slots = SlotGenerator(policy).generate([_day(2, regular=1)])
        assert slots[0].required_skill is None
        assert slots[1].required_skill == "icu"

    def test_odd_parity_policy(self):
        policy = DefaultGenerationPolicy(on_call_parity=1)
        slots = SlotGenerator(policy).generate([_day(2), _day(3)])
        assert [(s.day, s.kind) for s in slots] == [(3, SlotKind.ON_CALL)]
