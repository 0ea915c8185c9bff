"""Slot generator for expanding day-level counts into duty slots.

This module turns the planned counts of each day into concrete DutySlot
instances, tagging each with its kind, required skill and day.
"""

from itertools import count
from typing import Iterable, Iterator, Optional

from dutyroster.domain.models import DayDescriptor, DutySlot, SlotKind
from dutyroster.domain.policies import DefaultGenerationPolicy, GenerationPolicy


class SlotGenerator:
    """Generates duty slots for a sequence of days.

    For every day the generator emits, in order:
    - ``planned_regular_count`` regular slots
    - ``planned_consultation_count`` consultation slots
    - one on-call slot when the policy says the day carries one

    Slot IDs are sequential in day order, starting at ``first_id``, so the
    same calendar always yields the same slots.
    """

    def __init__(self, policy: Optional[GenerationPolicy] = None):
        self.policy = policy or DefaultGenerationPolicy()

    def generate(
        self,
        days: Iterable[DayDescriptor],
        first_id: int = 1,
    ) -> list[DutySlot]:
        """Generate slots for the given days.

        Args:
            days: Day descriptors with planned counts set.
            first_id: ID of the first generated slot.

        Returns:
            Slots in ID order.
        """
        ids = count(first_id)
        slots = []
        for day in sorted(days, key=lambda d: d.day):
            slots.extend(self._slots_for_day(day, ids))
        return slots

    def _slots_for_day(self, day: DayDescriptor, ids: Iterator[int]) -> list[DutySlot]:
        plan = [
            (SlotKind.REGULAR, day.planned_regular_count),
            (SlotKind.CONSULTATION, day.planned_consultation_count),
            (SlotKind.ON_CALL, 1 if self.policy.has_on_call(day) else 0),
        ]
        slots = []
        for kind, amount in plan:
            skill = self.policy.required_skill(kind)
            for _ in range(amount):
                slots.append(
                    DutySlot(
                        id=next(ids),
                        day=day.day,
                        period=day.period,
                        kind=kind,
                        required_skill=skill,
                    )
                )
        return slots
