"""Demand distribution and capacity planning.

Capacity is elastic: a month always gets at least the institutional
baseline of slots, and more when the staff collectively declare a larger
minimum demand, so no minimum is structurally unsatisfiable.
"""

from typing import Hashable, Iterable, Sequence, TypeVar

from dutyroster.domain.models import DayDescriptor, StaffMember

T = TypeVar("T", bound=Hashable)


class DemandDistributor:
    """Spreads a total evenly over an ordered sequence of items.

    With n items, every item gets ``total // n`` and the first
    ``total % n`` items in the given order get one more.
    """

    def distribute(self, days: Sequence[T], total: int) -> dict[T, int]:
        """Distribute a total across days.

        Args:
            days: Ordered, distinct items (day numbers, staff ids, ...). Order
                decides who receives the remainder, so callers pass a stable
                ascending order.
            total: Non-negative amount to distribute.

        Returns:
            Mapping of each item to its share. With no items the mapping is
            empty and the total is dropped.
        """
        if total < 0:
            raise ValueError(f"total must be non-negative, got {total}")
        n = len(days)
        if n == 0:
            return {}
        base, remainder = divmod(total, n)
        return {item: base + (1 if i < remainder else 0) for i, item in enumerate(days)}


def eligible_staff(staff_pool: Iterable[StaffMember]) -> list[StaffMember]:
    """Available staff that carry constraints, in id order."""
    return sorted((m for m in staff_pool if m.is_eligible), key=lambda m: m.id)


class CapacityPlanner:
    """Decides monthly slot totals as max(baseline, declared staff demand)."""

    def plan_regular_capacity(
        self,
        working_days: Sequence[DayDescriptor],
        baseline_per_day: int,
        staff_pool: Iterable[StaffMember],
    ) -> int:
        """Total regular slots for the month.

        Args:
            working_days: Working days of the month.
            baseline_per_day: Institutional minimum of regular slots per working day.
            staff_pool: Candidate staff; only eligible members count.

        Returns:
            ``max(len(working_days) * baseline_per_day, sum(min_slots))``.
        """
        baseline = len(working_days) * baseline_per_day
        demand = sum(m.constraints.min_slots for m in eligible_staff(staff_pool))
        return max(baseline, demand)

    def plan_consultation_capacity(
        self,
        working_days: Sequence[DayDescriptor],
        baseline_per_day: int,
        staff_pool: Iterable[StaffMember],
    ) -> int:
        """Total consultation slots: max(baseline, sum of target consultations)."""
        baseline = len(working_days) * baseline_per_day
        demand = sum(
            m.constraints.target_consultations for m in eligible_staff(staff_pool)
        )
        return max(baseline, demand)
