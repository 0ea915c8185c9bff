"""Decision variables of the assignment search.

Each non-pinned assignment is one variable; its value is a staff id or None
(unassigned). Value domains are computed up front from static eligibility so
the solvers never propose a staff member who could not take the slot at all.
"""

from dataclasses import dataclass
from typing import Optional

from dutyroster.domain.models import DutySlot, Schedule


@dataclass(frozen=True)
class DecisionVariable:
    """One searchable assignment.

    Attributes:
        assignment_id: ID of the assignment the variable controls.
        slot: The slot being covered.
        domain: Eligible staff IDs in ascending order. None (unassigned) is
            always an allowed value in addition to these.
    """

    assignment_id: int
    slot: DutySlot
    domain: tuple[int, ...]

    @property
    def day(self) -> int:
        return self.slot.day

    @property
    def values(self) -> tuple[Optional[int], ...]:
        """All allowed values, None last."""
        return self.domain + (None,)

    def allows(self, staff_id: Optional[int]) -> bool:
        return staff_id is None or staff_id in self.domain


def build_variables(schedule: Schedule) -> list[DecisionVariable]:
    """Create one variable per non-pinned assignment, in assignment order."""
    pool = sorted((m for m in schedule.staff if m.is_eligible), key=lambda m: m.id)
    variables = []
    for assignment in schedule.assignments:
        if assignment.pinned:
            continue
        domain = tuple(m.id for m in pool if m.can_take(assignment.slot))
        variables.append(
            DecisionVariable(
                assignment_id=assignment.id,
                slot=assignment.slot,
                domain=domain,
            )
        )
    return variables
