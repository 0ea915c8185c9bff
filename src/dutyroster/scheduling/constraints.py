"""Constraint model scoring candidate assignments.

A candidate solution maps each assignment to a staff member or to nothing.
The model turns it into a HardSoftScore: hard rules make a solution
infeasible, soft rules rank feasible (or best-effort) solutions.

Hard rules:
- A staff member holds two assignments on the same day
- A staff member holds more slots than ``max_slots``
- An on-call slot goes to staff outside the on-call rotation
- A skill-requiring slot goes to staff lacking the skill
- A regular slot goes to staff allowed regular duty only while on call
- An assignment references staff outside the eligible pool

Soft rules:
- Regular slots below ``min_slots``
- Consultation slots below ``target_consultations``
- Workload imbalance across the pool (variance of total loads)
- Unfilled slots (hard instead when ``unassigned_is_hard`` is set)

``ConstraintModel`` evaluates from scratch; ``IncrementalScoreCalculator``
keeps the same score up to date under insert/retract of single values.
"""

from dataclasses import dataclass, fields
from typing import Iterable, Optional

from dutyroster.domain.models import (
    Assignment,
    DutySlot,
    HardSoftScore,
    SlotKind,
    StaffMember,
)

DOUBLE_BOOKING = "double_booking"
OVER_MAX_SLOTS = "over_max_slots"
ON_CALL_INELIGIBLE = "on_call_ineligible"
MISSING_SKILL = "missing_skill"
REGULAR_REQUIRES_CYCLING = "regular_requires_cycling"
INELIGIBLE_STAFF = "ineligible_staff"
MIN_SLOTS_SHORTFALL = "min_slots_shortfall"
CONSULTATION_SHORTFALL = "consultation_shortfall"
WORKLOAD_IMBALANCE = "workload_imbalance"
UNASSIGNED_SLOT = "unassigned_slot"

HARD_RULES = (
    DOUBLE_BOOKING,
    OVER_MAX_SLOTS,
    ON_CALL_INELIGIBLE,
    MISSING_SKILL,
    REGULAR_REQUIRES_CYCLING,
    INELIGIBLE_STAFF,
)
SOFT_RULES = (
    MIN_SLOTS_SHORTFALL,
    CONSULTATION_SHORTFALL,
    WORKLOAD_IMBALANCE,
    UNASSIGNED_SLOT,
)


@dataclass
class ConstraintWeights:
    """Penalty per unit of violation for each rule.

    Attributes:
        double_booking: Per extra assignment of a staff member on one day.
        over_max_slots: Per slot above ``max_slots``.
        on_call_ineligible: Per on-call slot given outside the rotation.
        missing_skill: Per slot given to staff lacking the required skill.
        regular_requires_cycling: Per regular slot given to non-cycling staff
            flagged ``on_call_only_if_cycling``.
        ineligible_staff: Per assignment referencing staff outside the pool.
        min_slots_shortfall: Per regular slot below ``min_slots``.
        consultation_shortfall: Per consultation below the target.
        workload_imbalance: Multiplier of the load variance term.
        unassigned_slot: Per unfilled slot.
        unassigned_is_hard: Count unfilled slots as a hard penalty.
    """

    double_booking: int = 1
    over_max_slots: int = 1
    on_call_ineligible: int = 1
    missing_skill: int = 1
    regular_requires_cycling: int = 1
    ineligible_staff: int = 1
    min_slots_shortfall: int = 10
    consultation_shortfall: int = 10
    workload_imbalance: int = 1
    unassigned_slot: int = 100
    unassigned_is_hard: bool = False

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name != "unassigned_is_hard" and value < 0:
                raise ValueError(f"weight {f.name} must be non-negative, got {value}")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ConstraintWeights":
        """Create weights from a JSON-like dict; unknown keys are rejected."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown constraint weights: {', '.join(sorted(unknown))}")
        return cls(**data)

    def weight_of(self, rule: str) -> int:
        return getattr(self, rule)

    def is_hard(self, rule: str) -> bool:
        if rule == UNASSIGNED_SLOT:
            return self.unassigned_is_hard
        return rule in HARD_RULES


def imbalance_penalty(loads: Iterable[int], weight: int) -> int:
    """Variance-style penalty ``weight * (n * sum(x^2) - sum(x)^2) // n``."""
    values = list(loads)
    return imbalance_from_sums(len(values), sum(values), sum(v * v for v in values), weight)


def imbalance_from_sums(n: int, total: int, total_sq: int, weight: int) -> int:
    if n == 0:
        return 0
    return weight * (n * total_sq - total * total) // n


def slot_violations(slot: DutySlot, member: StaffMember) -> list[str]:
    """Hard rules broken by giving one slot to one eligible member."""
    violations = []
    constraints = member.constraints
    if slot.kind == SlotKind.ON_CALL and not constraints.eligible_for_on_call:
        violations.append(ON_CALL_INELIGIBLE)
    if slot.required_skill is not None and slot.required_skill not in member.skills:
        violations.append(MISSING_SKILL)
    if (
        slot.kind == SlotKind.REGULAR
        and constraints.on_call_only_if_cycling
        and not constraints.eligible_for_on_call
    ):
        violations.append(REGULAR_REQUIRES_CYCLING)
    return violations


class ConstraintModel:
    """Scores assignment sets against the hard and soft rules.

    Example:
        >>> model = ConstraintModel(schedule.staff)
        >>> score = model.calculate(schedule.assignments)
        >>> print(score, model.explain(schedule.assignments))
    """

    def __init__(
        self,
        staff: Iterable[StaffMember],
        weights: Optional[ConstraintWeights] = None,
    ):
        self.weights = weights or ConstraintWeights()
        self.staff_map = {member.id: member for member in staff if member.is_eligible}

    def calculate(self, assignments: Iterable[Assignment]) -> HardSoftScore:
        """Score a set of assignments."""
        total = HardSoftScore()
        for score in self.explain(assignments).values():
            total = total + score
        return total

    def explain(self, assignments: Iterable[Assignment]) -> dict[str, HardSoftScore]:
        """Weighted penalty of each rule, keyed by rule name."""
        counts = self.violation_counts(assignments)
        explanation = {}
        for rule in HARD_RULES + SOFT_RULES:
            penalty = counts[rule]
            if rule != WORKLOAD_IMBALANCE:
                penalty *= self.weights.weight_of(rule)
            if self.weights.is_hard(rule):
                explanation[rule] = HardSoftScore(hard=-penalty)
            else:
                explanation[rule] = HardSoftScore(soft=-penalty)
        return explanation

    def violation_counts(self, assignments: Iterable[Assignment]) -> dict[str, int]:
        """Unweighted violation units per rule.

        The workload imbalance entry is already weighted, since the variance
        term is not linear in its units.
        """
        counts = {rule: 0 for rule in HARD_RULES + SOFT_RULES}
        per_day: dict[tuple[int, int], int] = {}
        per_kind = {
            staff_id: {kind: 0 for kind in SlotKind} for staff_id in self.staff_map
        }

        for assignment in assignments:
            staff_id = assignment.staff_id
            if staff_id is None:
                counts[UNASSIGNED_SLOT] += 1
                continue
            member = self.staff_map.get(staff_id)
            if member is None:
                counts[INELIGIBLE_STAFF] += 1
                continue
            for rule in slot_violations(assignment.slot, member):
                counts[rule] += 1
            day_key = (staff_id, assignment.day)
            per_day[day_key] = per_day.get(day_key, 0) + 1
            per_kind[staff_id][assignment.kind] += 1

        counts[DOUBLE_BOOKING] = sum(k - 1 for k in per_day.values() if k > 1)

        for staff_id, kinds in per_kind.items():
            constraints = self.staff_map[staff_id].constraints
            total = sum(kinds.values())
            if constraints.max_slots > 0 and total > constraints.max_slots:
                counts[OVER_MAX_SLOTS] += total - constraints.max_slots
            counts[MIN_SLOTS_SHORTFALL] += max(0, constraints.min_slots - kinds[SlotKind.REGULAR])
            counts[CONSULTATION_SHORTFALL] += max(
                0, constraints.target_consultations - kinds[SlotKind.CONSULTATION]
            )

        counts[WORKLOAD_IMBALANCE] = imbalance_penalty(
            (sum(kinds.values()) for kinds in per_kind.values()),
            self.weights.workload_imbalance,
        )
        return counts


class _StaffTally:
    """Running counts of one staff member."""

    __slots__ = ("regular", "consultation", "total", "days", "extra_same_day")

    def __init__(self):
        self.regular = 0
        self.consultation = 0
        self.total = 0
        self.days: dict[int, int] = {}
        self.extra_same_day = 0


class IncrementalScoreCalculator:
    """Keeps the score of a changing assignment set up to date.

    Only the rules touching the changed slot and staff member are
    re-evaluated on each ``insert``/``retract``. The result always equals
    ``ConstraintModel.calculate`` on the same assignment set.
    """

    def __init__(
        self,
        staff: Iterable[StaffMember],
        weights: Optional[ConstraintWeights] = None,
    ):
        self.weights = weights or ConstraintWeights()
        self.staff_map = {member.id: member for member in staff if member.is_eligible}
        self.reset([])

    def reset(self, values: Iterable[tuple[DutySlot, Optional[int]]]) -> HardSoftScore:
        """Recompute all state from (slot, staff id) pairs."""
        self._tallies = {staff_id: _StaffTally() for staff_id in self.staff_map}
        self._penalties = {rule: 0 for rule in HARD_RULES + SOFT_RULES}
        self._load_sum = 0
        self._load_sum_sq = 0
        for slot, staff_id in values:
            self.insert(slot, staff_id)
        return self.score

    @property
    def score(self) -> HardSoftScore:
        hard = 0
        soft = 0
        for rule, penalty in self._penalties.items():
            if rule == WORKLOAD_IMBALANCE:
                penalty = imbalance_from_sums(
                    len(self._tallies),
                    self._load_sum,
                    self._load_sum_sq,
                    self.weights.workload_imbalance,
                )
            if self.weights.is_hard(rule):
                hard -= penalty
            else:
                soft -= penalty
        return HardSoftScore(hard=hard, soft=soft)

    def insert(self, slot: DutySlot, staff_id: Optional[int]) -> None:
        self._apply(slot, staff_id, 1)

    def retract(self, slot: DutySlot, staff_id: Optional[int]) -> None:
        self._apply(slot, staff_id, -1)

    def staff_load(self, staff_id: int) -> int:
        tally = self._tallies.get(staff_id)
        return tally.total if tally is not None else 0

    def day_count(self, staff_id: int, day: int) -> int:
        tally = self._tallies.get(staff_id)
        return tally.days.get(day, 0) if tally is not None else 0

    def _apply(self, slot: DutySlot, staff_id: Optional[int], sign: int) -> None:
        weights = self.weights
        if staff_id is None:
            self._penalties[UNASSIGNED_SLOT] += sign * weights.unassigned_slot
            return
        member = self.staff_map.get(staff_id)
        if member is None:
            self._penalties[INELIGIBLE_STAFF] += sign * weights.ineligible_staff
            return

        for rule in slot_violations(slot, member):
            self._penalties[rule] += sign * weights.weight_of(rule)

        tally = self._tallies[staff_id]
        before = self._staff_penalties(tally, member)
        self._load_sum_sq -= tally.total * tally.total

        day_count = tally.days.get(slot.day, 0) + sign
        if day_count:
            tally.days[slot.day] = day_count
        else:
            tally.days.pop(slot.day, None)
        if sign > 0 and day_count > 1:
            tally.extra_same_day += 1
        elif sign < 0 and day_count >= 1:
            tally.extra_same_day -= 1
        tally.total += sign
        if slot.kind == SlotKind.REGULAR:
            tally.regular += sign
        elif slot.kind == SlotKind.CONSULTATION:
            tally.consultation += sign

        self._load_sum += sign
        self._load_sum_sq += tally.total * tally.total
        after = self._staff_penalties(tally, member)
        for rule, value in after.items():
            self._penalties[rule] += value - before[rule]

    def _staff_penalties(self, tally: _StaffTally, member: StaffMember) -> dict[str, int]:
        constraints = member.constraints
        weights = self.weights
        over = 0
        if constraints.max_slots > 0:
            over = max(0, tally.total - constraints.max_slots)
        return {
            DOUBLE_BOOKING: tally.extra_same_day * weights.double_booking,
            OVER_MAX_SLOTS: over * weights.over_max_slots,
            MIN_SLOTS_SHORTFALL: max(0, constraints.min_slots - tally.regular)
            * weights.min_slots_shortfall,
            CONSULTATION_SHORTFALL: max(
                0, constraints.target_consultations - tally.consultation
            )
            * weights.consultation_shortfall,
        }
