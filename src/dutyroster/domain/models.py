"""Domain models for the duty roster.

This module contains the core data structures of the roster: the calendar
period and its days, duty slots, staff members with their constraints,
assignments, and the schedule aggregate that owns the lifecycle status.
"""

import calendar as _calendar
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from dutyroster.exceptions import InvalidPeriodKey, InvalidStatusTransition

MIN_YEAR = 1970

_PERIOD_TEXT = re.compile(r"^\s*(\d{1,2})-(\d{4})\s*$")
_SCORE_TEXT = re.compile(r"^\s*(-?\d+)hard/(-?\d+)soft\s*$")


class SlotKind(Enum):
    """Kinds of duty slots."""

    REGULAR = "regular"  # Afternoon duty
    CONSULTATION = "consultation"
    ON_CALL = "on_call"


class AvailabilityStatus(Enum):
    """Whether a staff member can be rostered at all."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class ScheduleStatus(Enum):
    """Lifecycle status of a schedule."""

    NOT_CREATED = "not_created"
    BEING_GENERATED = "being_generated"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    GENERATION_ERROR = "generation_error"


ALLOWED_TRANSITIONS: dict[ScheduleStatus, frozenset[ScheduleStatus]] = {
    ScheduleStatus.NOT_CREATED: frozenset({ScheduleStatus.BEING_GENERATED}),
    ScheduleStatus.BEING_GENERATED: frozenset(
        {ScheduleStatus.PENDING_CONFIRMATION, ScheduleStatus.GENERATION_ERROR}
    ),
    ScheduleStatus.PENDING_CONFIRMATION: frozenset({ScheduleStatus.CONFIRMED}),
    ScheduleStatus.CONFIRMED: frozenset(),
    ScheduleStatus.GENERATION_ERROR: frozenset(),
}


@dataclass(frozen=True)
class PeriodKey:
    """Natural key of a calendar month.

    Attributes:
        month: Month number (1-12).
        year: Four digit year (>= 1970).
    """

    month: int
    year: int

    def __post_init__(self) -> None:
        for name in ("month", "year"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidPeriodKey(f"{name} must be an integer, got {value!r}")
        if not 1 <= self.month <= 12:
            raise InvalidPeriodKey(f"month must be within 1..12, got {self.month}")
        if self.year < MIN_YEAR:
            raise InvalidPeriodKey(f"year must be >= {MIN_YEAR}, got {self.year}")

    @classmethod
    def parse(cls, text: Optional[str]) -> "PeriodKey":
        """Parse the ``"M-YYYY"`` form used by workflow triggers (e.g. ``"10-2024"``)."""
        if text is None:
            raise InvalidPeriodKey("period key is missing")
        match = _PERIOD_TEXT.match(str(text))
        if not match:
            raise InvalidPeriodKey(f"period key must look like 'M-YYYY', got {text!r}")
        return cls(month=int(match.group(1)), year=int(match.group(2)))

    @classmethod
    def from_date(cls, value: date) -> "PeriodKey":
        return cls(month=value.month, year=value.year)

    @property
    def days_in_month(self) -> int:
        return _calendar.monthrange(self.year, self.month)[1]

    def date_of(self, day: int) -> date:
        """Calendar date of a day number within this month."""
        return date(self.year, self.month, day)

    def __str__(self) -> str:
        return f"{self.month}-{self.year}"


@dataclass
class DayDescriptor:
    """One calendar day of a period, with its planned slot counts.

    Attributes:
        day: Day number within the month (1-based).
        period: Key of the owning calendar period.
        is_working_day: False on weekends and holidays.
        planned_regular_count: Regular slots planned for the day.
        planned_consultation_count: Consultation slots planned for the day.
    """

    day: int
    period: PeriodKey
    is_working_day: bool
    planned_regular_count: int = 0
    planned_consultation_count: int = 0

    @property
    def date(self) -> date:
        return self.period.date_of(self.day)


@dataclass
class CalendarPeriod:
    """A calendar month with one descriptor per day.

    Attributes:
        key: The (month, year) natural key.
        days: Day descriptors in ascending day order.
        holidays: Day numbers declared non-working besides weekends.
    """

    key: PeriodKey
    days: list[DayDescriptor] = field(default_factory=list)
    holidays: frozenset[int] = frozenset()

    @property
    def month(self) -> int:
        return self.key.month

    @property
    def year(self) -> int:
        return self.key.year

    def working_days(self) -> list[DayDescriptor]:
        """Working days sorted by ascending day number."""
        return sorted((d for d in self.days if d.is_working_day), key=lambda d: d.day)

    def get_day(self, day: int) -> Optional[DayDescriptor]:
        for descriptor in self.days:
            if descriptor.day == day:
                return descriptor
        return None


@dataclass(frozen=True)
class DutySlot:
    """A concrete duty slot on a given day.

    Attributes:
        id: Sequential identifier assigned in day order.
        day: Day number the slot belongs to.
        period: Key of the calendar period.
        kind: Regular, consultation, or on-call.
        required_skill: Skill a staff member needs to take the slot, if any.
    """

    id: int
    day: int
    period: PeriodKey
    kind: SlotKind
    required_skill: Optional[str] = None

    @property
    def requires_skill(self) -> bool:
        return self.required_skill is not None

    @property
    def is_consultation(self) -> bool:
        return self.kind == SlotKind.CONSULTATION

    @property
    def is_on_call(self) -> bool:
        return self.kind == SlotKind.ON_CALL


@dataclass(frozen=True)
class StaffConstraints:
    """Workload window and eligibility flags of a staff member.

    Attributes:
        staff_id: ID of the staff member these constraints belong to.
        min_slots: Minimum regular slots the member expects in the month.
        max_slots: Maximum slots of any kind in the month.
        target_consultations: Consultation slots the member should cover.
        eligible_for_on_call: Whether the member is in the on-call rotation.
        on_call_only_if_cycling: Regular slots only while in the on-call rotation.
    """

    staff_id: int
    min_slots: int = 0
    max_slots: int = 0
    target_consultations: int = 0
    eligible_for_on_call: bool = False
    on_call_only_if_cycling: bool = False


@dataclass
class StaffMember:
    """A member of the medical staff who can be rostered.

    Attributes:
        id: Unique identifier.
        first_name: Given name.
        last_names: Family names.
        email: Contact address.
        start_date: Date the member joined the service.
        availability_status: Gates eligibility for any assignment.
        constraints: Workload window and flags, None if never configured.
        skills: Skills held by the member.
    """

    id: int
    first_name: str
    last_names: str = ""
    email: str = ""
    start_date: Optional[date] = None
    availability_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    constraints: Optional[StaffConstraints] = None
    skills: frozenset[str] = frozenset()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_names}".strip()

    @property
    def is_available(self) -> bool:
        return self.availability_status == AvailabilityStatus.AVAILABLE

    @property
    def is_eligible(self) -> bool:
        """Available and configured, i.e. part of the rosterable pool."""
        return self.is_available and self.constraints is not None

    def can_take(self, slot: DutySlot) -> bool:
        """Check static eligibility for a slot (ignores workload and day clashes)."""
        if not self.is_eligible:
            return False
        if slot.required_skill is not None and slot.required_skill not in self.skills:
            return False
        if slot.kind == SlotKind.ON_CALL and not self.constraints.eligible_for_on_call:
            return False
        if (
            slot.kind == SlotKind.REGULAR
            and self.constraints.on_call_only_if_cycling
            and not self.constraints.eligible_for_on_call
        ):
            return False
        return True


@dataclass
class Assignment:
    """Assignment of a staff member to one duty slot.

    The staff reference is the decision variable; it stays None while the
    slot is uncovered.

    Attributes:
        id: Sequential identifier.
        slot: The slot being covered.
        period: Key of the owning schedule.
        staff_id: ID of the assigned staff member, if any.
        pinned: Pinned assignments are fixed input and never changed by search.
    """

    id: int
    slot: DutySlot
    period: PeriodKey
    staff_id: Optional[int] = None
    pinned: bool = False

    @property
    def day(self) -> int:
        return self.slot.day

    @property
    def kind(self) -> SlotKind:
        return self.slot.kind

    @property
    def is_assigned(self) -> bool:
        return self.staff_id is not None


@dataclass(frozen=True, order=True)
class HardSoftScore:
    """Pair of penalty accumulators compared hard first, then soft.

    Attributes:
        hard: Hard penalty (<= 0); 0 means the solution is feasible.
        soft: Soft penalty (<= 0); measures quality among feasible solutions.
    """

    hard: int = 0
    soft: int = 0

    @property
    def is_feasible(self) -> bool:
        return self.hard >= 0

    def __add__(self, other: "HardSoftScore") -> "HardSoftScore":
        return HardSoftScore(self.hard + other.hard, self.soft + other.soft)

    def __sub__(self, other: "HardSoftScore") -> "HardSoftScore":
        return HardSoftScore(self.hard - other.hard, self.soft - other.soft)

    def to_scalar(self, hard_weight: int) -> int:
        """Collapse to one number for acceptance decisions."""
        return self.hard * hard_weight + self.soft

    @classmethod
    def parse(cls, text: str) -> "HardSoftScore":
        """Parse the ``"<hard>hard/<soft>soft"`` text form."""
        match = _SCORE_TEXT.match(text or "")
        if not match:
            raise ValueError(f"Not a hard/soft score: {text!r}")
        return cls(hard=int(match.group(1)), soft=int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.hard}hard/{self.soft}soft"


ZERO_SCORE = HardSoftScore(0, 0)


@dataclass
class DaySummary:
    """Read-only coverage projection for one day.

    Attributes:
        day: Day number.
        assigned: Slots with a staff member.
        total: All slots of the day.
        by_kind: Mapping of slot kind to (assigned, total).
    """

    day: int
    assigned: int
    total: int
    by_kind: dict[SlotKind, tuple[int, int]] = field(default_factory=dict)

    @property
    def is_fully_covered(self) -> bool:
        return self.assigned == self.total


@dataclass
class Schedule:
    """Roster of one calendar month; aggregate root owning the lifecycle status.

    Attributes:
        key: Period the schedule covers.
        status: Lifecycle status.
        assignments: Exactly one assignment per duty slot.
        staff: Eligible staff pool snapshotted at build time.
        slots: Duty slots of the month in id order.
        days: Day descriptors used to generate the slots.
        score: Score of the persisted solution, if solved.
    """

    key: PeriodKey
    status: ScheduleStatus = ScheduleStatus.NOT_CREATED
    assignments: list[Assignment] = field(default_factory=list)
    staff: list[StaffMember] = field(default_factory=list)
    slots: list[DutySlot] = field(default_factory=list)
    days: list[DayDescriptor] = field(default_factory=list)
    score: Optional[HardSoftScore] = None

    @property
    def month(self) -> int:
        return self.key.month

    @property
    def year(self) -> int:
        return self.key.year

    def transition_to(self, target: ScheduleStatus) -> None:
        """Move to a new status, enforcing the lifecycle state machine."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status, target)
        self.status = target

    def staff_map(self) -> dict[int, StaffMember]:
        return {member.id: member for member in self.staff}

    def get_assignment_for_slot(self, slot_id: int) -> Optional[Assignment]:
        for assignment in self.assignments:
            if assignment.slot.id == slot_id:
                return assignment
        return None

    def unassigned_assignments(self) -> list[Assignment]:
        return [a for a in self.assignments if a.staff_id is None]

    def apply_solution(self, solution: dict[int, Optional[int]]) -> None:
        """Copy staff values from a solution snapshot onto non-pinned assignments.

        Args:
            solution: Mapping of assignment ID to staff ID (or None).
        """
        for assignment in self.assignments:
            if assignment.pinned or assignment.id not in solution:
                continue
            assignment.staff_id = solution[assignment.id]

    def get_staff_loads(self) -> dict[int, dict[SlotKind, int]]:
        """Count assigned slots per staff member and slot kind."""
        loads = {member.id: {kind: 0 for kind in SlotKind} for member in self.staff}
        for assignment in self.assignments:
            if assignment.staff_id is None:
                continue
            per_kind = loads.setdefault(
                assignment.staff_id, {kind: 0 for kind in SlotKind}
            )
            per_kind[assignment.kind] += 1
        return loads

    def get_day_summary(self) -> list[DaySummary]:
        """Assigned/total counts for every day that has slots, in day order."""
        counts: dict[int, dict[SlotKind, list[int]]] = {}
        for assignment in self.assignments:
            per_kind = counts.setdefault(assignment.day, {})
            pair = per_kind.setdefault(assignment.kind, [0, 0])
            pair[1] += 1
            if assignment.staff_id is not None:
                pair[0] += 1

        summaries = []
        for day in sorted(counts):
            by_kind = {kind: (pair[0], pair[1]) for kind, pair in counts[day].items()}
            summaries.append(
                DaySummary(
                    day=day,
                    assigned=sum(p[0] for p in by_kind.values()),
                    total=sum(p[1] for p in by_kind.values()),
                    by_kind=by_kind,
                )
            )
        return summaries

    def get_summary(self) -> dict:
        """Summary statistics of the schedule."""
        total = len(self.assignments)
        assigned = total - len(self.unassigned_assignments())
        slots_by_kind = {kind: 0 for kind in SlotKind}
        for slot in self.slots:
            slots_by_kind[slot.kind] += 1
        loads = self.get_staff_loads()
        return {
            "period": str(self.key),
            "status": self.status.value,
            "score": str(self.score) if self.score is not None else None,
            "total_slots": total,
            "assigned_slots": assigned,
            "unassigned_slots": total - assigned,
            "slots_by_kind": {kind.value: count for kind, count in slots_by_kind.items()},
            "staff_loads": {
                staff_id: sum(per_kind.values()) for staff_id, per_kind in loads.items()
            },
            "days": self.get_day_summary(),
        }
