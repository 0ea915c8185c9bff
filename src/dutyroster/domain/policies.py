"""Policy definitions for roster generation rules.

Policies hold institutional rules (baseline capacity, which days carry an
on-call slot, which slots need a skill, which schedules may be rebuilt)
apart from the generation engine, so they can be tested and swapped
independently.
"""

from abc import ABC, abstractmethod
from typing import Optional

from dutyroster.domain.models import DayDescriptor, ScheduleStatus, SlotKind


class GenerationPolicy(ABC):
    """Abstract base class for slot generation rules."""

    @abstractmethod
    def regular_baseline_per_day(self) -> int:
        """Institutional minimum of regular slots per working day."""
        pass

    @abstractmethod
    def consultation_baseline_per_day(self) -> int:
        """Institutional minimum of consultation slots per working day."""
        pass

    @abstractmethod
    def has_on_call(self, day: DayDescriptor) -> bool:
        """Whether the day carries an on-call slot."""
        pass

    @abstractmethod
    def required_skill(self, kind: SlotKind) -> Optional[str]:
        """Skill required for slots of a kind, or None."""
        pass


class RegenerationPolicy(ABC):
    """Abstract base class deciding whether an existing schedule may be rebuilt."""

    @abstractmethod
    def can_regenerate(self, status: ScheduleStatus) -> bool:
        """Check if a schedule in this status may be purged and rebuilt."""
        pass


class DefaultGenerationPolicy(GenerationPolicy):
    """Default generation rules.

    - 2 regular slots per working day as baseline
    - No consultation baseline (consultations follow staff targets)
    - One on-call slot on every even-numbered working day
    - No slot requires a skill
    """

    def __init__(
        self,
        regular_baseline: int = 2,
        consultation_baseline: int = 0,
        on_call_parity: int = 0,
        skill_by_kind: Optional[dict[SlotKind, str]] = None,
    ):
        """Initialize generation policy.

        Args:
            regular_baseline: Regular slots per working day.
            consultation_baseline: Consultation slots per working day.
            on_call_parity: Day number remainder mod 2 that gets an on-call slot.
            skill_by_kind: Optional required skill per slot kind.
        """
        if regular_baseline < 0 or consultation_baseline < 0:
            raise ValueError("baselines must be non-negative")
        if on_call_parity not in (0, 1):
            raise ValueError("on_call_parity must be 0 or 1")
        self._regular_baseline = regular_baseline
        self._consultation_baseline = consultation_baseline
        self._on_call_parity = on_call_parity
        self._skill_by_kind = dict(skill_by_kind or {})

    def regular_baseline_per_day(self) -> int:
        return self._regular_baseline

    def consultation_baseline_per_day(self) -> int:
        return self._consultation_baseline

    def has_on_call(self, day: DayDescriptor) -> bool:
        return day.is_working_day and day.day % 2 == self._on_call_parity

    def required_skill(self, kind: SlotKind) -> Optional[str]:
        return self._skill_by_kind.get(kind)


class DefaultRegenerationPolicy(RegenerationPolicy):
    """Rebuild anything that is neither in flight nor confirmed."""

    NON_REGENERABLE = frozenset(
        {ScheduleStatus.BEING_GENERATED, ScheduleStatus.CONFIRMED}
    )

    def can_regenerate(self, status: ScheduleStatus) -> bool:
        return status not in self.NON_REGENERABLE


class StrictRegenerationPolicy(RegenerationPolicy):
    """Only failed generations may be rebuilt (workflow-triggered solves)."""

    def can_regenerate(self, status: ScheduleStatus) -> bool:
        return status in (ScheduleStatus.NOT_CREATED, ScheduleStatus.GENERATION_ERROR)
