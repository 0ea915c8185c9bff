"""Domain models and business rules for roster generation."""

from dutyroster.domain.calendar import CalendarGenerator
from dutyroster.domain.demand import CapacityPlanner, DemandDistributor
from dutyroster.domain.models import (
    Assignment,
    AvailabilityStatus,
    CalendarPeriod,
    DayDescriptor,
    DaySummary,
    DutySlot,
    HardSoftScore,
    PeriodKey,
    Schedule,
    ScheduleStatus,
    SlotKind,
    StaffConstraints,
    StaffMember,
)
from dutyroster.domain.policies import (
    DefaultGenerationPolicy,
    DefaultRegenerationPolicy,
    GenerationPolicy,
    RegenerationPolicy,
    StrictRegenerationPolicy,
)

__all__ = [
    # Models
    "Assignment",
    "AvailabilityStatus",
    "CalendarPeriod",
    "DayDescriptor",
    "DaySummary",
    "DutySlot",
    "HardSoftScore",
    "PeriodKey",
    "Schedule",
    "ScheduleStatus",
    "SlotKind",
    "StaffConstraints",
    "StaffMember",
    # Generation
    "CalendarGenerator",
    "CapacityPlanner",
    "DemandDistributor",
    # Policies
    "DefaultGenerationPolicy",
    "DefaultRegenerationPolicy",
    "GenerationPolicy",
    "RegenerationPolicy",
    "StrictRegenerationPolicy",
]
