"""Validation module for verifying roster correctness.

The validator lists every hard rule violation of a schedule individually,
with the staff member, day and slot involved, and reports soft rule
shortfalls as warnings. It complements the aggregate score of the
ConstraintModel.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from dutyroster.domain.models import Schedule, SlotKind
from dutyroster.scheduling.constraints import slot_violations


class ValidationErrorType(Enum):
    """Types of validation errors."""

    SLOT_WITHOUT_ASSIGNMENT = "slot_without_assignment"
    SLOT_WITH_MULTIPLE_ASSIGNMENTS = "slot_with_multiple_assignments"
    DOUBLE_BOOKING = "double_booking"
    MAX_SLOTS_EXCEEDED = "max_slots_exceeded"
    ON_CALL_INELIGIBLE = "on_call_ineligible"
    MISSING_SKILL = "missing_skill"
    REGULAR_REQUIRES_CYCLING = "regular_requires_cycling"
    INELIGIBLE_STAFF = "ineligible_staff"


_RULE_ERRORS = {
    "on_call_ineligible": ValidationErrorType.ON_CALL_INELIGIBLE,
    "missing_skill": ValidationErrorType.MISSING_SKILL,
    "regular_requires_cycling": ValidationErrorType.REGULAR_REQUIRES_CYCLING,
}


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    staff_id: Optional[int] = None
    day: Optional[int] = None
    slot_id: Optional[int] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.staff_id is not None:
            parts.append(f"Staff {self.staff_id}:")
        parts.append(self.message)
        if self.day is not None:
            parts.append(f"(day {self.day})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a schedule."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)

    def errors_of(self, error_type: ValidationErrorType) -> list[ValidationError]:
        return [e for e in self.errors if e.error_type == error_type]


class ScheduleValidator:
    """Validates schedules against the roster invariants.

    Example:
        >>> result = ScheduleValidator().validate(schedule)
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def validate(self, schedule: Schedule) -> ValidationResult:
        """Validate a complete schedule.

        Args:
            schedule: The schedule to validate.

        Returns:
            ValidationResult with is_valid flag, errors and warnings.
        """
        result = ValidationResult(is_valid=True)
        self._validate_slot_mapping(schedule, result)
        self._validate_assignments(schedule, result)
        self._validate_workload(schedule, result)
        return result

    def _validate_slot_mapping(self, schedule: Schedule, result: ValidationResult) -> None:
        """Each slot must have exactly one assignment."""
        per_slot: dict[int, int] = {}
        for assignment in schedule.assignments:
            per_slot[assignment.slot.id] = per_slot.get(assignment.slot.id, 0) + 1

        for slot in schedule.slots:
            found = per_slot.get(slot.id, 0)
            if found == 0:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.SLOT_WITHOUT_ASSIGNMENT,
                        message=f"Slot {slot.id} has no assignment",
                        day=slot.day,
                        slot_id=slot.id,
                    )
                )
            elif found > 1:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.SLOT_WITH_MULTIPLE_ASSIGNMENTS,
                        message=f"Slot {slot.id} has {found} assignments",
                        day=slot.day,
                        slot_id=slot.id,
                    )
                )

    def _validate_assignments(self, schedule: Schedule, result: ValidationResult) -> None:
        staff_map = {m.id: m for m in schedule.staff}
        seen_days: dict[tuple[int, int], int] = {}
        unassigned = 0

        for assignment in schedule.assignments:
            staff_id = assignment.staff_id
            if staff_id is None:
                unassigned += 1
                continue

            member = staff_map.get(staff_id)
            if member is None or not member.is_eligible:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.INELIGIBLE_STAFF,
                        message="Assigned staff is not an available member of the pool",
                        staff_id=staff_id,
                        day=assignment.day,
                        slot_id=assignment.slot.id,
                    )
                )
                continue

            for rule in slot_violations(assignment.slot, member):
                result.add_error(
                    ValidationError(
                        error_type=_RULE_ERRORS[rule],
                        message=f"{member.full_name} cannot take {assignment.kind.value} slot",
                        staff_id=staff_id,
                        day=assignment.day,
                        slot_id=assignment.slot.id,
                    )
                )

            day_key = (staff_id, assignment.day)
            if day_key in seen_days:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.DOUBLE_BOOKING,
                        message=(
                            f"{member.full_name} also holds slot {seen_days[day_key]} that day"
                        ),
                        staff_id=staff_id,
                        day=assignment.day,
                        slot_id=assignment.slot.id,
                    )
                )
            else:
                seen_days[day_key] = assignment.slot.id

        if unassigned:
            result.add_warning(f"{unassigned} slot(s) left unassigned")

    def _validate_workload(self, schedule: Schedule, result: ValidationResult) -> None:
        loads = schedule.get_staff_loads()
        for member in schedule.staff:
            if member.constraints is None:
                continue
            constraints = member.constraints
            per_kind = loads.get(member.id, {})
            total = sum(per_kind.values())

            if constraints.max_slots > 0 and total > constraints.max_slots:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.MAX_SLOTS_EXCEEDED,
                        message=f"{total} slots exceed maximum {constraints.max_slots}",
                        staff_id=member.id,
                        details={"total": total, "max_slots": constraints.max_slots},
                    )
                )

            regular = per_kind.get(SlotKind.REGULAR, 0)
            if regular < constraints.min_slots:
                result.add_warning(
                    f"Staff {member.id}: {regular} regular slots, minimum {constraints.min_slots}"
                )
            consultations = per_kind.get(SlotKind.CONSULTATION, 0)
            if consultations < constraints.target_consultations:
                result.add_warning(
                    f"Staff {member.id}: {consultations} consultations, "
                    f"target {constraints.target_consultations}"
                )
