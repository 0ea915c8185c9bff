"""Text report output for roster analysis.

This module creates a plain-text report of a schedule:
- Per-day coverage (assigned/total per slot kind)
- Per-staff workload against the declared window
- Score broken down by rule
- Unassigned slots and validation findings
"""

from pathlib import Path
from typing import Optional, Union

from dutyroster.domain.models import Schedule, SlotKind
from dutyroster.scheduling.constraints import ConstraintModel, ConstraintWeights
from dutyroster.validation.validator import ScheduleValidator

KIND_CODES = {
    SlotKind.REGULAR: "REG",
    SlotKind.CONSULTATION: "CON",
    SlotKind.ON_CALL: "ONC",
}


class ReportGenerator:
    """Generates text reports for roster analysis."""

    def __init__(self, weights: Optional[ConstraintWeights] = None):
        self.weights = weights or ConstraintWeights()
        self.validator = ScheduleValidator()

    def generate(self, schedule: Schedule, output_path: Union[str, Path]) -> str:
        """Generate the report and save it to a file.

        Returns:
            The generated text content.
        """
        content = self.generate_to_string(schedule)
        Path(output_path).write_text(content, encoding="utf-8")
        return content

    def generate_to_string(self, schedule: Schedule) -> str:
        """Generate the report and return it as a string."""
        lines = []
        lines.append("=" * 72)
        lines.append(f"DUTY ROSTER {schedule.key} - {schedule.status.value}")
        lines.append("=" * 72)
        summary = schedule.get_summary()
        lines.append(f"Score: {summary['score'] or 'not solved'}")
        lines.append(
            f"Slots: {summary['assigned_slots']}/{summary['total_slots']} assigned "
            f"({summary['unassigned_slots']} unassigned)"
        )
        lines.append("")

        lines.extend(self._day_section(schedule))
        lines.extend(self._staff_section(schedule))
        lines.extend(self._score_section(schedule))
        lines.extend(self._findings_section(schedule))

        lines.append("=" * 72)
        return "\n".join(lines)

    def _day_section(self, schedule: Schedule) -> list[str]:
        lines = ["-" * 72, "COVERAGE PER DAY", "-" * 72]
        for day in schedule.get_day_summary():
            parts = []
            for kind in SlotKind:
                if kind in day.by_kind:
                    assigned, total = day.by_kind[kind]
                    parts.append(f"{KIND_CODES[kind]} {assigned}/{total}")
            marker = "" if day.is_fully_covered else "  <- missing"
            date_label = schedule.key.date_of(day.day).strftime("%a")
            lines.append(
                f"Day {day.day:>2} {date_label}: {day.assigned}/{day.total}  "
                f"[{', '.join(parts)}]{marker}"
            )
        lines.append("")
        return lines

    def _staff_section(self, schedule: Schedule) -> list[str]:
        lines = ["-" * 72, "WORKLOAD PER STAFF MEMBER", "-" * 72]
        lines.append(f"{'ID':>4} {'Name':<24} {'REG':>4} {'CON':>4} {'ONC':>4} {'Tot':>4}  Window")
        loads = schedule.get_staff_loads()
        for member in sorted(schedule.staff, key=lambda m: m.id):
            per_kind = loads.get(member.id, {kind: 0 for kind in SlotKind})
            constraints = member.constraints
            window = "-"
            if constraints is not None:
                window = (
                    f"min {constraints.min_slots} max {constraints.max_slots} "
                    f"consult {constraints.target_consultations}"
                )
            lines.append(
                f"{member.id:>4} {member.full_name[:24]:<24} "
                f"{per_kind[SlotKind.REGULAR]:>4} {per_kind[SlotKind.CONSULTATION]:>4} "
                f"{per_kind[SlotKind.ON_CALL]:>4} {sum(per_kind.values()):>4}  {window}"
            )
        lines.append("")
        return lines

    def _score_section(self, schedule: Schedule) -> list[str]:
        lines = ["-" * 72, "SCORE BY RULE", "-" * 72]
        explanation = ConstraintModel(schedule.staff, self.weights).explain(schedule.assignments)
        for rule, score in explanation.items():
            lines.append(f"{rule:<28} {score}")
        lines.append("")
        return lines

    def _findings_section(self, schedule: Schedule) -> list[str]:
        lines = ["-" * 72, "FINDINGS", "-" * 72]
        for assignment in schedule.unassigned_assignments():
            lines.append(
                f"Unassigned: day {assignment.day} - {assignment.kind.value} (slot {assignment.slot.id})"
            )
        result = self.validator.validate(schedule)
        for error in result.errors:
            lines.append(f"Error: {error}")
        for warning in result.warnings:
            lines.append(f"Warning: {warning}")
        if len(lines) == 3:
            lines.append("None")
        lines.append("")
        return lines
