"""Command-line interface for the duty roster generator."""

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Optional

from dutyroster.domain.calendar import CalendarGenerator
from dutyroster.domain.demand import DemandDistributor
from dutyroster.domain.models import (
    AvailabilityStatus,
    PeriodKey,
    Schedule,
    SlotKind,
    StaffConstraints,
    StaffMember,
)
from dutyroster.domain.policies import DefaultGenerationPolicy
from dutyroster.exceptions import DutyRosterError
from dutyroster.logging_config import configure_logging
from dutyroster.output.pdf_generator import PDFGenerator
from dutyroster.output.report import ReportGenerator
from dutyroster.persistence.repositories import (
    RepositoryBundle,
    create_in_memory_repositories,
)
from dutyroster.scheduling.constraints import ConstraintWeights
from dutyroster.scheduling.lifecycle import ScheduleLifecycle
from dutyroster.scheduling.local_search_solver import SolverConfig, SolverType
from dutyroster.scheduling.problem_builder import ProblemBuilder
from dutyroster.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)


def create_sample_staff(
    key: PeriodKey,
    count: int = 22,
    total_consultations: int = 21,
) -> list[StaffMember]:
    """Create sample staff members for a demo month.

    Half of the staff is in the on-call rotation; the consultation total is
    spread over everybody in id order.

    Args:
        key: Month the demo is generated for.
        count: Number of staff members to create.
        total_consultations: Consultations to spread as targets.
    """
    ids = list(range(1, count + 1))
    consultations = DemandDistributor().distribute(ids, total_consultations)
    staff = []
    for i in ids:
        constraints = StaffConstraints(
            staff_id=i,
            min_slots=2,
            max_slots=10,
            target_consultations=consultations[i],
            eligible_for_on_call=(i % 2 == 0),
            on_call_only_if_cycling=False,
        )
        staff.append(
            StaffMember(
                id=i,
                first_name=f"Doc{i}",
                last_names=f"Test{i}",
                email=f"doc{i}@example.com",
                start_date=key.date_of(min(i, key.days_in_month)),
                constraints=constraints,
            )
        )
    return staff


def load_staff(path: str) -> list[StaffMember]:
    """Load staff members from a JSON file.

    The file holds a list of objects such as::

        {"id": 1, "first_name": "Ana", "last_names": "Ruiz",
         "email": "ana@example.com", "start_date": "2024-01-15",
         "status": "available", "skills": ["icu"],
         "constraints": {"min_slots": 2, "max_slots": 10,
                         "target_consultations": 1,
                         "eligible_for_on_call": true}}
    """
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    staff = []
    for entry in raw:
        staff_id = int(entry["id"])
        constraints = None
        if entry.get("constraints") is not None:
            constraints = StaffConstraints(staff_id=staff_id, **entry["constraints"])
        start = entry.get("start_date")
        staff.append(
            StaffMember(
                id=staff_id,
                first_name=entry.get("first_name", f"Staff{staff_id}"),
                last_names=entry.get("last_names", ""),
                email=entry.get("email", ""),
                start_date=date.fromisoformat(start) if start else None,
                availability_status=AvailabilityStatus(entry.get("status", "available")),
                constraints=constraints,
                skills=frozenset(entry.get("skills", [])),
            )
        )
    return staff


def load_config(path: Optional[str]) -> tuple[SolverConfig, ConstraintWeights, DefaultGenerationPolicy]:
    """Load solver settings, weights and generation policy from a JSON file.

    Expected sections (all optional): ``solver``, ``weights``, ``generation``.
    """
    data = {}
    if path:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)

    generation = dict(data.get("generation", {}))
    if "skill_by_kind" in generation:
        generation["skill_by_kind"] = {
            SlotKind(kind): skill for kind, skill in generation["skill_by_kind"].items()
        }
    return (
        SolverConfig.from_dict(data.get("solver")),
        ConstraintWeights.from_dict(data.get("weights")),
        DefaultGenerationPolicy(**generation),
    )


def build_lifecycle(
    repos: RepositoryBundle,
    config: SolverConfig,
    weights: ConstraintWeights,
    policy: DefaultGenerationPolicy,
) -> ScheduleLifecycle:
    builder = ProblemBuilder(
        repos.calendars,
        repos.schedules,
        repos.staff,
        repos.slots,
        generation_policy=policy,
    )
    return ScheduleLifecycle(builder, repos.schedules, config=config, weights=weights)


def print_schedule(schedule: Schedule) -> None:
    """Print score and per-day coverage of a schedule."""
    print(f"\nSchedule {schedule.key}: {schedule.status.value}")
    print(f"  Score: {schedule.score}")

    print("\n  Coverage per day:")
    for summary in schedule.get_day_summary():
        day_date = schedule.key.date_of(summary.day)
        print(f"    {day_date} -> {summary.assigned}/{summary.total} slots assigned")

    result = ScheduleValidator().validate(schedule)
    if result.is_valid:
        print("\n  Validation: PASSED")
    else:
        print(f"\n  Validation: FAILED ({len(result.errors)} errors)")
        for error in result.errors[:5]:
            print(f"    - {error}")
        if len(result.errors) > 5:
            print(f"    ... and {len(result.errors) - 5} more errors")
    for warning in result.warnings[:5]:
        print(f"    ! {warning}")


def write_outputs(
    schedule: Schedule,
    weights: ConstraintWeights,
    output_path: Optional[str],
    report_path: Optional[str],
) -> None:
    if output_path:
        print(f"\nGenerating PDF: {output_path}")
        PDFGenerator().generate(schedule, output_path)
        print("  PDF created successfully!")
    if report_path:
        ReportGenerator(weights).generate(schedule, report_path)
        print(f"  Report written to {report_path}")


def run_demo(
    key: PeriodKey,
    staff_count: int = 22,
    output_path: Optional[str] = None,
    report_path: Optional[str] = None,
    time_limit: float = 10.0,
    solver_type: str = "local_search",
) -> Schedule:
    """Run a demo roster generation with sample staff."""
    print(f"Generating demo roster for {key} with {staff_count} staff members...")

    repos = create_in_memory_repositories()
    repos.calendars.save(CalendarGenerator().generate(key))
    repos.staff.save_all(create_sample_staff(key, staff_count))

    config = SolverConfig(time_limit_seconds=time_limit, solver_type=SolverType(solver_type))
    weights = ConstraintWeights()
    lifecycle = build_lifecycle(repos, config, weights, DefaultGenerationPolicy())
    try:
        schedule = lifecycle.generate(key)
    finally:
        lifecycle.shutdown()

    print_schedule(schedule)
    write_outputs(schedule, weights, output_path, report_path)
    return schedule


def run_generate(args: argparse.Namespace) -> Schedule:
    """Generate a roster from a staff file."""
    key = PeriodKey.parse(args.period)
    config, weights, policy = load_config(args.config)
    if args.time_limit is not None:
        config = replace(config, time_limit_seconds=args.time_limit)
    if args.solver is not None:
        config = replace(config, solver_type=SolverType(args.solver))

    repos = create_in_memory_repositories()
    repos.calendars.save(CalendarGenerator().generate(key, holidays=args.holidays))
    repos.staff.save_all(load_staff(args.staff))

    lifecycle = build_lifecycle(repos, config, weights, policy)
    try:
        schedule = lifecycle.generate(key)
    finally:
        lifecycle.shutdown()

    print_schedule(schedule)
    write_outputs(schedule, weights, args.output, args.report)
    return schedule


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Duty Roster - Monthly Medical Staff Scheduling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                                Demo roster for this month
  %(prog)s demo --period 8-2025 --count 30     Demo with 30 staff members
  %(prog)s demo --output roster.pdf            Generate PDF output

  %(prog)s generate --period 10-2024 --staff staff.json
  %(prog)s generate --period 10-2024 --staff staff.json --holidays 12 --solver hybrid
        """,
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", type=str, help="Also write the log to this file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    solver_choices = [t.value for t in SolverType]

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo roster generation")
    demo_parser.add_argument(
        "--period", "-p",
        type=str,
        default=None,
        help="Month as M-YYYY (default: current month)",
    )
    demo_parser.add_argument(
        "--count", "-c",
        type=int,
        default=22,
        help="Number of staff members to generate (default: 22)",
    )
    demo_parser.add_argument("--output", "-o", type=str, help="Output PDF file path")
    demo_parser.add_argument("--report", "-r", type=str, help="Output text report path")
    demo_parser.add_argument(
        "--time-limit", "-t",
        type=float,
        default=10.0,
        help="Solver time limit in seconds (default: 10)",
    )
    demo_parser.add_argument(
        "--solver", "-s",
        type=str,
        default="local_search",
        choices=solver_choices,
        help="Solver type (default: local_search)",
    )

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate a roster from a staff file")
    generate_parser.add_argument("--period", "-p", type=str, required=True, help="Month as M-YYYY")
    generate_parser.add_argument("--staff", type=str, required=True, help="Staff JSON file")
    generate_parser.add_argument("--config", type=str, help="Settings JSON file")
    generate_parser.add_argument(
        "--holidays",
        type=int,
        nargs="*",
        default=[],
        help="Day numbers that are holidays",
    )
    generate_parser.add_argument("--output", "-o", type=str, help="Output PDF file path")
    generate_parser.add_argument("--report", "-r", type=str, help="Output text report path")
    generate_parser.add_argument(
        "--time-limit", "-t",
        type=float,
        default=None,
        help="Solver time limit in seconds (overrides the config file)",
    )
    generate_parser.add_argument(
        "--solver", "-s",
        type=str,
        default=None,
        choices=solver_choices,
        help="Solver type (overrides the config file)",
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        if args.command == "demo":
            key = PeriodKey.parse(args.period) if args.period else PeriodKey.from_date(date.today())
            run_demo(key, args.count, args.output, args.report, args.time_limit, args.solver)
            return 0
        elif args.command == "generate":
            run_generate(args)
            return 0
        else:
            parser.print_help()
            return 1
    except (DutyRosterError, ValueError) as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
