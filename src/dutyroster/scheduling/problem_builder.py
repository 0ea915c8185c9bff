"""Problem builder assembling a month's scheduling instance.

The builder purges whatever a previous generation left for the period and
rebuilds the whole instance: planned day counts, duty slots, one unassigned
assignment per slot, and a snapshot of the eligible staff pool.
"""

import logging
from dataclasses import replace
from itertools import count
from typing import Optional, Sequence

from dutyroster.domain.demand import CapacityPlanner, DemandDistributor, eligible_staff
from dutyroster.domain.models import (
    Assignment,
    CalendarPeriod,
    DayDescriptor,
    PeriodKey,
    Schedule,
    ScheduleStatus,
    StaffMember,
)
from dutyroster.domain.policies import (
    DefaultGenerationPolicy,
    DefaultRegenerationPolicy,
    GenerationPolicy,
    RegenerationPolicy,
)
from dutyroster.exceptions import CalendarNotFound, ScheduleAlreadyExists
from dutyroster.persistence.repositories import (
    CalendarRepository,
    ScheduleRepository,
    SlotRepository,
    StaffRepository,
)
from dutyroster.scheduling.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)


class ProblemBuilder:
    """Builds and persists the initial problem instance for a period.

    Build steps:
    1. Load the calendar (CalendarNotFound if absent)
    2. Check the regeneration policy against any existing schedule
    3. Purge the previous instance (assignments, slots, days, schedule)
    4. Plan regular and consultation capacity and spread it over working days
    5. Generate slots and one unassigned assignment per slot
    6. Snapshot the eligible staff pool with elastic max slots
    7. Persist the schedule in BEING_GENERATED status

    Steps 3 to 7 run in one repository transaction.
    """

    def __init__(
        self,
        calendar_repository: CalendarRepository,
        schedule_repository: ScheduleRepository,
        staff_repository: StaffRepository,
        slot_repository: SlotRepository,
        generation_policy: Optional[GenerationPolicy] = None,
        regeneration_policy: Optional[RegenerationPolicy] = None,
    ):
        self.calendar_repository = calendar_repository
        self.schedule_repository = schedule_repository
        self.staff_repository = staff_repository
        self.slot_repository = slot_repository
        self.generation_policy = generation_policy or DefaultGenerationPolicy()
        self.regeneration_policy = regeneration_policy or DefaultRegenerationPolicy()
        self.distributor = DemandDistributor()
        self.capacity_planner = CapacityPlanner()
        self.slot_generator = SlotGenerator(self.generation_policy)

    def build(
        self,
        key: PeriodKey,
        regeneration_policy: Optional[RegenerationPolicy] = None,
    ) -> Schedule:
        """Build the problem instance for a period.

        Args:
            key: Period to build.
            regeneration_policy: Overrides the builder's policy for this call.

        Returns:
            The persisted schedule in BEING_GENERATED status.

        Raises:
            CalendarNotFound: No calendar exists for the period.
            ScheduleAlreadyExists: A schedule exists and may not be rebuilt.
        """
        calendar = self.calendar_repository.find_by_period(key)
        if calendar is None:
            logger.error("Trying to generate a schedule for a non existing calendar: %s", key)
            raise CalendarNotFound(key.month, key.year)

        policy = regeneration_policy or self.regeneration_policy
        existing = self.schedule_repository.find_by_period(key)
        if existing is not None and not policy.can_regenerate(existing.status):
            logger.warning(
                "Schedule %s already exists with status %s", key, existing.status.value
            )
            raise ScheduleAlreadyExists(key.month, key.year, existing.status)

        logger.info("Building problem instance for %s", key)
        with self.schedule_repository.transaction(key):
            self._purge(key)

            staff_pool = eligible_staff(self.staff_repository.find_all_available())
            days = self.plan_days(calendar, staff_pool)
            slots = self.slot_repository.save_all(self.slot_generator.generate(days))

            assignment_ids = count(1)
            assignments = [
                Assignment(id=next(assignment_ids), slot=slot, period=key)
                for slot in slots
            ]

            schedule = Schedule(
                key=key,
                assignments=assignments,
                staff=self.snapshot_staff(staff_pool, len(slots)),
                slots=slots,
                days=days,
            )
            schedule.transition_to(ScheduleStatus.BEING_GENERATED)
            self.schedule_repository.save_and_flush(schedule)

        logger.info(
            "Built %s: %d slots over %d working days, %d eligible staff",
            key,
            len(schedule.slots),
            sum(1 for d in days if d.is_working_day),
            len(schedule.staff),
        )
        return schedule

    def plan_days(
        self,
        calendar: CalendarPeriod,
        staff_pool: Sequence[StaffMember],
    ) -> list[DayDescriptor]:
        """Copy the calendar days with planned regular and consultation counts.

        Non-working days keep zero planned counts. The calendar itself is
        not modified.
        """
        working_days = calendar.working_days()
        working_numbers = [d.day for d in working_days]

        regular_total = self.capacity_planner.plan_regular_capacity(
            working_days, self.generation_policy.regular_baseline_per_day(), staff_pool
        )
        consultation_total = self.capacity_planner.plan_consultation_capacity(
            working_days, self.generation_policy.consultation_baseline_per_day(), staff_pool
        )
        regular = self.distributor.distribute(working_numbers, regular_total)
        consultation = self.distributor.distribute(working_numbers, consultation_total)

        if working_numbers:
            logger.debug(
                "Planned %d regular and %d consultation slots for %s",
                regular_total,
                consultation_total,
                calendar.key,
            )
        elif regular_total or consultation_total:
            logger.warning("No working days in %s; planned demand is dropped", calendar.key)

        return [
            replace(
                day,
                planned_regular_count=regular.get(day.day, 0),
                planned_consultation_count=consultation.get(day.day, 0),
            )
            for day in sorted(calendar.days, key=lambda d: d.day)
        ]

    def snapshot_staff(
        self,
        staff_pool: Sequence[StaffMember],
        total_slots: int,
    ) -> list[StaffMember]:
        """Copy the staff pool, raising max slots where capacity falls short.

        Members with ``max_slots > 0`` are capped. When their combined cap is
        below the number of slots, the deficit is spread over them in id
        order. No cap ends up below the member's ``min_slots``. Stored staff
        members are never modified.

        Args:
            staff_pool: Eligible staff members.
            total_slots: Number of slots in the month.

        Returns:
            Copies of the staff members with adjusted constraints.
        """
        capped = [m for m in staff_pool if m.constraints.max_slots > 0]
        deficit = total_slots - sum(m.constraints.max_slots for m in capped)
        extra: dict[int, int] = {}
        if deficit > 0 and capped:
            extra = self.distributor.distribute([m.id for m in capped], deficit)
            logger.info(
                "Raising max slots of %d staff members by %d in total", len(capped), deficit
            )

        snapshot = []
        for member in staff_pool:
            constraints = member.constraints
            max_slots = constraints.max_slots
            if max_slots > 0:
                max_slots = max(max_slots + extra.get(member.id, 0), constraints.min_slots)
            snapshot.append(
                replace(member, constraints=replace(constraints, max_slots=max_slots))
            )
        return snapshot

    def _purge(self, key: PeriodKey) -> None:
        """Delete the previous instance of a period, children before parents."""
        assignments = self.schedule_repository.delete_assignments(key)
        slots = self.slot_repository.delete_by_period(key)
        days = self.schedule_repository.delete_days(key)
        schedules = self.schedule_repository.delete_schedule(key)
        if assignments or slots or days or schedules:
            logger.info(
                "Purged %s: %d assignments, %d slots, %d days, %d schedule",
                key,
                assignments,
                slots,
                days,
                schedules,
            )
