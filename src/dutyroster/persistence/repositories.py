"""Repository contracts and in-memory implementations.

The generation core only needs simple load/save collaborators. The abstract
classes below define those contracts; the in-memory implementations share a
single ``InMemoryDatabase``. A purge-and-rebuild runs inside one transaction
scoped to its period: when anything inside it fails, the rows of that period
are put back and the rows of other periods are left as they are.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from dutyroster.domain.models import (
    Assignment,
    CalendarPeriod,
    DayDescriptor,
    DutySlot,
    PeriodKey,
    Schedule,
    StaffMember,
)

logger = logging.getLogger(__name__)


class CalendarRepository(ABC):
    """Loads calendar periods by their (month, year) key."""

    @abstractmethod
    def find_by_period(self, key: PeriodKey) -> Optional[CalendarPeriod]:
        pass

    @abstractmethod
    def save(self, period: CalendarPeriod) -> CalendarPeriod:
        pass


class ScheduleRepository(ABC):
    """Loads, stores and purges schedules and their child rows."""

    @abstractmethod
    def find_by_period(self, key: PeriodKey) -> Optional[Schedule]:
        pass

    @abstractmethod
    def save(self, schedule: Schedule) -> Schedule:
        pass

    @abstractmethod
    def save_and_flush(self, schedule: Schedule) -> Schedule:
        pass

    @abstractmethod
    def delete_assignments(self, key: PeriodKey) -> int:
        """Delete assignment rows of a period; returns the number removed."""
        pass

    @abstractmethod
    def delete_days(self, key: PeriodKey) -> int:
        """Delete schedule day rows of a period; returns the number removed."""
        pass

    @abstractmethod
    def delete_schedule(self, key: PeriodKey) -> int:
        """Delete the schedule row of a period; returns the number removed."""
        pass

    @abstractmethod
    def transaction(self, key: PeriodKey):
        """Context manager; changes to the period made inside are rolled back on error."""
        pass


class StaffRepository(ABC):
    """Loads staff members."""

    @abstractmethod
    def find_all_available(self) -> list[StaffMember]:
        pass


class SlotRepository(ABC):
    """Stores generated duty slots."""

    @abstractmethod
    def save_all(self, slots: Iterable[DutySlot]) -> list[DutySlot]:
        pass

    @abstractmethod
    def find_by_period(self, key: PeriodKey) -> list[DutySlot]:
        pass

    @abstractmethod
    def delete_by_period(self, key: PeriodKey) -> int:
        pass


@dataclass
class _Tables:
    calendars: dict[PeriodKey, CalendarPeriod] = field(default_factory=dict)
    schedules: dict[PeriodKey, Schedule] = field(default_factory=dict)
    assignments: dict[PeriodKey, list[Assignment]] = field(default_factory=dict)
    days: dict[PeriodKey, list[DayDescriptor]] = field(default_factory=dict)
    slots: dict[PeriodKey, list[DutySlot]] = field(default_factory=dict)
    staff: dict[int, StaffMember] = field(default_factory=dict)


class InMemoryDatabase:
    """Shared storage for the in-memory repositories.

    Stored objects are kept by reference, the way an ORM session keeps
    managed entities. ``transaction(key)`` snapshots the rows of one period
    on entry to the outermost transaction for that period and restores only
    those rows if the block raises. Transactions on the same period are
    serialized; transactions on different periods run independently.
    """

    PERIOD_TABLES = ("calendars", "schedules", "assignments", "days", "slots")

    def __init__(self):
        self.tables = _Tables()
        self.flush_count = 0
        self._guard = threading.Lock()
        self._locks: dict[PeriodKey, threading.RLock] = {}
        self._depths: dict[PeriodKey, int] = {}

    def _period_lock(self, key: PeriodKey) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(key, threading.RLock())

    def _snapshot(self, key: PeriodKey) -> dict:
        rows = {}
        for name in self.PERIOD_TABLES:
            table = getattr(self.tables, name)
            if key in table:
                rows[name] = copy.deepcopy(table[key])
        return rows

    def _restore(self, key: PeriodKey, rows: dict) -> None:
        for name in self.PERIOD_TABLES:
            table = getattr(self.tables, name)
            if name in rows:
                table[key] = rows[name]
            else:
                table.pop(key, None)

    @contextmanager
    def transaction(self, key: PeriodKey) -> Iterator["InMemoryDatabase"]:
        with self._period_lock(key):
            outermost = self._depths.get(key, 0) == 0
            snapshot = self._snapshot(key) if outermost else None
            self._depths[key] = self._depths.get(key, 0) + 1
            try:
                yield self
            except BaseException:
                if outermost:
                    logger.warning("Rolling back in-memory transaction for %s", key)
                    self._restore(key, snapshot)
                raise
            finally:
                self._depths[key] -= 1

    def flush(self) -> None:
        self.flush_count += 1


class InMemoryCalendarRepository(CalendarRepository):
    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def find_by_period(self, key: PeriodKey) -> Optional[CalendarPeriod]:
        return self.database.tables.calendars.get(key)

    def save(self, period: CalendarPeriod) -> CalendarPeriod:
        self.database.tables.calendars[period.key] = period
        return period


class InMemoryScheduleRepository(ScheduleRepository):
    def __init__(self, database: InMemoryDatabase):
        self.database = database
        self.save_count = 0

    def find_by_period(self, key: PeriodKey) -> Optional[Schedule]:
        return self.database.tables.schedules.get(key)

    def find_all(self) -> list[Schedule]:
        return list(self.database.tables.schedules.values())

    def save(self, schedule: Schedule) -> Schedule:
        tables = self.database.tables
        tables.schedules[schedule.key] = schedule
        tables.assignments[schedule.key] = schedule.assignments
        tables.days[schedule.key] = schedule.days
        self.save_count += 1
        return schedule

    def save_and_flush(self, schedule: Schedule) -> Schedule:
        saved = self.save(schedule)
        self.database.flush()
        return saved

    def delete_assignments(self, key: PeriodKey) -> int:
        return len(self.database.tables.assignments.pop(key, []))

    def delete_days(self, key: PeriodKey) -> int:
        return len(self.database.tables.days.pop(key, []))

    def delete_schedule(self, key: PeriodKey) -> int:
        return 1 if self.database.tables.schedules.pop(key, None) is not None else 0

    def count_assignments(self, key: PeriodKey) -> int:
        return len(self.database.tables.assignments.get(key, []))

    def transaction(self, key: PeriodKey):
        return self.database.transaction(key)


class InMemoryStaffRepository(StaffRepository):
    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def save(self, member: StaffMember) -> StaffMember:
        self.database.tables.staff[member.id] = member
        return member

    def save_all(self, members: Iterable[StaffMember]) -> list[StaffMember]:
        return [self.save(member) for member in members]

    def find_all(self) -> list[StaffMember]:
        return sorted(self.database.tables.staff.values(), key=lambda m: m.id)

    def find_all_available(self) -> list[StaffMember]:
        return [member for member in self.find_all() if member.is_available]


class InMemorySlotRepository(SlotRepository):
    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def save_all(self, slots: Iterable[DutySlot]) -> list[DutySlot]:
        saved = list(slots)
        for slot in saved:
            self.database.tables.slots.setdefault(slot.period, []).append(slot)
        return saved

    def find_by_period(self, key: PeriodKey) -> list[DutySlot]:
        return list(self.database.tables.slots.get(key, []))

    def delete_by_period(self, key: PeriodKey) -> int:
        return len(self.database.tables.slots.pop(key, []))


@dataclass
class RepositoryBundle:
    """The four repositories wired to one in-memory database."""

    database: InMemoryDatabase
    calendars: InMemoryCalendarRepository
    schedules: InMemoryScheduleRepository
    staff: InMemoryStaffRepository
    slots: InMemorySlotRepository


def create_in_memory_repositories() -> RepositoryBundle:
    """Create a fresh in-memory database with all repositories attached."""
    database = InMemoryDatabase()
    return RepositoryBundle(
        database=database,
        calendars=InMemoryCalendarRepository(database),
        schedules=InMemoryScheduleRepository(database),
        staff=InMemoryStaffRepository(database),
        slots=InMemorySlotRepository(database),
    )
