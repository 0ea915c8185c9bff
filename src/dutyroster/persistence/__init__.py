"""Repository contracts and in-memory storage."""

from dutyroster.persistence.repositories import (
    CalendarRepository,
    InMemoryCalendarRepository,
    InMemoryDatabase,
    InMemoryScheduleRepository,
    InMemorySlotRepository,
    InMemoryStaffRepository,
    RepositoryBundle,
    ScheduleRepository,
    SlotRepository,
    StaffRepository,
    create_in_memory_repositories,
)

__all__ = [
    "CalendarRepository",
    "ScheduleRepository",
    "SlotRepository",
    "StaffRepository",
    "InMemoryDatabase",
    "InMemoryCalendarRepository",
    "InMemoryScheduleRepository",
    "InMemorySlotRepository",
    "InMemoryStaffRepository",
    "RepositoryBundle",
    "create_in_memory_repositories",
]
