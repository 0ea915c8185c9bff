"""Shared fixtures for the roster tests."""

import pytest

from dutyroster.domain.calendar import CalendarGenerator
from dutyroster.domain.models import PeriodKey, StaffConstraints, StaffMember
from dutyroster.persistence.repositories import create_in_memory_repositories
from dutyroster.scheduling.local_search_solver import SolverConfig
from dutyroster.scheduling.problem_builder import ProblemBuilder


def build_staff(
    count: int,
    min_slots: int = 2,
    max_slots: int = 10,
    target_consultations: int = 0,
    on_call_every: int = 2,
) -> list[StaffMember]:
    """Create staff with ids 1..count; every ``on_call_every``-th is on call."""
    return [
        StaffMember(
            id=i,
            first_name=f"Doc{i}",
            last_names=f"Test{i}",
            email=f"doc{i}@example.com",
            constraints=StaffConstraints(
                staff_id=i,
                min_slots=min_slots,
                max_slots=max_slots,
                target_consultations=target_consultations,
                eligible_for_on_call=(i % on_call_every == 0),
            ),
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def february():
    """February 2026: 20 working days and no holidays."""
    return PeriodKey(2, 2026)


@pytest.fixture
def staff_factory():
    return build_staff


@pytest.fixture
def repos():
    return create_in_memory_repositories()


@pytest.fixture
def seeded_repos(repos, february):
    """Repositories holding the February calendar and ten staff members."""
    repos.calendars.save(CalendarGenerator().generate(february))
    repos.staff.save_all(build_staff(10))
    return repos


@pytest.fixture
def builder(seeded_repos):
    return ProblemBuilder(
        seeded_repos.calendars,
        seeded_repos.schedules,
        seeded_repos.staff,
        seeded_repos.slots,
    )


@pytest.fixture
def fast_config():
    """Small deterministic search budget."""
    return SolverConfig(time_limit_seconds=20.0, step_limit=1500, random_seed=7)
