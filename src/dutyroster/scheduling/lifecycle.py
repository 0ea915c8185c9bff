"""Schedule lifecycle coordinating build, solve and persistence.

``generate`` runs the whole unit of work on the calling thread and re-raises
failures; ``request_solve`` dispatches it to a worker pool and contains
failures, as expected of a trigger fired by an external workflow engine.
Either way a schedule never stays BEING_GENERATED after its solve fails.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Union

from dutyroster.domain.models import PeriodKey, Schedule, ScheduleStatus
from dutyroster.domain.policies import RegenerationPolicy, StrictRegenerationPolicy
from dutyroster.exceptions import (
    ScheduleNotFound,
    SolverExecutionFailure,
    SolverInterrupted,
)
from dutyroster.persistence.repositories import ScheduleRepository
from dutyroster.scheduling.constraints import ConstraintModel, ConstraintWeights
from dutyroster.scheduling.cpsat_solver import create_solver
from dutyroster.scheduling.local_search_solver import SolverConfig, SolverResult
from dutyroster.scheduling.problem_builder import ProblemBuilder

logger = logging.getLogger(__name__)

PeriodLike = Union[PeriodKey, str]


def as_period_key(value: PeriodLike) -> PeriodKey:
    """Accept a PeriodKey or its ``"M-YYYY"`` text form."""
    if isinstance(value, PeriodKey):
        return value
    return PeriodKey.parse(value)


class ScheduleLifecycle:
    """Finite-state wrapper around build, solve and persist.

    States: NOT_CREATED -> BEING_GENERATED -> PENDING_CONFIRMATION ->
    CONFIRMED, with GENERATION_ERROR reachable from BEING_GENERATED.

    At most one solve per period runs through ``request_solve`` at a time;
    callers using ``generate`` directly must not run two solves for the same
    period concurrently.

    Example:
        >>> lifecycle = ScheduleLifecycle(builder, repos.schedules)
        >>> schedule = lifecycle.generate(PeriodKey(10, 2024))
        >>> schedule.status
        <ScheduleStatus.PENDING_CONFIRMATION: 'pending_confirmation'>
    """

    def __init__(
        self,
        builder: ProblemBuilder,
        schedule_repository: ScheduleRepository,
        solver=None,
        config: Optional[SolverConfig] = None,
        weights: Optional[ConstraintWeights] = None,
        request_policy: Optional[RegenerationPolicy] = None,
        max_workers: int = 2,
    ):
        """Initialize the lifecycle.

        Args:
            builder: Builds the problem instance of a period.
            schedule_repository: Stores schedules.
            solver: Object with ``solve(schedule, stop_event)``; defaults to
                the solver selected by ``config.solver_type``.
            config: Solver configuration.
            weights: Constraint weights for scoring.
            request_policy: Which existing schedules ``request_solve`` may rebuild.
            max_workers: Size of the background worker pool.
        """
        self.builder = builder
        self.schedule_repository = schedule_repository
        self.config = config or SolverConfig()
        self.weights = weights or ConstraintWeights()
        self.solver = solver or create_solver(self.config, self.weights)
        self.request_policy = request_policy or StrictRegenerationPolicy()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="dutyroster-solve"
        )
        self._lock = threading.Lock()
        self._stop_events: dict[PeriodKey, threading.Event] = {}
        self._futures: dict[PeriodKey, Future] = {}

    def generate(self, period: PeriodLike) -> Schedule:
        """Build, solve and persist a schedule on the calling thread.

        Args:
            period: PeriodKey or ``"M-YYYY"`` text.

        Returns:
            The schedule in PENDING_CONFIRMATION status.

        Raises:
            InvalidPeriodKey: Malformed period, before any side effect.
            CalendarNotFound: No calendar for the period.
            ScheduleAlreadyExists: The existing schedule may not be rebuilt.
            SolverInterrupted: The solve was cancelled.
            SolverExecutionFailure: The solve failed; the schedule is
                persisted in GENERATION_ERROR.
        """
        key = as_period_key(period)
        schedule = self.builder.build(key)
        return self._solve_and_persist(schedule)

    def request_solve(self, period: PeriodLike) -> Optional[Future]:
        """Trigger generation on a background worker.

        The trigger is idempotent: while a solve for the period is in flight
        its future is returned again, and a schedule that exists in a status
        other than GENERATION_ERROR is left alone. Failures inside the worker
        are logged and never raised; the future then resolves to None.

        Args:
            period: PeriodKey or ``"M-YYYY"`` text.

        Returns:
            Future resolving to the schedule (or None on failure), or None
            if nothing was dispatched.

        Raises:
            InvalidPeriodKey: Malformed period.
        """
        key = as_period_key(period)
        with self._lock:
            in_flight = self._futures.get(key)
            if in_flight is not None and not in_flight.done():
                logger.info("Solve for %s already in progress", key)
                return in_flight

            existing = self.schedule_repository.find_by_period(key)
            if existing is not None and not self.request_policy.can_regenerate(existing.status):
                logger.info(
                    "Schedule %s exists with status %s; nothing to do",
                    key,
                    existing.status.value,
                )
                return None

            future = self._executor.submit(self._generate_contained, key)
            self._futures[key] = future
        logger.info("Solve for %s dispatched", key)
        return future

    def cancel(self, period: PeriodLike) -> bool:
        """Signal the in-flight solve of a period to stop.

        Returns:
            True if a running solve was signalled.
        """
        key = as_period_key(period)
        with self._lock:
            stop_event = self._stop_events.get(key)
        if stop_event is None:
            return False
        logger.info("Cancelling solve for %s", key)
        stop_event.set()
        return True

    def confirm(self, period: PeriodLike) -> Schedule:
        """Move a PENDING_CONFIRMATION schedule to CONFIRMED.

        Raises:
            ScheduleNotFound: No schedule for the period.
            InvalidStatusTransition: The schedule is not pending confirmation.
        """
        key = as_period_key(period)
        schedule = self.schedule_repository.find_by_period(key)
        if schedule is None:
            raise ScheduleNotFound(key.month, key.year)
        schedule.transition_to(ScheduleStatus.CONFIRMED)
        self.schedule_repository.save_and_flush(schedule)
        logger.info("Schedule %s confirmed", key)
        return schedule

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool; running solves are cancelled when not waiting."""
        if not wait:
            with self._lock:
                for stop_event in self._stop_events.values():
                    stop_event.set()
        self._executor.shutdown(wait=wait)

    def _generate_contained(self, key: PeriodKey) -> Optional[Schedule]:
        try:
            return self.generate(key)
        except Exception:
            logger.exception("Background generation of %s failed", key)
            return None

    def _solve_and_persist(self, schedule: Schedule) -> Schedule:
        key = schedule.key
        stop_event = threading.Event()
        with self._lock:
            self._stop_events[key] = stop_event

        try:
            result = self.solver.solve(schedule, stop_event=stop_event)
            self._persist_solution(schedule, result)
        except (SolverInterrupted, SolverExecutionFailure):
            logger.error("Generation of %s failed; marking it as errored", key)
            self._mark_failed(schedule)
            raise
        except Exception as exc:
            logger.error("Solver raised while generating %s: %s", key, exc)
            self._mark_failed(schedule)
            raise SolverExecutionFailure(f"Solving {key} failed: {exc}") from exc
        finally:
            with self._lock:
                self._stop_events.pop(key, None)

        self._log_outcome(schedule)
        return schedule

    def _persist_solution(self, schedule: Schedule, result: SolverResult) -> None:
        """Store assignments, score and status together.

        On failure the in-memory schedule is put back as it was, so it can
        still be marked as errored.
        """
        previous_values = {a.id: a.staff_id for a in schedule.assignments}
        previous_score = schedule.score
        previous_status = schedule.status
        try:
            with self.schedule_repository.transaction(schedule.key):
                schedule.apply_solution(result.solution)
                schedule.score = result.score
                schedule.transition_to(ScheduleStatus.PENDING_CONFIRMATION)
                self.schedule_repository.save(schedule)
        except Exception:
            for assignment in schedule.assignments:
                assignment.staff_id = previous_values[assignment.id]
            schedule.score = previous_score
            schedule.status = previous_status
            raise

    def _mark_failed(self, schedule: Schedule) -> None:
        schedule.transition_to(ScheduleStatus.GENERATION_ERROR)
        self.schedule_repository.save_and_flush(schedule)

    def _log_outcome(self, schedule: Schedule) -> None:
        logger.info(
            "Schedule %s saved as %s with score %s",
            schedule.key,
            schedule.status.value,
            schedule.score,
        )

        explanation = ConstraintModel(schedule.staff, self.weights).explain(schedule.assignments)
        for rule, score in explanation.items():
            if score.hard or score.soft:
                logger.debug("  %s: %s", rule, score)

        for summary in schedule.get_day_summary():
            if not summary.is_fully_covered:
                missing = [
                    f"{kind.value} {total - assigned}"
                    for kind, (assigned, total) in summary.by_kind.items()
                    if assigned < total
                ]
                logger.info(
                    "Unassigned on day %d: %s (%d/%d covered)",
                    summary.day,
                    ", ".join(missing),
                    summary.assigned,
                    summary.total,
                )
