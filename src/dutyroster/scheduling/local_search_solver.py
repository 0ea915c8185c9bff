"""Local search solver for duty assignment.

The solver works on an explicit list of decision variables (one per
non-pinned assignment) and improves a complete solution with two moves:
- change: give one assignment a different staff value (or none)
- swap: exchange the staff values of two assignments

Scores are updated incrementally. Moves that do not worsen the score are
always accepted; under simulated annealing a bounded worsening may be
accepted with a probability that cools over time. The best solution found is
kept in a separately locked holder and is what the solver returns.
"""

import logging
import math
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional

from dutyroster.domain.models import HardSoftScore, Schedule
from dutyroster.exceptions import SolverExecutionFailure, SolverInterrupted
from dutyroster.scheduling.constraints import ConstraintWeights, IncrementalScoreCalculator
from dutyroster.scheduling.variables import DecisionVariable, build_variables

logger = logging.getLogger(__name__)


class AcceptanceType(Enum):
    """How the search decides whether to keep a move."""

    HILL_CLIMBING = "hill_climbing"  # Never accept a worse score
    SIMULATED_ANNEALING = "simulated_annealing"  # Accept bounded worsening with cooling probability


class ConstructionType(Enum):
    """How unassigned variables are filled before local search."""

    FIRST_FIT = "first_fit"  # Most constrained first, best value each
    NONE = "none"  # Start from the current values


class SolverType(Enum):
    """Type of solver to use."""

    LOCAL_SEARCH = "local_search"  # Construction heuristic + local search
    CPSAT = "cpsat"  # OR-Tools CP-SAT only
    HYBRID = "hybrid"  # CP-SAT warm start, then local search


class TerminationReason(Enum):
    """Why a search stopped."""

    TIME_LIMIT = "time_limit"
    STEP_LIMIT = "step_limit"
    UNIMPROVED_STEP_LIMIT = "unimproved_step_limit"
    NOTHING_TO_SOLVE = "nothing_to_solve"
    CPSAT_FINISHED = "cpsat_finished"


_ENUM_FIELDS = {
    "acceptance": AcceptanceType,
    "construction": ConstructionType,
    "solver_type": SolverType,
}


@dataclass
class SolverConfig:
    """Configuration of the search.

    Attributes:
        time_limit_seconds: Wall-clock budget of the whole solve.
        step_limit: Maximum local search steps (None = unbounded).
        unimproved_step_limit: Stop after this many steps without a new best.
        acceptance: Move acceptance policy.
        starting_temperature: Initial annealing temperature (scalar score units).
        cooling_rate: Temperature multiplier applied after each step.
        max_worsening: Largest scalar worsening annealing may accept.
        hard_weight: Factor collapsing hard penalties into the scalar score.
        change_move_weight: Relative frequency of change moves.
        swap_move_weight: Relative frequency of swap moves.
        random_seed: Seed for reproducible searches (None = random).
        num_workers: Independent searches sharing the best solution.
        construction: Construction heuristic before local search.
        solver_type: Which solver the lifecycle uses.
        require_feasible: Fail when the best solution breaks a hard rule.
    """

    time_limit_seconds: float = 30.0
    step_limit: Optional[int] = 20_000
    unimproved_step_limit: Optional[int] = None
    acceptance: AcceptanceType = AcceptanceType.SIMULATED_ANNEALING
    starting_temperature: float = 50.0
    cooling_rate: float = 0.999
    max_worsening: int = 200
    hard_weight: int = 1_000_000
    change_move_weight: int = 3
    swap_move_weight: int = 1
    random_seed: Optional[int] = 0
    num_workers: int = 1
    construction: ConstructionType = ConstructionType.FIRST_FIT
    solver_type: SolverType = SolverType.LOCAL_SEARCH
    require_feasible: bool = False

    def __post_init__(self) -> None:
        if self.time_limit_seconds <= 0:
            raise ValueError("time_limit_seconds must be positive")
        if self.step_limit is not None and self.step_limit < 0:
            raise ValueError("step_limit must be non-negative")
        if not 0 < self.cooling_rate <= 1:
            raise ValueError("cooling_rate must be within (0, 1]")
        if self.change_move_weight < 0 or self.swap_move_weight < 0:
            raise ValueError("move weights must be non-negative")
        if self.change_move_weight + self.swap_move_weight == 0:
            raise ValueError("at least one move weight must be positive")
        if self.num_workers < 1:
            raise ValueError("num_workers must be at least 1")

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SolverConfig":
        """Create a config from a JSON-like dict.

        Enum fields accept their string values, e.g.
        ``{"acceptance": "hill_climbing", "solver_type": "hybrid"}``.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown solver settings: {', '.join(sorted(unknown))}")
        for name, enum_type in _ENUM_FIELDS.items():
            if name in data and not isinstance(data[name], enum_type):
                data[name] = enum_type(data[name])
        return cls(**data)


@dataclass
class SolverResult:
    """Outcome of a solve.

    Attributes:
        solution: Assignment ID to staff ID (or None) for every searched assignment.
        score: Score of the solution, pinned assignments included.
        steps: Local search steps performed (summed over workers).
        elapsed_seconds: Wall-clock time of the solve.
        termination_reason: Why the search stopped.
        improvements: (step, score) each time the best score improved.
        solver_type: Solver that produced the result.
    """

    solution: dict[int, Optional[int]]
    score: HardSoftScore
    steps: int = 0
    elapsed_seconds: float = 0.0
    termination_reason: TerminationReason = TerminationReason.STEP_LIMIT
    improvements: list[tuple[int, HardSoftScore]] = field(default_factory=list)
    solver_type: SolverType = SolverType.LOCAL_SEARCH

    @property
    def is_feasible(self) -> bool:
        return self.score.is_feasible


class BestSolutionHolder:
    """Best solution seen by any search thread.

    Writes are serialized with a lock; a candidate only replaces the held
    solution when its score is strictly better.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.score: Optional[HardSoftScore] = None
        self.solution: dict[int, Optional[int]] = {}
        self.improvements: list[tuple[int, HardSoftScore]] = []

    def offer(self, score: HardSoftScore, solution: dict[int, Optional[int]], step: int) -> bool:
        """Store the solution if it beats the held one; returns True if stored."""
        with self._lock:
            if self.score is not None and score <= self.score:
                return False
            self.score = score
            self.solution = dict(solution)
            self.improvements.append((step, score))
            return True

    def is_better(self, score: HardSoftScore) -> bool:
        with self._lock:
            return self.score is None or score > self.score


class SearchState:
    """Mutable solution of one search thread with its running score."""

    def __init__(
        self,
        schedule: Schedule,
        variables: list[DecisionVariable],
        weights: ConstraintWeights,
        initial: Optional[dict[int, Optional[int]]] = None,
    ):
        self.variables = variables
        self.calculator = IncrementalScoreCalculator(schedule.staff, weights)
        current = {a.id: a.staff_id for a in schedule.assignments}
        if initial:
            current.update(initial)

        self.values: dict[int, Optional[int]] = {}
        for variable in variables:
            value = current.get(variable.assignment_id)
            self.values[variable.assignment_id] = value if variable.allows(value) else None

        fixed = [(a.slot, a.staff_id) for a in schedule.assignments if a.pinned]
        searched = [(v.slot, self.values[v.assignment_id]) for v in variables]
        self.score = self.calculator.reset(fixed + searched)

    def assign(self, variable: DecisionVariable, value: Optional[int]) -> HardSoftScore:
        """Set a variable and return the new score."""
        old = self.values[variable.assignment_id]
        if old == value:
            return self.score
        self.calculator.retract(variable.slot, old)
        self.calculator.insert(variable.slot, value)
        self.values[variable.assignment_id] = value
        self.score = self.calculator.score
        return self.score

    def snapshot(self) -> dict[int, Optional[int]]:
        return dict(self.values)


def _raise_if_stopped(
    stop_event: Optional[threading.Event],
    abort_event: Optional[threading.Event],
    where: str,
) -> None:
    if stop_event is not None and stop_event.is_set():
        raise SolverInterrupted(f"Search cancelled {where}")
    if abort_event is not None and abort_event.is_set():
        raise SolverInterrupted(f"Search stopped {where}: another worker failed")


class LocalSearchSolver:
    """Construction heuristic followed by local search.

    Example:
        >>> solver = LocalSearchSolver(SolverConfig(time_limit_seconds=5))
        >>> result = solver.solve(schedule)
        >>> schedule.apply_solution(result.solution)
    """

    def __init__(
        self,
        config: Optional[SolverConfig] = None,
        weights: Optional[ConstraintWeights] = None,
    ):
        self.config = config or SolverConfig()
        self.weights = weights or ConstraintWeights()

    def solve(
        self,
        schedule: Schedule,
        stop_event: Optional[threading.Event] = None,
        initial_solution: Optional[dict[int, Optional[int]]] = None,
    ) -> SolverResult:
        """Search for a low-penalty assignment of the schedule.

        Args:
            schedule: Schedule with slots, assignments and staff pool. It is
                not modified; apply ``result.solution`` to persist it.
            stop_event: Cooperative cancellation signal checked between moves.
            initial_solution: Starting values (e.g. from CP-SAT) per assignment ID.

        Returns:
            SolverResult holding the best solution found.

        Raises:
            SolverInterrupted: The stop event was set.
            SolverExecutionFailure: ``require_feasible`` is set and no feasible
                solution was found.
        """
        config = self.config
        started = time.monotonic()
        deadline = started + config.time_limit_seconds
        variables = build_variables(schedule)
        holder = BestSolutionHolder()

        logger.info(
            "Local search on %s: %d variables, %d staff, %d worker(s)",
            schedule.key,
            len(variables),
            len(schedule.staff),
            config.num_workers,
        )

        if not variables:
            state = SearchState(schedule, variables, self.weights, initial_solution)
            return self._finish(
                schedule, state.snapshot(), state.score, 0, started,
                TerminationReason.NOTHING_TO_SOLVE, [],
            )

        if config.num_workers == 1:
            reason, steps = self._run_worker(
                0, schedule, variables, holder, deadline, stop_event, initial_solution
            )
        else:
            reason, steps = self._run_parallel(
                schedule, variables, holder, deadline, stop_event, initial_solution
            )

        return self._finish(
            schedule, holder.solution, holder.score, steps, started, reason, holder.improvements
        )

    def _run_parallel(self, schedule, variables, holder, deadline, stop_event, initial_solution):
        # Set when any worker raises, so the others stop instead of using their budget.
        abort_event = threading.Event()

        def run(index):
            try:
                return self._run_worker(
                    index,
                    schedule,
                    variables,
                    holder,
                    deadline,
                    stop_event,
                    initial_solution,
                    abort_event,
                )
            except BaseException:
                abort_event.set()
                raise

        with ThreadPoolExecutor(max_workers=self.config.num_workers) as executor:
            futures = [executor.submit(run, index) for index in range(self.config.num_workers)]
        errors = [future.exception() for future in futures if future.exception() is not None]
        if errors:
            # Workers stopped by the abort signal raise SolverInterrupted; report the cause.
            causes = [e for e in errors if not isinstance(e, SolverInterrupted)]
            raise (causes or errors)[0]
        outcomes = [future.result() for future in futures]
        total_steps = sum(steps for _, steps in outcomes)
        return outcomes[0][0], total_steps

    def _run_worker(
        self,
        index: int,
        schedule: Schedule,
        variables: list[DecisionVariable],
        holder: BestSolutionHolder,
        deadline: float,
        stop_event: Optional[threading.Event],
        initial_solution: Optional[dict[int, Optional[int]]],
        abort_event: Optional[threading.Event] = None,
    ) -> tuple[TerminationReason, int]:
        """Run one independent search; returns (termination reason, steps)."""
        config = self.config
        seed = None if config.random_seed is None else config.random_seed + index
        rng = random.Random(seed)
        state = SearchState(schedule, variables, self.weights, initial_solution)

        if config.construction == ConstructionType.FIRST_FIT:
            self._construct(state, deadline, stop_event, abort_event)
        holder.offer(state.score, state.snapshot(), 0)
        logger.debug("Worker %d starts local search at %s", index, state.score)

        temperature = config.starting_temperature
        step = 0
        last_improvement = 0
        while True:
            reason = self._check_termination(
                step, last_improvement, deadline, stop_event, abort_event
            )
            if reason is not None:
                break
            step += 1
            self._do_step(state, rng, temperature)
            if config.acceptance == AcceptanceType.SIMULATED_ANNEALING:
                temperature *= config.cooling_rate
            if holder.is_better(state.score) and holder.offer(state.score, state.snapshot(), step):
                last_improvement = step
                logger.debug("Worker %d new best %s at step %d", index, state.score, step)

        logger.debug("Worker %d stopped after %d steps (%s)", index, step, reason.value)
        return reason, step

    def _check_termination(
        self,
        step: int,
        last_improvement: int,
        deadline: float,
        stop_event: Optional[threading.Event],
        abort_event: Optional[threading.Event] = None,
    ) -> Optional[TerminationReason]:
        _raise_if_stopped(stop_event, abort_event, f"after {step} steps")
        config = self.config
        if config.step_limit is not None and step >= config.step_limit:
            return TerminationReason.STEP_LIMIT
        if (
            config.unimproved_step_limit is not None
            and step - last_improvement >= config.unimproved_step_limit
        ):
            return TerminationReason.UNIMPROVED_STEP_LIMIT
        if time.monotonic() >= deadline:
            return TerminationReason.TIME_LIMIT
        return None

    def _construct(
        self,
        state: SearchState,
        deadline: float,
        stop_event: Optional[threading.Event],
        abort_event: Optional[threading.Event] = None,
    ) -> None:
        """Fill unassigned variables, most constrained first, each with its best value.

        Variables still pending when the deadline passes stay unassigned.
        """
        pending = [v for v in state.variables if state.values[v.assignment_id] is None]
        pending.sort(key=lambda v: (len(v.domain), v.day, v.assignment_id))
        for filled, variable in enumerate(pending):
            _raise_if_stopped(stop_event, abort_event, "during construction")
            if time.monotonic() >= deadline:
                logger.warning(
                    "Time limit reached during construction; %d of %d variables left open",
                    len(pending) - filled,
                    len(pending),
                )
                return
            best_value = None
            best_score = state.score
            for value in variable.domain:
                score = state.assign(variable, value)
                if score > best_score:
                    best_value, best_score = value, score
            state.assign(variable, best_value)
        logger.debug("Construction finished at %s", state.score)

    def _do_step(self, state: SearchState, rng: random.Random, temperature: float) -> None:
        """Try one random move and keep or undo it."""
        config = self.config
        total_weight = config.change_move_weight + config.swap_move_weight
        use_swap = (
            len(state.variables) > 1
            and rng.random() * total_weight >= config.change_move_weight
        )
        before = state.score
        if use_swap:
            first, second = rng.sample(state.variables, 2)
            first_value = state.values[first.assignment_id]
            second_value = state.values[second.assignment_id]
            if (
                first_value == second_value
                or not first.allows(second_value)
                or not second.allows(first_value)
            ):
                return
            state.assign(first, second_value)
            after = state.assign(second, first_value)
            if not self._accept(before, after, rng, temperature):
                state.assign(second, second_value)
                state.assign(first, first_value)
        else:
            variable = rng.choice(state.variables)
            old_value = state.values[variable.assignment_id]
            options = [v for v in variable.values if v != old_value]
            if not options:
                return
            after = state.assign(variable, rng.choice(options))
            if not self._accept(before, after, rng, temperature):
                state.assign(variable, old_value)

    def _accept(
        self,
        before: HardSoftScore,
        after: HardSoftScore,
        rng: random.Random,
        temperature: float,
    ) -> bool:
        config = self.config
        delta = after.to_scalar(config.hard_weight) - before.to_scalar(config.hard_weight)
        if delta >= 0:
            return True
        if config.acceptance == AcceptanceType.HILL_CLIMBING:
            return False
        if -delta > config.max_worsening or temperature <= 0:
            return False
        return rng.random() < math.exp(delta / temperature)

    def _finish(
        self,
        schedule: Schedule,
        solution: dict[int, Optional[int]],
        score: HardSoftScore,
        steps: int,
        started: float,
        reason: TerminationReason,
        improvements: list[tuple[int, HardSoftScore]],
    ) -> SolverResult:
        elapsed = time.monotonic() - started
        logger.info(
            "Local search on %s finished: %s after %d steps in %.2fs (%s)",
            schedule.key,
            score,
            steps,
            elapsed,
            reason.value,
        )
        if self.config.require_feasible and not score.is_feasible:
            raise SolverExecutionFailure(f"No feasible solution found for {schedule.key}: {score}")
        return SolverResult(
            solution=dict(solution),
            score=score,
            steps=steps,
            elapsed_seconds=elapsed,
            termination_reason=reason,
            improvements=list(improvements),
            solver_type=SolverType.LOCAL_SEARCH,
        )
