"""OR-Tools CP-SAT solver for duty assignment.

This module formulates the assignment as a CP-SAT model. The hard rules are
model constraints (value domains already exclude on-call, skill and cycling
violations), so every solution it returns is feasible; the soft rules form
the objective. It is used alone or as the warm start of the local search.
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Optional

from ortools.sat.python import cp_model

from dutyroster.domain.models import Schedule, SlotKind
from dutyroster.exceptions import SolverExecutionFailure, SolverInterrupted
from dutyroster.scheduling.constraints import (
    UNASSIGNED_SLOT,
    ConstraintModel,
    ConstraintWeights,
)
from dutyroster.scheduling.local_search_solver import (
    LocalSearchSolver,
    SolverConfig,
    SolverResult,
    SolverType,
    TerminationReason,
)
from dutyroster.scheduling.variables import build_variables

logger = logging.getLogger(__name__)

STATUS_NAMES = {
    cp_model.OPTIMAL: "OPTIMAL",
    cp_model.FEASIBLE: "FEASIBLE",
    cp_model.INFEASIBLE: "INFEASIBLE",
    cp_model.MODEL_INVALID: "MODEL_INVALID",
    cp_model.UNKNOWN: "UNKNOWN",
}


class CPSATSolver:
    """Constraint programming solver using OR-Tools CP-SAT.

    Decision variables: x[a, s] = 1 if assignment a goes to staff member s,
    created only for staff in the assignment's value domain.

    Constraints:
    - Each assignment has at most one staff member
    - Each staff member has at most one assignment per day
    - Each staff member stays within ``max_slots``

    Objective (minimized): unfilled slots, regular shortfall below
    ``min_slots``, consultation shortfall below the target, and the spread
    between the highest and lowest staff load.
    """

    def __init__(
        self,
        config: Optional[SolverConfig] = None,
        weights: Optional[ConstraintWeights] = None,
    ):
        self.config = config or SolverConfig()
        self.weights = weights or ConstraintWeights()
        self.last_status = "UNKNOWN"

    def solve(
        self,
        schedule: Schedule,
        stop_event: Optional[threading.Event] = None,
    ) -> SolverResult:
        """Solve with CP-SAT alone.

        Raises:
            SolverInterrupted: The stop event was set.
            SolverExecutionFailure: CP-SAT found no solution in time.
        """
        started = time.monotonic()
        solution = self.find_solution(schedule, stop_event, self.config.time_limit_seconds)
        if solution is None:
            raise SolverExecutionFailure(
                f"CP-SAT found no solution for {schedule.key} (status {self.last_status})"
            )
        assignments = [
            replace(a, staff_id=solution.get(a.id, a.staff_id)) for a in schedule.assignments
        ]
        score = ConstraintModel(schedule.staff, self.weights).calculate(assignments)
        logger.info("CP-SAT on %s finished with %s (%s)", schedule.key, score, self.last_status)
        return SolverResult(
            solution=solution,
            score=score,
            elapsed_seconds=time.monotonic() - started,
            termination_reason=TerminationReason.CPSAT_FINISHED,
            improvements=[(0, score)],
            solver_type=SolverType.CPSAT,
        )

    def find_solution(
        self,
        schedule: Schedule,
        stop_event: Optional[threading.Event],
        time_limit_seconds: float,
    ) -> Optional[dict[int, Optional[int]]]:
        """Build and solve the model.

        Returns:
            Assignment ID to staff ID (or None) for every non-pinned
            assignment, or None if no solution was found.
        """
        model = cp_model.CpModel()
        variables = build_variables(schedule)
        staff_map = {m.id: m for m in schedule.staff if m.is_eligible}
        weights = self.weights

        # Loads already taken by pinned assignments
        pinned_total: dict[int, int] = {}
        pinned_day: dict[tuple[int, int], int] = {}
        pinned_kind: dict[tuple[int, SlotKind], int] = {}
        for assignment in schedule.assignments:
            if assignment.pinned and assignment.staff_id in staff_map:
                staff_id = assignment.staff_id
                pinned_total[staff_id] = pinned_total.get(staff_id, 0) + 1
                day_key = (staff_id, assignment.day)
                pinned_day[day_key] = pinned_day.get(day_key, 0) + 1
                kind_key = (staff_id, assignment.kind)
                pinned_kind[kind_key] = pinned_kind.get(kind_key, 0) + 1

        x: dict[tuple[int, int], cp_model.IntVar] = {}
        by_staff: dict[int, list] = {staff_id: [] for staff_id in staff_map}
        by_staff_day: dict[tuple[int, int], list] = {}
        by_staff_kind: dict[tuple[int, SlotKind], list] = {}
        unassigned_terms = []

        for variable in variables:
            options = []
            for staff_id in variable.domain:
                var = model.NewBoolVar(f"x_{variable.assignment_id}_{staff_id}")
                x[(variable.assignment_id, staff_id)] = var
                options.append(var)
                by_staff[staff_id].append(var)
                by_staff_day.setdefault((staff_id, variable.day), []).append(var)
                by_staff_kind.setdefault((staff_id, variable.slot.kind), []).append(var)
            # Constraint 1: at most one staff member per assignment
            if options:
                model.AddAtMostOne(options)
                filled = model.NewBoolVar(f"filled_{variable.assignment_id}")
                model.Add(sum(options) == filled)
                unassigned_terms.append(1 - filled)
            else:
                unassigned_terms.append(1)

        # Constraint 2: at most one assignment per staff member and day
        for (staff_id, day), day_vars in by_staff_day.items():
            room = max(0, 1 - pinned_day.get((staff_id, day), 0))
            model.Add(sum(day_vars) <= room)

        objective_terms = []
        loads = []
        max_possible = len(schedule.assignments)
        for staff_id, member in staff_map.items():
            constraints = member.constraints
            staff_vars = by_staff[staff_id]
            load = model.NewIntVar(0, max_possible, f"load_{staff_id}")
            model.Add(load == sum(staff_vars) + pinned_total.get(staff_id, 0))
            loads.append(load)

            # Constraint 3: workload cap
            if constraints.max_slots > 0:
                cap = max(constraints.max_slots, pinned_total.get(staff_id, 0))
                model.Add(load <= cap)

            regular = sum(by_staff_kind.get((staff_id, SlotKind.REGULAR), [])) + pinned_kind.get(
                (staff_id, SlotKind.REGULAR), 0
            )
            if constraints.min_slots > 0:
                shortfall = model.NewIntVar(0, constraints.min_slots, f"short_{staff_id}")
                model.Add(shortfall >= constraints.min_slots - regular)
                objective_terms.append(shortfall * weights.min_slots_shortfall)

            consultations = sum(
                by_staff_kind.get((staff_id, SlotKind.CONSULTATION), [])
            ) + pinned_kind.get((staff_id, SlotKind.CONSULTATION), 0)
            if constraints.target_consultations > 0:
                consult_short = model.NewIntVar(
                    0, constraints.target_consultations, f"consult_short_{staff_id}"
                )
                model.Add(consult_short >= constraints.target_consultations - consultations)
                objective_terms.append(consult_short * weights.consultation_shortfall)

        unassigned_weight = weights.unassigned_slot
        if weights.is_hard(UNASSIGNED_SLOT):
            unassigned_weight *= self.config.hard_weight
        objective_terms.append(sum(unassigned_terms) * unassigned_weight)

        # Fairness: minimize spread between highest and lowest load
        if len(loads) > 1 and weights.workload_imbalance > 0:
            max_load = model.NewIntVar(0, max_possible, "max_load")
            min_load = model.NewIntVar(0, max_possible, "min_load")
            model.AddMaxEquality(max_load, loads)
            model.AddMinEquality(min_load, loads)
            objective_terms.append((max_load - min_load) * weights.workload_imbalance)

        model.Minimize(sum(objective_terms))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = time_limit_seconds
        if self.config.num_workers > 1:
            solver.parameters.num_workers = self.config.num_workers
        if self.config.random_seed is not None:
            solver.parameters.random_seed = self.config.random_seed

        logger.info(
            "CP-SAT on %s: %d variables over %d assignments",
            schedule.key,
            len(x),
            len(variables),
        )
        status = self._solve_with_stop(solver, model, stop_event)
        self.last_status = STATUS_NAMES.get(status, "UNKNOWN")

        if stop_event is not None and stop_event.is_set():
            raise SolverInterrupted("CP-SAT search cancelled")
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.warning("CP-SAT found no solution for %s: %s", schedule.key, self.last_status)
            return None

        solution: dict[int, Optional[int]] = {}
        for variable in variables:
            solution[variable.assignment_id] = None
            for staff_id in variable.domain:
                if solver.Value(x[(variable.assignment_id, staff_id)]) == 1:
                    solution[variable.assignment_id] = staff_id
                    break
        return solution

    def _solve_with_stop(
        self,
        solver: cp_model.CpSolver,
        model: cp_model.CpModel,
        stop_event: Optional[threading.Event],
    ) -> int:
        """Run the solver, stopping it when the stop event is set."""
        if stop_event is None:
            return solver.Solve(model)

        done = threading.Event()

        def watch() -> None:
            while not done.is_set():
                if stop_event.wait(0.05):
                    solver.StopSearch()
                    return

        watcher = threading.Thread(target=watch, name="cpsat-stop-watcher", daemon=True)
        watcher.start()
        try:
            return solver.Solve(model)
        finally:
            done.set()
            watcher.join()


class HybridSolver:
    """CP-SAT warm start followed by local search.

    CP-SAT gets half of the time budget; the local search starts from its
    solution with the rest. If CP-SAT finds nothing, the local search starts
    from its own construction heuristic.
    """

    def __init__(
        self,
        config: Optional[SolverConfig] = None,
        weights: Optional[ConstraintWeights] = None,
    ):
        self.config = config or SolverConfig()
        self.weights = weights or ConstraintWeights()
        self.cpsat = CPSATSolver(self.config, self.weights)

    def solve(
        self,
        schedule: Schedule,
        stop_event: Optional[threading.Event] = None,
    ) -> SolverResult:
        started = time.monotonic()
        warm_start = self.cpsat.find_solution(
            schedule, stop_event, self.config.time_limit_seconds / 2
        )
        if warm_start is None:
            logger.info("No CP-SAT warm start for %s; using construction heuristic", schedule.key)

        remaining = self.config.time_limit_seconds - (time.monotonic() - started)
        local_config = replace(self.config, time_limit_seconds=max(remaining, 0.001))
        result = LocalSearchSolver(local_config, self.weights).solve(
            schedule, stop_event=stop_event, initial_solution=warm_start
        )
        result.solver_type = SolverType.HYBRID
        result.elapsed_seconds = time.monotonic() - started
        return result


def create_solver(
    config: Optional[SolverConfig] = None,
    weights: Optional[ConstraintWeights] = None,
):
    """Create the solver selected by ``config.solver_type``.

    Args:
        config: Solver configuration.
        weights: Constraint weights.

    Returns:
        LocalSearchSolver, CPSATSolver or HybridSolver.
    """
    config = config or SolverConfig()
    if config.solver_type == SolverType.CPSAT:
        return CPSATSolver(config, weights)
    if config.solver_type == SolverType.HYBRID:
        return HybridSolver(config, weights)
    return LocalSearchSolver(config, weights)
