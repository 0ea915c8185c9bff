"""Scheduling engine for generating monthly duty rosters."""

from dutyroster.scheduling.constraints import (
    ConstraintModel,
    ConstraintWeights,
    IncrementalScoreCalculator,
)
from dutyroster.scheduling.cpsat_solver import CPSATSolver, HybridSolver, create_solver
from dutyroster.scheduling.lifecycle import ScheduleLifecycle
from dutyroster.scheduling.local_search_solver import (
    AcceptanceType,
    BestSolutionHolder,
    ConstructionType,
    LocalSearchSolver,
    SolverConfig,
    SolverResult,
    SolverType,
    TerminationReason,
)
from dutyroster.scheduling.problem_builder import ProblemBuilder
from dutyroster.scheduling.slot_generator import SlotGenerator
from dutyroster.scheduling.variables import DecisionVariable, build_variables

__all__ = [
    # Problem construction
    "SlotGenerator",
    "ProblemBuilder",
    "DecisionVariable",
    "build_variables",
    # Scoring
    "ConstraintModel",
    "ConstraintWeights",
    "IncrementalScoreCalculator",
    # Solvers
    "LocalSearchSolver",
    "CPSATSolver",
    "HybridSolver",
    "BestSolutionHolder",
    "create_solver",
    # Solver configuration
    "SolverConfig",
    "SolverResult",
    "SolverType",
    "AcceptanceType",
    "ConstructionType",
    "TerminationReason",
    # Lifecycle
    "ScheduleLifecycle",
]
