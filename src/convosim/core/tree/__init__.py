"""Execution tree: append-only turns, branches and the run aggregate."""

from convosim.core.tree.models import (
    MAIN_BRANCH_ID,
    AffectScalars,
    Branch,
    ExecutionDecision,
    ScenarioContext,
    SimulationRun,
    Turn,
    TurnDecision,
    TurnPayload,
    TurnStatus,
    child_index,
)

__all__ = [
    "AffectScalars",
    "Branch",
    "ExecutionDecision",
    "MAIN_BRANCH_ID",
    "ScenarioContext",
    "SimulationRun",
    "Turn",
    "TurnDecision",
    "TurnPayload",
    "TurnStatus",
    "child_index",
]
