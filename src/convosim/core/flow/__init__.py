"""
Authored flow graph: conversation moments, gates and goal lenses.

Components:
- FlowNode: a gated conversation moment (requires / satisfies)
- GateDefinition: how a gate is satisfied by facts and states
- GoalLens: baseline/target metrics plus deadline policy
- FlowGraph: the complete flow consumed by the simulator
- FlowFileSpec / LensFileSpec: authoring-format schemas (YAML or JSON)
"""

from convosim.core.flow.file_spec import FlowFileSpec, LensFileSpec
from convosim.core.flow.models import (
    ADAPTIVE_LENS_ID,
    DEFAULT_GATE_DEFINITIONS,
    GOAL_SET_STATES,
    KIND_LABELS,
    DeadlineEnforcement,
    DeadlinePolicy,
    FlowGraph,
    FlowNode,
    Gate,
    GateDefinition,
    GateRule,
    GoalLens,
    MetricDefinition,
    NarrowingStrategy,
    NodeEligibility,
    NodeKind,
    NodeRequires,
    NodeSatisfaction,
    PrimaryGoal,
)

__all__ = [
    "ADAPTIVE_LENS_ID",
    "DEFAULT_GATE_DEFINITIONS",
    "GOAL_SET_STATES",
    "KIND_LABELS",
    "DeadlineEnforcement",
    "DeadlinePolicy",
    "FlowFileSpec",
    "FlowGraph",
    "FlowNode",
    "Gate",
    "GateDefinition",
    "GateRule",
    "GoalLens",
    "LensFileSpec",
    "MetricDefinition",
    "NarrowingStrategy",
    "NodeEligibility",
    "NodeKind",
    "NodeRequires",
    "NodeSatisfaction",
    "PrimaryGoal",
]
