"""
Authored flow graph models.

A flow is a static graph of conversation *moments* (nodes). Nodes never carry
phrasing; they only declare what they require (gates and facts) and what they
satisfy once executed. Flows are produced by the authoring tool and are
read-only during simulation.

Structure:
    FlowGraph
    ├── nodes: FlowNode[]            (requires / satisfies / kind config)
    ├── gate_definitions             (gate -> satisfaction rule over facts/states)
    ├── fact_aliases                 (short name -> canonical fact id)
    └── goal_lenses: GoalLens[]      (baseline/target metrics + deadline policy)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    """Conversation moment kinds."""

    EXPLANATION = "EXPLANATION"  # Inform, build trust
    REFLECTIVE_QUESTION = "REFLECTIVE_QUESTION"
    GOAL_DEFINITION = "GOAL_DEFINITION"  # Selects the goal lens for the run
    BASELINE_CAPTURE = "BASELINE_CAPTURE"  # Adaptive: questions come from the lens
    DEADLINE_CAPTURE = "DEADLINE_CAPTURE"
    GOAL_GAP_TRACKER = "GOAL_GAP_TRACKER"  # Target -> baseline -> delta -> category
    ACTION_BOOKING = "ACTION_BOOKING"
    HANDOFF = "HANDOFF"


KIND_LABELS: Dict[NodeKind, str] = {
    NodeKind.EXPLANATION: "Explanation",
    NodeKind.REFLECTIVE_QUESTION: "Reflective Question",
    NodeKind.GOAL_DEFINITION: "Goal Definition",
    NodeKind.BASELINE_CAPTURE: "Baseline Capture",
    NodeKind.DEADLINE_CAPTURE: "Deadline Capture",
    NodeKind.GOAL_GAP_TRACKER: "Goal Gap Tracker",
    NodeKind.ACTION_BOOKING: "Action Booking",
    NodeKind.HANDOFF: "Handoff",
}


class Gate(str, Enum):
    """Hard gates controlling eligibility."""

    CONTACT = "CONTACT"
    BOOKING = "BOOKING"
    HANDOFF = "HANDOFF"


class DeadlinePolicy(str, Enum):
    EXACT_DATE = "EXACT_DATE"  # "March 15th"
    RANGE_OK = "RANGE_OK"  # "early March"
    DURATION_OK = "DURATION_OK"  # "3 months"


class NarrowingStrategy(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    FOLLOW_UP = "FOLLOW_UP"


class DeadlineEnforcement(BaseModel):
    """Deadline acceptance policy for DEADLINE_CAPTURE nodes."""

    model_config = ConfigDict(frozen=True)

    policy: DeadlinePolicy
    narrowing_strategy: NarrowingStrategy = NarrowingStrategy.FOLLOW_UP
    prompt_on_violation: Optional[str] = None


class NodeRequires(BaseModel):
    model_config = ConfigDict(frozen=True)

    gates: FrozenSet[Gate] = frozenset()
    facts: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.gates and not self.facts


class NodeSatisfaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    gates: FrozenSet[Gate] = frozenset()
    metrics: FrozenSet[str] = frozenset()
    states: FrozenSet[str] = frozenset()


class NodeEligibility(BaseModel):
    """Scenario filters. ``None`` means unrestricted."""

    model_config = ConfigDict(frozen=True)

    channels: Optional[FrozenSet[str]] = None
    lead_states: Optional[FrozenSet[str]] = None
    requires_goal_set: bool = False


class FlowNode(BaseModel):
    """A conversation moment. Never contains phrasing."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    title: str = ""
    purpose: Optional[str] = None

    requires: NodeRequires = Field(default_factory=NodeRequires)
    satisfies: NodeSatisfaction = Field(default_factory=NodeSatisfaction)

    goal_lens_id: Optional[str] = None
    deadline_enforcement: Optional[DeadlineEnforcement] = None
    eligibility: NodeEligibility = Field(default_factory=NodeEligibility)

    importance: Literal["low", "normal", "high"] = "normal"
    max_runs: Literal["once", "multiple", "unlimited"] = "multiple"
    config: Dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        return f"[{self.id}] {self.title or self.kind.value}"


class MetricDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: Optional[str] = None
    data_type: Literal["string", "number", "date", "boolean"] = "string"
    required: bool = True


class GoalLens(BaseModel):
    """
    Lens through which the user's desired outcome is viewed.

    Selected once per run by a GOAL_DEFINITION turn. Decides which baseline
    and target metrics adaptive capture nodes ask about, and how precise a
    deadline must be.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    industry: str = ""
    baseline_metrics: List[MetricDefinition] = Field(default_factory=list)
    target_metrics: List[MetricDefinition] = Field(default_factory=list)
    deadline_policy: DeadlinePolicy = DeadlinePolicy.RANGE_OK
    narrowing_strategy: NarrowingStrategy = NarrowingStrategy.FOLLOW_UP

    @property
    def all_metrics(self) -> List[MetricDefinition]:
        return [*self.baseline_metrics, *self.target_metrics]


class GateRule(BaseModel):
    """Satisfaction rule of a gate: every non-empty clause must hold."""

    model_config = ConfigDict(frozen=True)

    metrics_all: FrozenSet[str] = frozenset()
    metrics_any: FrozenSet[str] = frozenset()
    states_all: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.metrics_all or self.metrics_any or self.states_all)

    def is_satisfied(self, facts: FrozenSet[str], states: FrozenSet[str]) -> bool:
        if self.is_empty:
            return False
        if self.metrics_all and not self.metrics_all <= facts:
            return False
        if self.metrics_any and not (self.metrics_any & facts):
            return False
        if self.states_all and not self.states_all <= states:
            return False
        return True


class GateDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    satisfied_by: GateRule = Field(default_factory=GateRule)


DEFAULT_GATE_DEFINITIONS: Dict[Gate, GateDefinition] = {
    Gate.CONTACT: GateDefinition(satisfied_by=GateRule(metrics_any=frozenset({"contact_email", "contact_phone"}))),
    Gate.BOOKING: GateDefinition(satisfied_by=GateRule(metrics_all=frozenset({"booking_date", "booking_type"}))),
    Gate.HANDOFF: GateDefinition(satisfied_by=GateRule(states_all=frozenset({"HANDOFF_COMPLETE"}))),
}

# Lens id meaning "use the lens selected for the run"
ADAPTIVE_LENS_ID = "ADAPTIVE"

# States marking that the user's goal is known
GOAL_SET_STATES = frozenset({"GOAL_SET", "GOAL_GAP_CAPTURED"})


class PrimaryGoal(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["GATE", "STATE"] = "GATE"
    gate: Optional[Gate] = None
    state: Optional[str] = None
    description: Optional[str] = None

    def describe(self) -> str:
        target = self.gate.value if self.gate else (self.state or "?")
        return f"{self.type}:{target}"


class FlowGraph(BaseModel):
    """The complete authored flow consumed by the simulator."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: Optional[str] = None
    entry_node_ids: List[str] = Field(default_factory=list)
    primary_goal: PrimaryGoal = Field(default_factory=lambda: PrimaryGoal(type="GATE", gate=Gate.BOOKING))
    nodes: List[FlowNode] = Field(default_factory=list)
    gate_definitions: Dict[Gate, GateDefinition] = Field(default_factory=dict)
    fact_aliases: Dict[str, str] = Field(default_factory=dict)
    goal_lenses: List[GoalLens] = Field(default_factory=list)

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_node(self, node_id: str) -> FlowNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        available = ", ".join(n.id for n in self.nodes)
        raise KeyError(f"Unknown node: {node_id}. Available: {available}")

    def has_node(self, node_id: str) -> bool:
        return any(node.id == node_id for node in self.nodes)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_lens(self, lens_id: str) -> GoalLens:
        for lens in self.goal_lenses:
            if lens.id == lens_id:
                return lens
        available = ", ".join(lens.id for lens in self.goal_lenses)
        raise KeyError(f"Unknown goal lens: {lens_id}. Available: {available}")

    def canonical_fact(self, name: str) -> str:
        """Resolve a fact alias to its canonical id (identity when not aliased)."""
        return self.fact_aliases.get(name, name)

    def canonical_facts(self, names) -> FrozenSet[str]:
        return frozenset(self.canonical_fact(n) for n in names)

    def effective_gate_definitions(self) -> Dict[Gate, GateDefinition]:
        """Authored gate definitions layered over the defaults, fact aliases resolved."""
        merged = {**DEFAULT_GATE_DEFINITIONS, **self.gate_definitions}
        return {gate: self._canonical_definition(definition) for gate, definition in merged.items()}

    def _canonical_definition(self, definition: GateDefinition) -> GateDefinition:
        rule = definition.satisfied_by
        canonical = rule.model_copy(
            update={
                "metrics_all": self.canonical_facts(rule.metrics_all),
                "metrics_any": self.canonical_facts(rule.metrics_any),
            }
        )
        return definition.model_copy(update={"satisfied_by": canonical})


__all__ = [
    "ADAPTIVE_LENS_ID",
    "DEFAULT_GATE_DEFINITIONS",
    "GOAL_SET_STATES",
    "DeadlineEnforcement",
    "DeadlinePolicy",
    "FlowGraph",
    "FlowNode",
    "Gate",
    "GateDefinition",
    "GateRule",
    "GoalLens",
    "KIND_LABELS",
    "MetricDefinition",
    "NarrowingStrategy",
    "NodeEligibility",
    "NodeKind",
    "NodeRequires",
    "NodeSatisfaction",
    "PrimaryGoal",
]
