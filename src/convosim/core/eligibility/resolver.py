"""Eligibility Resolver: decides which flow nodes are reachable from a ledger."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

from convosim.core.eligibility.deadline import DEADLINE_FOLLOW_UP
from convosim.core.eligibility.ledger import Ledger
from convosim.core.errors import IneligibleNode
from convosim.core.flow.models import (
    ADAPTIVE_LENS_ID,
    GOAL_SET_STATES,
    FlowGraph,
    FlowNode,
    Gate,
    GateDefinition,
    GoalLens,
    NodeKind,
)
from convosim.core.tree.models import ExecutionDecision, ScenarioContext, Turn

logger = logging.getLogger(__name__)

_IMPORTANCE_RANK = {"high": 0, "normal": 1, "low": 2}


class EligibilityResolver:
    """
    Deterministic reachability over an authored flow.

    Every query is a pure function of the flow, the ledger passed in and,
    for ``eligible_nodes``, the scenario. Nothing is cached between calls.
    """

    def __init__(self, flow: FlowGraph):
        """
        Initialize resolver for a flow.

        Args:
            flow: Authored flow graph (read-only)
        """
        self.flow = flow
        self.gate_definitions: Dict[Gate, GateDefinition] = flow.effective_gate_definitions()
        self._node_ids = frozenset(flow.node_ids())

    # =========================================================================
    # Node eligibility
    # =========================================================================

    def _fact_known(self, fact: str, ledger: Ledger) -> bool:
        if fact in self._node_ids and fact in ledger.executed_nodes:
            return True
        return ledger.knows(self.flow.canonical_fact(fact))

    def why_ineligible(self, node: FlowNode, ledger: Ledger) -> List[str]:
        """
        List the unmet prerequisites of a node.

        Args:
            node: Flow node to check
            ledger: Gates and facts known at the point of interest

        Returns:
            One human-readable reason per missing gate or fact (empty if eligible)
        """
        reasons = [f"requires gate {gate.value}" for gate in sorted(node.requires.gates - ledger.gates)]
        reasons.extend(
            f"requires fact {fact}" for fact in sorted(node.requires.facts) if not self._fact_known(fact, ledger)
        )
        return reasons

    def is_eligible(self, node: FlowNode, ledger: Ledger) -> bool:
        """True iff every required gate and fact is present. Never raises."""
        if not node.requires.gates <= ledger.gates:
            return False
        return all(self._fact_known(fact, ledger) for fact in node.requires.facts)

    def require_eligible(
        self, node: FlowNode, ledger: Ledger, scenario: Optional[ScenarioContext] = None
    ) -> None:
        """Raise IneligibleNode listing unmet prerequisites and scenario blocks."""
        reasons = self.why_ineligible(node, ledger) + self.scenario_blocks(node, ledger, scenario)
        if reasons:
            raise IneligibleNode(node.id, reasons)

    def goal_is_set(self, ledger: Ledger) -> bool:
        if ledger.states & GOAL_SET_STATES:
            return True
        for node_id in ledger.executed_nodes:
            if node_id in self._node_ids and self.flow.get_node(node_id).kind in (
                NodeKind.GOAL_DEFINITION,
                NodeKind.GOAL_GAP_TRACKER,
            ):
                return True
        return False

    def scenario_blocks(
        self,
        node: FlowNode,
        ledger: Ledger,
        scenario: Optional[ScenarioContext] = None,
        run_counts: Optional[Dict[str, int]] = None,
    ) -> List[str]:
        """Reasons beyond gates and facts that keep a node from running now."""
        reasons: List[str] = []
        rules = node.eligibility
        if scenario is not None:
            if rules.channels is not None and scenario.channel not in rules.channels:
                reasons.append(f"channel {scenario.channel} not allowed")
            if rules.lead_states is not None and scenario.lead_state not in rules.lead_states:
                reasons.append(f"lead state {scenario.lead_state} not allowed")
        if rules.requires_goal_set and not self.goal_is_set(ledger):
            reasons.append("goal not set")
        # An open deadline follow-up may run its node again
        if node.max_runs == "once" and node.id not in ledger.pending_follow_ups:
            already_ran = (run_counts or {}).get(node.id, 0) > 0 or node.id in ledger.executed_nodes
            if already_ran:
                reasons.append("already ran (max once)")
        return reasons

    def eligible_nodes(
        self,
        ledger: Ledger,
        scenario: Optional[ScenarioContext] = None,
        run_counts: Optional[Dict[str, int]] = None,
    ) -> List[FlowNode]:
        """
        All nodes that may run next, ordered by importance then declaration order.

        Args:
            ledger: Replayed ledger at the point of interest
            scenario: Channel and lead state filters (None disables them)
            run_counts: Optional per-node execution counts overriding the ledger

        Returns:
            Eligible nodes
        """
        candidates = [
            node
            for node in self.flow.nodes
            if self.is_eligible(node, ledger) and not self.scenario_blocks(node, ledger, scenario, run_counts)
        ]
        # sorted() is stable, so declaration order breaks ties
        return sorted(candidates, key=lambda n: _IMPORTANCE_RANK.get(n.importance, 1))

    # =========================================================================
    # Ledger
    # =========================================================================

    def derive_gates(self, facts: FrozenSet[str], states: FrozenSet[str]) -> FrozenSet[Gate]:
        return frozenset(
            gate
            for gate, definition in self.gate_definitions.items()
            if definition.satisfied_by.is_satisfied(facts, states)
        )

    def apply_turn(self, ledger: Ledger, turn: Turn) -> Ledger:
        """
        Fold one turn into a ledger.

        Args:
            ledger: Ledger before the turn
            turn: Executed turn

        Returns:
            New ledger: the union of the turn's declarations, plus gates whose
            definitions are now satisfied by accumulated facts and states
        """
        facts = self.flow.canonical_facts([*turn.satisfied_facts, *turn.decision.newly_known_facts])
        # A stalled turn did not complete its node
        completed = turn.node_id and turn.decision.execution_decision is not ExecutionDecision.STALL
        updated = ledger.with_additions(
            gates=turn.satisfied_gates,
            facts=facts,
            states=turn.satisfied_states,
            executed_nodes=[turn.node_id] if completed else [],
        )
        if completed:
            if DEADLINE_FOLLOW_UP in turn.decision.readiness_delta:
                updated = updated.with_follow_up(turn.node_id, True)
            elif turn.node_id in updated.pending_follow_ups:
                updated = updated.with_follow_up(turn.node_id, False)
        derived = self.derive_gates(updated.facts, updated.states)
        if derived - updated.gates:
            updated = updated.with_additions(gates=derived)
        return updated

    def replay(self, turns: Iterable[Turn]) -> Ledger:
        ledger = Ledger.empty()
        for turn in turns:
            ledger = self.apply_turn(ledger, turn)
        return ledger

    # =========================================================================
    # Goal lenses
    # =========================================================================

    def lens_for(self, node: FlowNode, scenario: Optional[ScenarioContext] = None) -> Optional[GoalLens]:
        """Resolve the goal lens a node adapts to.

        ``ADAPTIVE`` resolves to the scenario's lens, else the flow's first lens.
        """
        lens_id = node.goal_lens_id
        if lens_id is None:
            return None
        if lens_id == ADAPTIVE_LENS_ID:
            if scenario is not None and scenario.goal_lens_id:
                lens_id = scenario.goal_lens_id
            elif self.flow.goal_lenses:
                return self.flow.goal_lenses[0]
            else:
                return None
        return self.flow.get_lens(lens_id)

    def resolve_questions_for_baseline(self, node: FlowNode, lens: GoalLens) -> List[str]:
        """Metric ids to ask about, baseline first. Optional ones end with ``?``."""
        return [metric.id if metric.required else f"{metric.id}?" for metric in lens.all_metrics]

    def missing_metrics(self, node: FlowNode, lens: GoalLens, ledger: Ledger) -> List[str]:
        """Required lens metrics not yet known on this path."""
        return [
            metric.id
            for metric in lens.all_metrics
            if metric.required and not ledger.knows(self.flow.canonical_fact(metric.id))
        ]

    # =========================================================================
    # Primary goal
    # =========================================================================

    def still_needed(self, ledger: Ledger) -> List[str]:
        """
        What the primary goal still needs, for the readiness panel.

        Args:
            ledger: Replayed ledger

        Returns:
            Missing facts/states of the primary goal gate's definition, or
            the goal gate/state itself when it has no definition
        """
        goal = self.flow.primary_goal
        if goal.type == "STATE":
            return [] if goal.state in ledger.states else [goal.state or "?"]

        gate = goal.gate
        if gate is None or gate in ledger.gates:
            return []
        definition = self.gate_definitions.get(gate)
        if definition is None or definition.satisfied_by.is_empty:
            return [gate.value]

        rule = definition.satisfied_by
        needed = sorted(rule.metrics_all - ledger.facts)
        if rule.metrics_any and not (rule.metrics_any & ledger.facts):
            needed.append(" or ".join(sorted(rule.metrics_any)))
        needed.extend(sorted(rule.states_all - ledger.states))
        return needed

    def goal_reached(self, ledger: Ledger) -> bool:
        goal = self.flow.primary_goal
        if goal.type == "STATE":
            return goal.state in ledger.states
        return goal.gate is not None and goal.gate in ledger.gates


__all__ = ["EligibilityResolver"]
