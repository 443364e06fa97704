from __future__ import annotations

from collections import Counter
from typing import FrozenSet, List, Set

from convosim.core.eligibility.lanes import lane_of
from convosim.core.errors import UnresolvableLane
from convosim.core.flow.models import ADAPTIVE_LENS_ID, FlowGraph, FlowNode, Gate, NodeKind
from convosim.core.registries.registry_manager import RegistryManager


class FlowValidator:
    """Static checks over one authored flow. Returns error strings, never raises."""

    def __init__(self, flow: FlowGraph):
        self.flow = flow
        self._node_ids = set(flow.node_ids())

    def validate(self) -> List[str]:
        errors: List[str] = []
        errors.extend(self._validate_node_ids())
        errors.extend(self._validate_entry_nodes())
        errors.extend(self._validate_lanes())
        errors.extend(self._validate_lens_references())
        errors.extend(self._validate_kind_config())
        errors.extend(self._validate_requirements())
        errors.extend(self._validate_gate_entailment())
        errors.extend(self._validate_primary_goal())
        return errors

    def _validate_node_ids(self) -> List[str]:
        counts = Counter(self.flow.node_ids())
        return [f"Flow {self.flow.id}: duplicate node id '{node_id}'" for node_id, n in counts.items() if n > 1]

    def _validate_entry_nodes(self) -> List[str]:
        return [
            f"Flow {self.flow.id}: entry node '{node_id}' does not exist"
            for node_id in self.flow.entry_node_ids
            if node_id not in self._node_ids
        ]

    def _validate_lanes(self) -> List[str]:
        errors: List[str] = []
        for node in self.flow.nodes:
            try:
                lane_of(node)
            except UnresolvableLane as exc:
                errors.append(f"Node {node.id}: {exc}")
        return errors

    def _validate_lens_references(self) -> List[str]:
        errors: List[str] = []
        lens_ids = {lens.id for lens in self.flow.goal_lenses}
        for node in self.flow.nodes:
            if node.goal_lens_id is None:
                continue
            if node.goal_lens_id == ADAPTIVE_LENS_ID:
                if not lens_ids:
                    errors.append(f"Node {node.id}: adapts to the goal lens but the flow has no lenses")
            elif node.goal_lens_id not in lens_ids:
                errors.append(f"Node {node.id} references unknown goal lens: {node.goal_lens_id}")
        return errors

    def _validate_kind_config(self) -> List[str]:
        errors: List[str] = []
        for node in self.flow.nodes:
            if node.kind is NodeKind.DEADLINE_CAPTURE and node.deadline_enforcement is None:
                errors.append(f"Node {node.id}: DEADLINE_CAPTURE has no deadline enforcement")
            if node.kind is NodeKind.BASELINE_CAPTURE and node.goal_lens_id is None:
                declared = node.satisfies
                if not (declared.gates or declared.metrics or declared.states):
                    errors.append(f"Node {node.id}: BASELINE_CAPTURE has no goal lens and captures nothing")
        return errors

    def _produced(self) -> FrozenSet[str]:
        produced: Set[str] = set()
        for node in self.flow.nodes:
            produced |= self.flow.canonical_facts(node.satisfies.metrics)
            produced |= node.satisfies.states
        for lens in self.flow.goal_lenses:
            produced |= self.flow.canonical_facts(metric.id for metric in lens.all_metrics)
        return frozenset(produced)

    def _gate_reachable(self, gate: Gate, produced: FrozenSet[str]) -> bool:
        if any(gate in node.satisfies.gates for node in self.flow.nodes):
            return True
        definition = self.flow.effective_gate_definitions().get(gate)
        if definition is None:
            return False
        rule = definition.satisfied_by
        return rule.is_satisfied(produced, produced)

    def _validate_requirements(self) -> List[str]:
        errors: List[str] = []
        produced = self._produced()
        for node in self.flow.nodes:
            for fact in sorted(node.requires.facts):
                if fact in self._node_ids:
                    continue
                if self.flow.canonical_fact(fact) not in produced:
                    errors.append(f"Node {node.id} requires fact '{fact}' that no node produces")
            for gate in sorted(node.requires.gates):
                if not self._gate_reachable(gate, produced):
                    errors.append(f"Node {node.id} requires gate {gate.value} that nothing satisfies")
        return errors

    def _validate_gate_entailment(self) -> List[str]:
        # Booking can only happen after contact
        return [
            f"Node {node.id} requires BOOKING but not CONTACT (booking entails contact)"
            for node in self.flow.nodes
            if Gate.BOOKING in node.requires.gates and Gate.CONTACT not in node.requires.gates
        ]

    def _validate_primary_goal(self) -> List[str]:
        goal = self.flow.primary_goal
        if goal.type == "GATE":
            if goal.gate is None:
                return [f"Flow {self.flow.id}: primary goal of type GATE names no gate"]
            if not self._gate_reachable(goal.gate, self._produced()):
                return [f"Flow {self.flow.id}: primary goal gate {goal.gate.value} is never satisfied"]
            return []
        if not goal.state:
            return [f"Flow {self.flow.id}: primary goal of type STATE names no state"]
        if not self._producers_of_state(goal.state):
            return [f"Flow {self.flow.id}: primary goal state {goal.state} is produced by no node"]
        return []

    def _producers_of_state(self, state: str) -> List[FlowNode]:
        return [node for node in self.flow.nodes if state in node.satisfies.states]


class RegistryValidator:
    def __init__(self, registries: RegistryManager):
        self.registries = registries

    def validate_all(self) -> List[str]:
        """Return list of validation errors across every registered flow."""
        errors: List[str] = []
        for flow_id in self.registries.flows.names():
            errors.extend(FlowValidator(self.registries.resolve_flow(flow_id)).validate())
        return errors


__all__ = ["FlowValidator", "RegistryValidator"]
