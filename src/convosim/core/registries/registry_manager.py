from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field

from convosim.core.flow.models import DEFAULT_GATE_DEFINITIONS, FlowGraph, Gate, GateDefinition, GoalLens

from .registry_base import NameRegistry


class FlowRegistry(NameRegistry[FlowGraph]):
    kind = "flow"


class GoalLensRegistry(NameRegistry[GoalLens]):
    kind = "goal lens"


class RegistryManager(BaseModel):
    """Central manager for flows, shared goal lenses and gate definitions."""

    flows: FlowRegistry = Field(default_factory=FlowRegistry)
    lenses: GoalLensRegistry = Field(default_factory=GoalLensRegistry)
    gates: Dict[Gate, GateDefinition] = Field(default_factory=dict)

    def register_defaults(self) -> None:
        """Register the standard gate definitions (contact, booking, handoff)."""
        for gate, definition in DEFAULT_GATE_DEFINITIONS.items():
            self.gates.setdefault(gate, definition)

    def register_lenses(self, lenses: List[GoalLens]) -> None:
        for lens in lenses:
            self.lenses.register(lens.id, lens)

    def resolve_flow(self, flow_id: str) -> FlowGraph:
        """
        Flow with shared registry data layered in.

        Lenses from the lens registry that the flow does not define itself are
        appended; registered gate definitions fill gates the flow leaves out.
        """
        flow = self.flows.get(flow_id)
        own_lens_ids = {lens.id for lens in flow.goal_lenses}
        extra_lenses = [lens for lens in self.lenses.all() if lens.id not in own_lens_ids]
        gates = {**self.gates, **flow.gate_definitions}
        return flow.model_copy(
            update={"goal_lenses": [*flow.goal_lenses, *extra_lenses], "gate_definitions": gates}
        )


__all__ = ["FlowRegistry", "GoalLensRegistry", "RegistryManager"]
