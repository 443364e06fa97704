"""
Turn backends.

A backend decides what the agent does next. It receives a read-only
``BackendContext`` and returns a ``BackendStep``; the playback session alone
links the resulting turn into the run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from convosim.core.eligibility.deadline import (
    DEADLINE_FOLLOW_UP,
    DEFAULT_NARROWING_PROMPT,
    DeadlineOutcome,
    effective_enforcement,
    evaluate_deadline,
)
from convosim.core.eligibility.ledger import Ledger
from convosim.core.eligibility.resolver import EligibilityResolver
from convosim.core.flow.models import KIND_LABELS, FlowGraph, FlowNode, Gate, NodeKind
from convosim.core.tree.models import ExecutionDecision, ScenarioContext, Turn, TurnDecision, TurnPayload


class BackendContext(BaseModel):
    """Snapshot handed to a backend. Backends never see the mutable run."""

    model_config = ConfigDict(frozen=True)

    flow_id: str
    user_message: Optional[str] = None
    parent_turn: Turn
    path: Tuple[Turn, ...] = ()
    ledger: Ledger = Field(default_factory=Ledger)
    eligible_node_ids: Tuple[str, ...] = ()
    scenario: ScenarioContext = Field(default_factory=ScenarioContext)


class BackendStep(BaseModel):
    """The turn-decision contract returned by a backend, stored verbatim on the turn."""

    model_config = ConfigDict(frozen=True)

    node_id: Optional[str] = None
    agent_message: Optional[str] = None
    decision: TurnDecision = Field(default_factory=TurnDecision)
    satisfied_gates: FrozenSet[Gate] = frozenset()
    satisfied_facts: FrozenSet[str] = frozenset()
    satisfied_states: FrozenSet[str] = frozenset()

    def to_payload(self, user_message: Optional[str], node_kind: Optional[NodeKind]) -> TurnPayload:
        return TurnPayload(
            node_id=self.node_id,
            node_kind=node_kind,
            user_message=user_message,
            agent_message=self.agent_message,
            decision=self.decision,
            satisfied_gates=self.satisfied_gates,
            satisfied_facts=self.satisfied_facts,
            satisfied_states=self.satisfied_states,
        )


class TurnBackend(ABC):
    """Produces the next step of a conversation."""

    @abstractmethod
    def next_step(self, context: BackendContext) -> BackendStep:
        """Decide the next step. May raise; the run is left untouched if it does."""
        raise NotImplementedError


class ScriptedBackend(TurnBackend):
    """
    Deterministic backend for simulation without a phrasing layer.

    Picks the first eligible node that has not yet run on the current path
    and satisfies everything it declares. Adaptive capture nodes satisfy the
    required metrics of their goal lens. Deadline answers are judged against
    the node's enforcement policy; a provisionally accepted deadline is asked
    about again once no fresh node remains.
    """

    def __init__(self, flow: FlowGraph):
        self.flow = flow
        self.resolver = EligibilityResolver(flow)

    def _pick(self, context: BackendContext) -> Tuple[Optional[FlowNode], bool]:
        """Next node to run, and whether it is a deadline follow-up.

        Fresh nodes come first; an open follow-up runs once nothing fresh is left.
        """
        follow_up = None
        for node_id in context.eligible_node_ids:
            if node_id not in context.ledger.executed_nodes:
                return self.flow.get_node(node_id), False
            if follow_up is None and node_id in context.ledger.pending_follow_ups:
                follow_up = node_id
        if follow_up is None:
            return None, False
        return self.flow.get_node(follow_up), True

    def _follow_up_step(self, node: FlowNode, context: BackendContext) -> BackendStep:
        enforcement = node.deadline_enforcement
        lens = self.resolver.lens_for(node, context.scenario)
        if enforcement is not None:
            enforcement = effective_enforcement(enforcement, lens)
            if context.user_message:
                verdict = evaluate_deadline(context.user_message, enforcement)
                if verdict.outcome is DeadlineOutcome.ACCEPT:
                    return BackendStep(
                        node_id=node.id,
                        agent_message=f"({node.title or KIND_LABELS[node.kind]})",
                        decision=TurnDecision(
                            execution_decision=ExecutionDecision.ADVANCE,
                            reasoning=f"Deadline narrowed to a {verdict.form.value.lower()}",
                        ),
                    )
        prompt = (enforcement.prompt_on_violation if enforcement else None) or DEFAULT_NARROWING_PROMPT
        return BackendStep(
            node_id=node.id,
            agent_message=prompt,
            decision=TurnDecision(
                execution_decision=ExecutionDecision.STALL,
                reasoning="Deadline follow-up: asking for a specific date",
            ),
        )

    def _lens_facts(self, node: FlowNode, scenario: ScenarioContext) -> FrozenSet[str]:
        lens = self.resolver.lens_for(node, scenario)
        if lens is None:
            return frozenset()
        questions = self.resolver.resolve_questions_for_baseline(node, lens)
        return frozenset(q for q in questions if not q.endswith("?"))

    def next_step(self, context: BackendContext) -> BackendStep:
        node, follow_up = self._pick(context)
        if node is None:
            return BackendStep(
                agent_message="(no eligible moment)",
                decision=TurnDecision(execution_decision=ExecutionDecision.STALL, reasoning="No eligible node"),
            )
        if follow_up:
            return self._follow_up_step(node, context)

        facts = set(node.satisfies.metrics)
        if node.kind is NodeKind.BASELINE_CAPTURE:
            facts |= self._lens_facts(node, context.scenario)

        decision = ExecutionDecision.HANDOFF if node.kind is NodeKind.HANDOFF else ExecutionDecision.ADVANCE
        reasoning = f"{KIND_LABELS[node.kind]}: first eligible node"
        readiness: Tuple[str, ...] = ()

        if node.kind is NodeKind.DEADLINE_CAPTURE and node.deadline_enforcement and context.user_message:
            enforcement = effective_enforcement(
                node.deadline_enforcement, self.resolver.lens_for(node, context.scenario)
            )
            verdict = evaluate_deadline(context.user_message, enforcement)
            if verdict.outcome is DeadlineOutcome.REJECT:
                return BackendStep(
                    node_id=node.id,
                    agent_message=verdict.prompt,
                    decision=TurnDecision(
                        execution_decision=ExecutionDecision.STALL,
                        reasoning=f"Deadline answer is a {verdict.form.value.lower()}; asking again",
                    ),
                )
            if verdict.needs_follow_up:
                reasoning = f"Deadline accepted provisionally ({verdict.form.value.lower()}); follow up"
                readiness = (DEADLINE_FOLLOW_UP,)

        return BackendStep(
            node_id=node.id,
            agent_message=f"({node.title or KIND_LABELS[node.kind]})",
            decision=TurnDecision(
                execution_decision=decision,
                reasoning=reasoning,
                newly_known_facts=frozenset(facts),
                readiness_delta=readiness,
            ),
            satisfied_gates=node.satisfies.gates,
            satisfied_facts=frozenset(facts),
            satisfied_states=node.satisfies.states,
        )


__all__ = ["BackendContext", "BackendStep", "ScriptedBackend", "TurnBackend"]
