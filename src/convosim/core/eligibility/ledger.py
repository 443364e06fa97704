from __future__ import annotations

from typing import FrozenSet, Iterable

from pydantic import BaseModel, ConfigDict

from convosim.core.flow.models import Gate


class Ledger(BaseModel):
    """Gates, facts and states known at a point in a branch.

    Always derived by replaying a root-to-turn path; never stored on a turn.
    ``executed_nodes`` records which flow nodes ran on that path so that
    requirements naming another node, and ``max_runs: once``, can be honoured.
    ``pending_follow_ups`` lists deadline nodes accepted provisionally whose
    specific date is still to be asked for.
    """

    model_config = ConfigDict(frozen=True)

    gates: FrozenSet[Gate] = frozenset()
    facts: FrozenSet[str] = frozenset()
    states: FrozenSet[str] = frozenset()
    executed_nodes: FrozenSet[str] = frozenset()
    pending_follow_ups: FrozenSet[str] = frozenset()

    @classmethod
    def empty(cls) -> "Ledger":
        return cls()

    def with_additions(
        self,
        gates: Iterable[Gate] = (),
        facts: Iterable[str] = (),
        states: Iterable[str] = (),
        executed_nodes: Iterable[str] = (),
    ) -> "Ledger":
        return Ledger(
            gates=self.gates | frozenset(gates),
            facts=self.facts | frozenset(facts),
            states=self.states | frozenset(states),
            executed_nodes=self.executed_nodes | frozenset(executed_nodes),
            pending_follow_ups=self.pending_follow_ups,
        )

    def with_follow_up(self, node_id: str, pending: bool) -> "Ledger":
        follow_ups = self.pending_follow_ups | {node_id} if pending else self.pending_follow_ups - {node_id}
        return self.model_copy(update={"pending_follow_ups": follow_ups})

    def has_gate(self, gate: Gate) -> bool:
        return gate in self.gates

    def knows(self, fact: str) -> bool:
        return fact in self.facts or fact in self.states or fact in self.executed_nodes

    def describe(self) -> str:
        gates = ", ".join(sorted(g.value for g in self.gates)) or "-"
        facts = ", ".join(sorted(self.facts)) or "-"
        return f"gates: {gates} | facts: {facts}"


__all__ = ["Ledger"]
