"""
Playback session.

Owns one SimulationRun together with the resolver and the turn backend, and
exposes the operator actions: select a turn, select a branch, send a message.
Sending from a leaf continues it; sending from any other turn forks a new
branch at that turn first.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from convosim.core.eligibility.ledger import Ledger
from convosim.core.eligibility.resolver import EligibilityResolver
from convosim.core.errors import EmptyBranch, IneligibleNode, SimulatorError
from convosim.core.flow.models import FlowGraph, FlowNode
from convosim.core.playback.backend import BackendContext, TurnBackend
from convosim.core.tree.models import Branch, ScenarioContext, SimulationRun, Turn, TurnPayload

logger = logging.getLogger(__name__)


def default_fork_label(turn: Turn) -> str:
    return f"Alternate Reply from Turn {turn.turn_number}"


class PlaybackSession:
    """
    Interactive driver over a single run.

    The backend call is the only point where control leaves the session.
    A turn is linked only after the backend has returned and the chosen node
    has been checked against the replayed ledger, so a failing or cancelled
    step leaves the run exactly as it was.
    """

    def __init__(
        self,
        flow: FlowGraph,
        run: SimulationRun,
        backend: TurnBackend,
        resolver: Optional[EligibilityResolver] = None,
    ):
        self.flow = flow
        self._run = run
        self.backend = backend
        self.resolver = resolver or EligibilityResolver(flow)

    @classmethod
    def start(
        cls,
        flow: FlowGraph,
        backend: TurnBackend,
        *,
        run_id: Optional[str] = None,
        scenario: Optional[ScenarioContext] = None,
    ) -> "PlaybackSession":
        """Create a fresh run with its root turn and open a session on it."""
        run = SimulationRun(
            run_id=run_id or f"run-{uuid.uuid4().hex[:8]}",
            flow_id=flow.id,
            scenario=scenario or ScenarioContext(),
        )
        run.start()
        logger.info("Started run %s on flow %s", run.run_id, flow.id)
        return cls(flow, run, backend)

    # =========================================================================
    # Read accessors
    # =========================================================================

    @property
    def run(self) -> SimulationRun:
        return self._run

    @property
    def active_branch(self) -> Branch:
        if self._run.active_branch_id is None:
            raise SimulatorError(f"Run {self._run.run_id} has not been started")
        return self._run.get_branch(self._run.active_branch_id)

    @property
    def selected_turn(self) -> Turn:
        if self._run.selected_turn_id is None:
            raise SimulatorError(f"Run {self._run.run_id} has not been started")
        return self._run.get_turn(self._run.selected_turn_id)

    def ledger_at(self, turn_id: Optional[str] = None) -> Ledger:
        target = turn_id or self.selected_turn.turn_id
        return self.resolver.replay(self._run.path_to(target))

    def known_so_far(self) -> Ledger:
        return self.ledger_at()

    def still_needed(self) -> List[str]:
        return self.resolver.still_needed(self.ledger_at())

    def goal_reached(self) -> bool:
        return self.resolver.goal_reached(self.ledger_at())

    def eligible_now(self) -> List[FlowNode]:
        return self.resolver.eligible_nodes(self.ledger_at(), self._run.scenario)

    def is_leaf_node(self, turn_id: Optional[str] = None) -> bool:
        return self._run.is_leaf(turn_id or self.selected_turn.turn_id)

    # =========================================================================
    # Selection
    # =========================================================================

    def select_turn(self, turn_id: str) -> Turn:
        turn = self._run.get_turn(turn_id)
        self._run.selected_turn_id = turn.turn_id
        self._run.active_branch_id = turn.branch_id
        return turn

    def select_branch(self, branch_id: str) -> Turn:
        branch = self._run.get_branch(branch_id)
        if branch.tip_turn_id is None:
            raise EmptyBranch(branch_id)
        self._run.active_branch_id = branch.branch_id
        self._run.selected_turn_id = branch.tip_turn_id
        return self._run.get_turn(branch.tip_turn_id)

    # =========================================================================
    # Sending
    # =========================================================================

    def send(self, user_message: Optional[str], fork_label: Optional[str] = None) -> Turn:
        """
        Send a user message from the selected turn.

        Args:
            user_message: Simulated user text (None for an agent-initiated step)
            fork_label: Label for the new branch when the selected turn is not a leaf

        Returns:
            The newly linked turn (now selected)

        Raises:
            IneligibleNode: If the backend chose a node that is not reachable
            StepCancelled: If the backend step was cancelled
        """
        parent = self.selected_turn
        path = self._run.path_to(parent.turn_id)
        ledger = self.resolver.replay(path)
        eligible = self.resolver.eligible_nodes(ledger, self._run.scenario)

        context = BackendContext(
            flow_id=self.flow.id,
            user_message=user_message,
            parent_turn=parent,
            path=tuple(path),
            ledger=ledger,
            eligible_node_ids=tuple(node.id for node in eligible),
            scenario=self._run.scenario,
        )
        step = self.backend.next_step(context)

        node_kind = None
        if step.node_id is not None:
            if not self.flow.has_node(step.node_id):
                raise IneligibleNode(step.node_id, ["unknown node"])
            node = self.flow.get_node(step.node_id)
            self.resolver.require_eligible(node, ledger, self._run.scenario)
            node_kind = node.kind

        payload: TurnPayload = step.to_payload(user_message, node_kind)
        if self._run.is_leaf(parent.turn_id):
            turn = self._run.append_turn(parent.turn_id, payload)
        else:
            label = fork_label or default_fork_label(parent)
            _, turn = self._run.fork_and_append(parent.turn_id, label, payload)
            logger.info("Forked %s at %s as %s", turn.branch_id, parent.turn_id, label)

        self._run.active_branch_id = turn.branch_id
        self._run.selected_turn_id = turn.turn_id
        return turn


__all__ = ["PlaybackSession", "default_fork_label"]
