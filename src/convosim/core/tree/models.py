"""
Execution tree data models.

A simulation run is an append-only tree of turns linked by parent references:
- Turn: one executed step of the conversation (immutable once created)
- Branch: a named view from the run root to a designated tip turn
- SimulationRun: every turn across every branch, plus the active branch and
  the selected turn

Children are never stored on a turn. They are discovered by scanning for
``parent_turn_id`` so that forking is O(1) and history immutability is
structural. ``child_index`` builds a derived, recomputable index for readers
that need to walk the tree top-down.

Tree Structure:
    turn0 (root, main)
    └── turn1 (main)
        ├── turn2 (main)          <- tip of "main"
        └── turn3 (alt)           <- fork from turn1, tip of "alt"
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from convosim.core.errors import EmptyBranch, NotALeaf, SimulatorError, UnknownBranch, UnknownTurn
from convosim.core.flow.models import Gate, NodeKind

logger = logging.getLogger(__name__)

MAIN_BRANCH_ID = "main"


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class ExecutionDecision(str, Enum):
    """Decision emitted by the backend for a turn."""

    ADVANCE = "ADVANCE"
    STALL = "STALL"
    EXPLAIN = "EXPLAIN"
    FAST_TRACK = "FAST_TRACK"
    HANDOFF = "HANDOFF"
    NO_OP = "NO_OP"


class TurnStatus(str, Enum):
    VALID = "VALID"
    DRIFTED = "DRIFTED"  # Flow design changed since the turn was recorded
    INVALID = "INVALID"


class AffectScalars(BaseModel):
    model_config = ConfigDict(frozen=True)

    pain: float = Field(default=0.0, ge=0, le=10)
    urgency: float = Field(default=0.0, ge=0, le=10)
    vulnerability: float = Field(default=0.0, ge=0, le=10)


class TurnDecision(BaseModel):
    """Backend decision for a turn, stored verbatim."""

    model_config = ConfigDict(frozen=True)

    execution_decision: ExecutionDecision = ExecutionDecision.ADVANCE
    reasoning: str = ""
    newly_known_facts: FrozenSet[str] = frozenset()
    affect: AffectScalars = Field(default_factory=AffectScalars)
    readiness_delta: Tuple[str, ...] = ()


class TurnPayload(BaseModel):
    """Everything a caller supplies to create a turn. Structure is assigned by the run."""

    model_config = ConfigDict(frozen=True)

    node_id: Optional[str] = None
    node_kind: Optional[NodeKind] = None
    user_message: Optional[str] = None
    agent_message: Optional[str] = None
    decision: TurnDecision = Field(default_factory=TurnDecision)
    satisfied_gates: FrozenSet[Gate] = frozenset()
    satisfied_facts: FrozenSet[str] = frozenset()
    satisfied_states: FrozenSet[str] = frozenset()
    status: TurnStatus = TurnStatus.VALID


class Turn(TurnPayload):
    """
    One step of the simulated conversation.

    Created exactly once and never mutated. "Editing the past" is expressed
    only as a new turn, on a new branch, whose parent is the edited turn.
    """

    turn_id: str
    turn_number: int = Field(ge=0)
    branch_id: str
    parent_turn_id: Optional[str] = None
    sequence: int = Field(default=0, ge=0)  # Creation order within the run
    created_at: str = Field(default_factory=_now)

    @property
    def is_root(self) -> bool:
        return self.parent_turn_id is None

    def snippet(self, limit: int = 60) -> str:
        text = self.user_message if self.user_message is not None else (self.agent_message or "")
        return text if len(text) <= limit else text[:limit] + "..."

    def describe(self) -> str:
        if self.is_root:
            return f"[{self.turn_id}] Start"
        decision = self.decision.execution_decision.value
        node = f" {self.node_id}" if self.node_id else ""
        return f"[{self.turn_id}] T{self.turn_number}{node} ({decision})"


class Branch(BaseModel):
    """A named path from the run root to ``tip_turn_id``.

    A freshly forked branch has no tip until its first turn is appended.
    """

    model_config = ConfigDict(frozen=True)

    branch_id: str
    label: str
    parent_branch_id: Optional[str] = None
    fork_from_turn_id: Optional[str] = None
    tip_turn_id: Optional[str] = None
    created_at: str = Field(default_factory=_now)

    @property
    def is_empty(self) -> bool:
        return self.tip_turn_id is None


class ScenarioContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str = "SMS"
    lead_state: str = "ANONYMOUS"
    goal_lens_id: Optional[str] = None  # Lens used by adaptive capture nodes


def child_index(turns: Dict[str, Turn]) -> Dict[Optional[str], List[str]]:
    """Derived parent -> children index, children ordered by creation.

    Recomputable at any time from the turn set; never authoritative.
    """
    index: Dict[Optional[str], List[str]] = {}
    for turn in sorted(turns.values(), key=lambda t: t.sequence):
        index.setdefault(turn.parent_turn_id, []).append(turn.turn_id)
    return index


def _slugify(label: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", label.strip().lower()).strip("-")
    return slug or "branch"


class SimulationRun(BaseModel):
    """
    Root aggregate for one simulation session.

    The run owns every turn of every branch. Mutations are limited to
    ``start``, ``append_turn``, ``append_to_branch``, ``fork_branch`` and
    ``fork_and_append``; each either fully succeeds or leaves the run
    untouched.
    """

    run_id: str
    flow_id: str = ""
    scenario: ScenarioContext = Field(default_factory=ScenarioContext)
    created_at: str = Field(default_factory=_now)

    root_turn_id: Optional[str] = None
    turns: Dict[str, Turn] = Field(default_factory=dict)
    branches: Dict[str, Branch] = Field(default_factory=dict)

    active_branch_id: Optional[str] = None
    selected_turn_id: Optional[str] = None

    # =========================================================================
    # Access
    # =========================================================================

    def get_turn(self, turn_id: str) -> Turn:
        try:
            return self.turns[turn_id]
        except KeyError:
            raise UnknownTurn(turn_id) from None

    def get_branch(self, branch_id: str) -> Branch:
        try:
            return self.branches[branch_id]
        except KeyError:
            raise UnknownBranch(branch_id) from None

    def has_turn(self, turn_id: str) -> bool:
        return turn_id in self.turns

    # =========================================================================
    # Structure queries
    # =========================================================================

    def children_of(self, turn_id: str) -> List[Turn]:
        """All turns declaring ``turn_id`` as parent, in creation order."""
        self.get_turn(turn_id)
        children = [t for t in self.turns.values() if t.parent_turn_id == turn_id]
        return sorted(children, key=lambda t: t.sequence)

    def is_leaf(self, turn_id: str) -> bool:
        """True iff no turn in the run has ``turn_id`` as parent. Never cached."""
        self.get_turn(turn_id)
        return not any(t.parent_turn_id == turn_id for t in self.turns.values())

    def is_divergence(self, turn_id: str) -> bool:
        return len(self.children_of(turn_id)) > 1

    def path_to(self, turn_id: str) -> List[Turn]:
        """Turns from the run root down to ``turn_id`` inclusive."""
        path: List[Turn] = []
        current: Optional[str] = turn_id
        while current is not None:
            turn = self.get_turn(current)
            path.append(turn)
            current = turn.parent_turn_id
        path.reverse()
        return path

    def turns_for_branch(self, branch_id: str) -> List[Turn]:
        """Walk from the branch tip to the root and reverse."""
        branch = self.get_branch(branch_id)
        if branch.tip_turn_id is None:
            raise EmptyBranch(branch_id)
        return self.path_to(branch.tip_turn_id)

    def get_leaves(self) -> List[Turn]:
        parents = {t.parent_turn_id for t in self.turns.values()}
        return [t for t in sorted(self.turns.values(), key=lambda t: t.sequence) if t.turn_id not in parents]

    def get_divergences(self) -> List[Turn]:
        index = child_index(self.turns)
        return [self.turns[tid] for tid, kids in index.items() if tid is not None and len(kids) > 1]

    # =========================================================================
    # Mutations
    # =========================================================================

    def start(self, payload: Optional[TurnPayload] = None, *, label: str = "Main") -> Turn:
        """Create the run root (turn 0) on the main branch."""
        if self.root_turn_id is not None:
            raise SimulatorError(f"Run {self.run_id} already started at {self.root_turn_id}")
        branch = Branch(branch_id=MAIN_BRANCH_ID, label=label)
        root = self._build_turn(payload or TurnPayload(), branch_id=branch.branch_id, parent=None)
        self._link(root, branch)
        self.root_turn_id = root.turn_id
        self.active_branch_id = branch.branch_id
        self.selected_turn_id = root.turn_id
        return root

    def append_turn(self, parent_turn_id: str, payload: TurnPayload) -> Turn:
        """Ordinary continuation. The parent must be a leaf."""
        parent = self.get_turn(parent_turn_id)
        children = self.children_of(parent_turn_id)
        if children:
            raise NotALeaf(parent_turn_id, [c.turn_id for c in children])
        branch = self.get_branch(parent.branch_id)
        turn = self._build_turn(payload, branch_id=branch.branch_id, parent=parent)
        self._link(turn, branch)
        return turn

    def fork_branch(self, from_turn_id: str, label: str) -> Branch:
        """Create an empty branch forked at any existing turn."""
        branch = self._build_branch(from_turn_id, label)
        self.branches[branch.branch_id] = branch
        logger.debug("Forked branch %s from %s", branch.branch_id, from_turn_id)
        return branch

    def append_to_branch(self, branch_id: str, payload: TurnPayload) -> Turn:
        """Continue a branch at its tip, or create the first turn of an empty fork."""
        branch = self.get_branch(branch_id)
        if branch.tip_turn_id is not None:
            return self.append_turn(branch.tip_turn_id, payload)
        if branch.fork_from_turn_id is None:
            raise EmptyBranch(branch_id)
        parent = self.get_turn(branch.fork_from_turn_id)
        turn = self._build_turn(payload, branch_id=branch.branch_id, parent=parent)
        self._link(turn, branch)
        return turn

    def fork_and_append(self, from_turn_id: str, label: str, payload: TurnPayload) -> Tuple[Branch, Turn]:
        """Fork at ``from_turn_id`` and append the first turn of the new branch atomically."""
        branch = self._build_branch(from_turn_id, label)
        parent = self.get_turn(from_turn_id)
        turn = self._build_turn(payload, branch_id=branch.branch_id, parent=parent)
        # Nothing is linked until both objects are fully built.
        self._link(turn, branch)
        logger.debug("Forked branch %s from %s with first turn %s", branch.branch_id, from_turn_id, turn.turn_id)
        return self.branches[branch.branch_id], turn

    # =========================================================================
    # Internals
    # =========================================================================

    def _next_turn_id(self) -> str:
        return f"turn{len(self.turns)}"

    def _next_branch_id(self, label: str) -> str:
        base = _slugify(label)
        candidate = base
        suffix = 2
        while candidate in self.branches:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def _build_branch(self, from_turn_id: str, label: str) -> Branch:
        source = self.get_turn(from_turn_id)
        return Branch(
            branch_id=self._next_branch_id(label),
            label=label,
            parent_branch_id=source.branch_id,
            fork_from_turn_id=from_turn_id,
        )

    def _build_turn(self, payload: TurnPayload, *, branch_id: str, parent: Optional[Turn]) -> Turn:
        return Turn(
            **payload.model_dump(),
            turn_id=self._next_turn_id(),
            turn_number=0 if parent is None else parent.turn_number + 1,
            branch_id=branch_id,
            parent_turn_id=None if parent is None else parent.turn_id,
            sequence=len(self.turns),
        )

    def _link(self, turn: Turn, branch: Branch) -> None:
        self.turns[turn.turn_id] = turn
        self.branches[branch.branch_id] = branch.model_copy(update={"tip_turn_id": turn.turn_id})
        logger.debug("Linked %s onto branch %s", turn.describe(), branch.branch_id)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_depth(self) -> int:
        if not self.turns:
            return 0
        return max(turn.turn_number for turn in self.turns.values()) + 1

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_turns": len(self.turns),
            "branches": len(self.branches),
            "leaves": len(self.get_leaves()),
            "divergences": len(self.get_divergences()),
            "depth": self.get_depth(),
        }


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
