"""
Progressive disclosure of a run's turn tree.

The outline is a pure projection of (turn set, disclosure state). The state
is a frozen set of collapse keys plus the selected turn:

    divergence:<turnId>      divergence whose child paths are hidden
    linearRun:<startTurnId>  long linear run folded to its edges

Collapse keys never live on the turns themselves; they can be discarded and
recomputed with ``initial_state`` at any time.

Example (9-turn linear run, threshold 6, edges 2):
    turn0
    turn1
    ... Show 5 more (turn2 .. turn6)
    turn7
    turn8
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from convosim.core.tree.models import ExecutionDecision, SimulationRun, Turn, child_index

DIVERGENCE_PREFIX = "divergence:"
LINEAR_RUN_PREFIX = "linearRun:"

_PATH_SNIPPET = 25


class DisclosurePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    linear_fold_threshold: int = Field(default=6, ge=1)  # Fold linear runs longer than this
    fold_show_edges: int = Field(default=2, ge=1)  # Turns kept visible at each end of a fold
    auto_collapse_depth: int = Field(default=2, ge=0)  # Divergences deeper than this start collapsed

    def folds(self, run_length: int) -> bool:
        return run_length > max(self.linear_fold_threshold, 2 * self.fold_show_edges)


class DisclosureState(BaseModel):
    model_config = ConfigDict(frozen=True)

    collapsed: FrozenSet[str] = frozenset()
    selected_turn_id: Optional[str] = None

    def is_collapsed(self, key: str) -> bool:
        return key in self.collapsed


def divergence_key(turn_id: str) -> str:
    return f"{DIVERGENCE_PREFIX}{turn_id}"


def linear_run_key(start_turn_id: str) -> str:
    return f"{LINEAR_RUN_PREFIX}{start_turn_id}"


# =============================================================================
# Tree shape
# =============================================================================


class _Shape:
    """Derived child index over a run, rebuilt per call."""

    def __init__(self, run: SimulationRun):
        self.run = run
        self.children: Dict[Optional[str], List[str]] = child_index(run.turns)

    def kids(self, turn_id: str) -> List[str]:
        return self.children.get(turn_id, [])

    def is_divergence(self, turn_id: str) -> bool:
        return len(self.kids(turn_id)) > 1

    def roots(self) -> List[str]:
        return self.children.get(None, [])

    def linear_run(self, start_turn_id: str) -> List[str]:
        """Chain from ``start_turn_id`` while each turn has exactly one child.

        Stops before a divergence; a terminal leaf is part of the run.
        """
        chain = [start_turn_id]
        current = start_turn_id
        while len(self.kids(current)) == 1:
            child = self.kids(current)[0]
            if self.is_divergence(child):
                break
            chain.append(child)
            current = child
        return chain

    def linear_runs(self) -> List[List[str]]:
        runs: List[List[str]] = []
        pending = list(self.roots())
        while pending:
            turn_id = pending.pop(0)
            if self.is_divergence(turn_id):
                pending.extend(self.kids(turn_id))
                continue
            chain = self.linear_run(turn_id)
            runs.append(chain)
            pending.extend(self.kids(chain[-1]))
        return runs

    def divergences(self) -> List[str]:
        return [tid for tid, kids in self.children.items() if tid is not None and len(kids) > 1]

    def subtree_size(self, turn_id: str) -> int:
        size = 0
        stack = [turn_id]
        while stack:
            current = stack.pop()
            size += 1
            stack.extend(self.kids(current))
        return size

    def ancestry(self, turn_id: Optional[str]) -> Set[str]:
        if turn_id is None or not self.run.has_turn(turn_id):
            return set()
        return {turn.turn_id for turn in self.run.path_to(turn_id)}


def _hidden_by_fold(chain: List[str], policy: DisclosurePolicy) -> List[str]:
    edges = policy.fold_show_edges
    return chain[edges:-edges]


def _folds_hiding(shape: _Shape, turn_id: Optional[str], policy: DisclosurePolicy) -> Set[str]:
    if turn_id is None:
        return set()
    keys = set()
    for chain in shape.linear_runs():
        if policy.folds(len(chain)) and turn_id in _hidden_by_fold(chain, policy):
            keys.add(linear_run_key(chain[0]))
    return keys


# =============================================================================
# State transitions
# =============================================================================


def initial_state(
    run: SimulationRun,
    policy: Optional[DisclosurePolicy] = None,
    selected_turn_id: Optional[str] = None,
) -> DisclosureState:
    """Default collapse set for a run.

    Deep divergences start collapsed and long linear runs start folded,
    except where that would hide the selected turn.
    """
    policy = policy or DisclosurePolicy()
    shape = _Shape(run)
    selected = selected_turn_id or run.selected_turn_id
    ancestry = shape.ancestry(selected)

    collapsed: Set[str] = set()
    for turn_id in shape.divergences():
        if run.get_turn(turn_id).turn_number > policy.auto_collapse_depth and turn_id not in ancestry:
            collapsed.add(divergence_key(turn_id))
    for chain in shape.linear_runs():
        if policy.folds(len(chain)):
            collapsed.add(linear_run_key(chain[0]))
    collapsed -= _folds_hiding(shape, selected, policy)

    return DisclosureState(collapsed=frozenset(collapsed), selected_turn_id=selected)


def select(
    state: DisclosureState,
    run: SimulationRun,
    turn_id: str,
    policy: Optional[DisclosurePolicy] = None,
) -> DisclosureState:
    """Select a turn, forcing open every divergence on its path and any fold hiding it."""
    policy = policy or DisclosurePolicy()
    shape = _Shape(run)
    run.get_turn(turn_id)
    opened = {divergence_key(tid) for tid in shape.ancestry(turn_id)}
    opened |= _folds_hiding(shape, turn_id, policy)
    return DisclosureState(collapsed=state.collapsed - opened, selected_turn_id=turn_id)


def toggle(state: DisclosureState, key: str) -> DisclosureState:
    return state.model_copy(update={"collapsed": state.collapsed ^ {key}})


def expand_all(state: DisclosureState) -> DisclosureState:
    return state.model_copy(update={"collapsed": frozenset()})


def collapse_all(state: DisclosureState, run: SimulationRun) -> DisclosureState:
    """Collapse every divergence except those on the path to the selection."""
    shape = _Shape(run)
    ancestry = shape.ancestry(state.selected_turn_id)
    collapsed = frozenset(divergence_key(tid) for tid in shape.divergences() if tid not in ancestry)
    return state.model_copy(update={"collapsed": collapsed})


# =============================================================================
# Outline
# =============================================================================


class TurnItem(BaseModel):
    kind: Literal["turn"] = "turn"
    turn_id: str
    turn_number: int
    branch_id: str
    depth: int
    label: str
    decision: Optional[ExecutionDecision] = None  # None for the root turn
    selected: bool = False
    fold_key: Optional[str] = None  # Set on the first turn of an unfolded long run
    fold_size: Optional[int] = None

    @property
    def fold_label(self) -> Optional[str]:
        return f"Fold {self.fold_size} turns" if self.fold_key else None


class FoldMarker(BaseModel):
    kind: Literal["fold"] = "fold"
    key: str
    depth: int
    hidden_turn_ids: List[str]

    @property
    def label(self) -> str:
        return f"Show {len(self.hidden_turn_ids)} more"


class DivergencePath(BaseModel):
    label: str
    branch_id: str
    items: List["OutlineItem"] = Field(default_factory=list)


class DivergenceItem(BaseModel):
    kind: Literal["divergence"] = "divergence"
    key: str
    turn: TurnItem
    collapsed: bool
    path_count: int
    hidden_turn_count: int = 0
    paths: List[DivergencePath] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.collapsed:
            return f"Collapsed: {self.path_count} paths, {self.hidden_turn_count} turns hidden"
        return f"{self.path_count} paths"


OutlineItem = Union[TurnItem, FoldMarker, DivergenceItem]

DivergencePath.model_rebuild()
DivergenceItem.model_rebuild()


def _path_label(turn: Turn, index: int) -> str:
    text = turn.user_message if turn.user_message else turn.agent_message
    if text:
        snippet = text if len(text) <= _PATH_SNIPPET else text[:_PATH_SNIPPET] + "..."
        return f'"{snippet}"' if index == 0 else f'Alt: "{snippet}"'
    return "Main path" if index == 0 else f"Path {index + 1}"


class _OutlineBuilder:
    def __init__(self, run: SimulationRun, state: DisclosureState, policy: DisclosurePolicy):
        self.run = run
        self.state = state
        self.policy = policy
        self.shape = _Shape(run)

    def turn_item(self, turn_id: str, depth: int, **extra) -> TurnItem:
        turn = self.run.get_turn(turn_id)
        return TurnItem(
            turn_id=turn.turn_id,
            turn_number=turn.turn_number,
            branch_id=turn.branch_id,
            depth=depth,
            label=turn.describe(),
            decision=None if turn.is_root else turn.decision.execution_decision,
            selected=turn.turn_id == self.state.selected_turn_id,
            **extra,
        )

    def build(self, turn_id: str, depth: int) -> List[OutlineItem]:
        if self.shape.is_divergence(turn_id):
            return [self.divergence(turn_id, depth)]

        chain = self.shape.linear_run(turn_id)
        items: List[OutlineItem] = []
        if self.policy.folds(len(chain)):
            key = linear_run_key(chain[0])
            edges = self.policy.fold_show_edges
            if self.state.is_collapsed(key):
                items.extend(self.turn_item(tid, depth) for tid in chain[:edges])
                items.append(FoldMarker(key=key, depth=depth, hidden_turn_ids=_hidden_by_fold(chain, self.policy)))
                items.extend(self.turn_item(tid, depth) for tid in chain[-edges:])
            else:
                items.append(self.turn_item(chain[0], depth, fold_key=key, fold_size=len(chain)))
                items.extend(self.turn_item(tid, depth) for tid in chain[1:])
        else:
            items.extend(self.turn_item(tid, depth) for tid in chain)

        # A run ends at a leaf or just before a divergence
        for child in self.shape.kids(chain[-1]):
            items.extend(self.build(child, depth))
        return items

    def divergence(self, turn_id: str, depth: int) -> DivergenceItem:
        key = divergence_key(turn_id)
        kids = self.shape.kids(turn_id)
        collapsed = self.state.is_collapsed(key)
        paths: List[DivergencePath] = []
        if not collapsed:
            for index, child_id in enumerate(kids):
                child = self.run.get_turn(child_id)
                paths.append(
                    DivergencePath(
                        label=_path_label(child, index),
                        branch_id=child.branch_id,
                        items=self.build(child_id, depth + 1),
                    )
                )
        return DivergenceItem(
            key=key,
            turn=self.turn_item(turn_id, depth),
            collapsed=collapsed,
            path_count=len(kids),
            hidden_turn_count=self.shape.subtree_size(turn_id) - 1 if collapsed else 0,
            paths=paths,
        )


def build_outline(
    run: SimulationRun,
    state: Optional[DisclosureState] = None,
    policy: Optional[DisclosurePolicy] = None,
) -> List[OutlineItem]:
    """
    Compute the renderable outline of a run.

    Args:
        run: Simulation run
        state: Disclosure state (defaults to ``initial_state``)
        policy: Fold and collapse thresholds

    Returns:
        Ordered, nested outline items
    """
    policy = policy or DisclosurePolicy()
    state = state or initial_state(run, policy)
    builder = _OutlineBuilder(run, state, policy)
    items: List[OutlineItem] = []
    for root_id in builder.shape.roots():
        items.extend(builder.build(root_id, 0))
    return items


def visible_turn_ids(items: List[OutlineItem]) -> List[str]:
    """Turn ids rendered by an outline, in display order."""
    visible: List[str] = []
    for item in items:
        if isinstance(item, TurnItem):
            visible.append(item.turn_id)
        elif isinstance(item, DivergenceItem):
            visible.append(item.turn.turn_id)
            for path in item.paths:
                visible.extend(visible_turn_ids(path.items))
    return visible


__all__ = [
    "DisclosurePolicy",
    "DisclosureState",
    "DivergenceItem",
    "DivergencePath",
    "FoldMarker",
    "OutlineItem",
    "TurnItem",
    "build_outline",
    "collapse_all",
    "divergence_key",
    "expand_all",
    "initial_state",
    "linear_run_key",
    "select",
    "toggle",
    "visible_turn_ids",
]
