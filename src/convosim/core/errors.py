"""Exception taxonomy for the simulator core.

Structural violations (``NotALeaf``, unknown ids) are programming errors and
propagate straight to the caller. ``IneligibleNode`` is an expected condition
the caller uses to decide what to prompt for next.
"""

from __future__ import annotations

from typing import Iterable, List


class SimulatorError(RuntimeError):
    """Base class for all simulator core errors."""


class UnknownTurn(SimulatorError, KeyError):
    def __init__(self, turn_id: str):
        self.turn_id = turn_id
        super().__init__(f"Unknown turn: {turn_id}")

    def __str__(self) -> str:
        return self.args[0]


class UnknownBranch(SimulatorError, KeyError):
    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__(f"Unknown branch: {branch_id}")

    def __str__(self) -> str:
        return self.args[0]


class EmptyBranch(SimulatorError):
    """The branch exists but no turn has been appended to it yet."""

    def __init__(self, branch_id: str):
        self.branch_id = branch_id
        super().__init__(f"Branch has no turns yet: {branch_id}")


class NotALeaf(SimulatorError):
    """Ordinary continuation was attempted on a turn that already has children."""

    def __init__(self, turn_id: str, child_ids: Iterable[str] = ()):
        self.turn_id = turn_id
        self.child_ids = list(child_ids)
        children = ", ".join(self.child_ids) or "?"
        super().__init__(f"Turn {turn_id} is not a leaf (children: {children}); fork instead")


class UnresolvableLane(SimulatorError):
    """A node kind the resolver does not know. Configuration defect."""

    def __init__(self, node_id: str, kind: object):
        self.node_id = node_id
        self.kind = kind
        super().__init__(f"Cannot resolve lane for node '{node_id}': unrecognized kind {kind!r}")


class IneligibleNode(SimulatorError):
    """Execution of a node whose requirements are not met."""

    def __init__(self, node_id: str, reasons: List[str]):
        self.node_id = node_id
        self.reasons = list(reasons)
        detail = "; ".join(self.reasons) or "requirements not met"
        super().__init__(f"Node '{node_id}' is not eligible: {detail}")


class StepCancelled(SimulatorError):
    """A pending step was cancelled before its turn was linked into the run."""


__all__ = [
    "EmptyBranch",
    "IneligibleNode",
    "NotALeaf",
    "SimulatorError",
    "StepCancelled",
    "UnknownBranch",
    "UnknownTurn",
    "UnresolvableLane",
]
