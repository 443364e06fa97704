"""
Tree disclosure: a readable outline over a deep, wide run.

Components:
- DisclosurePolicy: fold and auto-collapse thresholds
- DisclosureState: collapse keys plus selection (pure transitions)
- build_outline: nested TurnItem / FoldMarker / DivergenceItem list
- render_outline: rich Tree for terminal display
"""

from convosim.core.disclosure.outline import (
    DisclosurePolicy,
    DisclosureState,
    DivergenceItem,
    DivergencePath,
    FoldMarker,
    OutlineItem,
    TurnItem,
    build_outline,
    collapse_all,
    divergence_key,
    expand_all,
    initial_state,
    linear_run_key,
    select,
    toggle,
    visible_turn_ids,
)
from convosim.core.disclosure.render import render_outline

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
    "render_outline",
    "select",
    "toggle",
    "visible_turn_ids",
]
