"""Rich rendering of disclosure outlines."""

from __future__ import annotations

from typing import List, Optional

from rich.text import Text
from rich.tree import Tree

from convosim.core.disclosure.outline import DivergenceItem, FoldMarker, OutlineItem, TurnItem
from convosim.core.tree.models import ExecutionDecision

_STATUS_STYLE = {
    ExecutionDecision.ADVANCE: "green",
    ExecutionDecision.STALL: "yellow",
    ExecutionDecision.EXPLAIN: "blue",
    ExecutionDecision.FAST_TRACK: "cyan",
    ExecutionDecision.HANDOFF: "magenta",
    ExecutionDecision.NO_OP: "dim",
}


def _turn_text(item: TurnItem) -> Text:
    style = "bold reverse" if item.selected else _STATUS_STYLE.get(item.decision, "")
    text = Text(item.label, style=style)
    if item.fold_label:
        text.append(f"  [{item.fold_label}]", style="dim")
    return text


def _add_items(parent: Tree, items: List[OutlineItem]) -> None:
    for item in items:
        if isinstance(item, TurnItem):
            parent.add(_turn_text(item))
        elif isinstance(item, FoldMarker):
            parent.add(Text(f"... {item.label}", style="dim italic"))
        elif isinstance(item, DivergenceItem):
            node = parent.add(_turn_text(item.turn))
            node.add(Text(item.summary, style="yellow"))
            for path in item.paths:
                branch = node.add(Text(path.label, style="bold yellow"))
                _add_items(branch, path.items)


def render_outline(items: List[OutlineItem], title: Optional[str] = None) -> Tree:
    """Build a rich Tree for an outline, ready for ``console.print``."""
    tree = Tree(Text(title or "Execution tree", style="bold"))
    _add_items(tree, items)
    return tree


__all__ = ["render_outline"]
