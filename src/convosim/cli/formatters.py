"""Formatting helpers for CLI presentation."""

from __future__ import annotations

from typing import Iterable, List

from rich.table import Table

from convosim.core.eligibility.lanes import LANE_CONFIG, group_by_lane
from convosim.core.eligibility.ledger import Ledger
from convosim.core.eligibility.resolver import EligibilityResolver
from convosim.core.flow.models import KIND_LABELS, FlowGraph, FlowNode
from convosim.core.tree.models import Turn


def format_requires(node: FlowNode) -> str:
    parts = [gate.value for gate in sorted(node.requires.gates)]
    parts.extend(sorted(node.requires.facts))
    return ", ".join(parts) or "-"


def format_satisfies(node: FlowNode) -> str:
    declared = node.satisfies
    parts = [gate.value for gate in sorted(declared.gates)]
    parts.extend(sorted(declared.metrics))
    parts.extend(sorted(declared.states))
    return ", ".join(parts) or "-"


def format_ledger(ledger: Ledger) -> str:
    return ledger.describe()


def build_lanes_table(flow: FlowGraph) -> Table:
    table = Table(title=f"Lanes: {flow.name or flow.id}", show_header=True, header_style="bold blue")
    table.add_column("Lane", style="cyan")
    table.add_column("Node")
    table.add_column("Kind", style="dim")
    table.add_column("Requires", style="yellow")
    table.add_column("Satisfies", style="green")

    for lane, nodes in group_by_lane(flow.nodes).items():
        label = LANE_CONFIG[lane].label
        if not nodes:
            table.add_row(label, "[dim]-[/dim]", "", "", "")
            continue
        for index, node in enumerate(nodes):
            table.add_row(
                label if index == 0 else "",
                node.id,
                KIND_LABELS[node.kind],
                format_requires(node),
                format_satisfies(node),
            )
    return table


def build_eligibility_table(
    flow: FlowGraph, resolver: EligibilityResolver, ledger: Ledger, eligible: Iterable[FlowNode]
) -> Table:
    eligible_ids = {node.id for node in eligible}
    table = Table(title="Eligibility")
    table.add_column("Node")
    table.add_column("Importance", style="dim")
    table.add_column("Eligible")
    table.add_column("Missing")
    for node in flow.nodes:
        ok = node.id in eligible_ids
        reasons: List[str] = resolver.why_ineligible(node, ledger) or resolver.scenario_blocks(node, ledger)
        table.add_row(
            node.id,
            node.importance,
            "[green]yes[/green]" if ok else "[red]no[/red]",
            "" if ok else "; ".join(reasons),
        )
    return table


def build_turns_table(turns: Iterable[Turn], title: str = "Turns") -> Table:
    table = Table(title=title)
    table.add_column("Turn")
    table.add_column("Branch", style="cyan")
    table.add_column("Node")
    table.add_column("Decision")
    table.add_column("User", style="dim")
    for turn in turns:
        table.add_row(
            f"{turn.turn_number} ({turn.turn_id})",
            turn.branch_id,
            turn.node_id or "-",
            turn.decision.execution_decision.value if turn.parent_turn_id else "START",
            turn.snippet(40) if turn.user_message else "",
        )
    return table


__all__ = [
    "build_eligibility_table",
    "build_lanes_table",
    "build_turns_table",
    "format_ledger",
    "format_requires",
    "format_satisfies",
]
