"""
Convosim CLI: validate flows, inspect lanes and eligibility, and simulate runs.

Runs are played by the deterministic scripted backend and saved as YAML
under outputs/runs; ``show-run`` renders a saved run as a folded outline.
"""

from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console

from convosim.cli.formatters import (
    build_eligibility_table,
    build_lanes_table,
    build_turns_table,
    format_ledger,
)
from convosim.cli.load_helpers import load_or_exit
from convosim.cli.paths import default_run_path, find_run_file, kb_flows_path, kb_lenses_path
from convosim.core.disclosure import (
    DisclosurePolicy,
    build_outline,
    expand_all,
    initial_state,
    render_outline,
    select,
)
from convosim.core.eligibility import DeadlineOutcome, EligibilityResolver, Ledger, evaluate_deadline
from convosim.core.errors import SimulatorError
from convosim.core.flow.models import DeadlineEnforcement, DeadlinePolicy, Gate, NarrowingStrategy
from convosim.core.registries import RegistryManager
from convosim.core.tree.models import ScenarioContext
from convosim.io.loaders import LoaderError, load_flows, load_lenses, load_run
from convosim.services import SimulationService
from convosim.utils.logging import configure_logging

_OUTCOME_COLORS = {
    DeadlineOutcome.ACCEPT: "green",
    DeadlineOutcome.ACCEPT_WITH_FOLLOW_UP: "yellow",
    DeadlineOutcome.REJECT: "red",
}

app = typer.Typer(help="Convosim CLI: validate flows, inspect eligibility, and simulate branching conversations.")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    configure_logging(verbose)


def _load_registries(flows: str | None, lenses: str | None, *, verbose_load: bool = False) -> RegistryManager:
    rm = RegistryManager()
    rm.register_defaults()
    load_or_exit(load_lenses, kb_lenses_path(lenses), rm, console=console, required=False, verbose_errors=verbose_load)
    load_or_exit(load_flows, kb_flows_path(flows), rm, console=console, verbose_errors=verbose_load)
    return rm


def _service(flows: str | None, lenses: str | None, policy: Optional[DisclosurePolicy] = None, **kwargs) -> SimulationService:
    return SimulationService(_load_registries(flows, lenses, **kwargs), policy=policy)


def _flow_or_exit(service: SimulationService, flow_id: str):
    try:
        return service.flow(flow_id)
    except KeyError:
        console.print(f"[red]Flow not found[/red]: {flow_id}")
        raise typer.Exit(code=2)


def _policy(fold_threshold: int, fold_edges: int, collapse_depth: int) -> DisclosurePolicy:
    return DisclosurePolicy(
        linear_fold_threshold=fold_threshold,
        fold_show_edges=fold_edges,
        auto_collapse_depth=collapse_depth,
    )


@app.command()
def validate(
    flows: str | None = typer.Argument(None, help="Path to kb/flows folder or a flow file"),
    lenses: str | None = typer.Option(None, help="Path to kb/lenses folder"),
    verbose: bool = typer.Option(False, "--verbose-load", help="Display full validation trace on loader errors"),
) -> None:
    """Validate authored flows."""
    rm = _load_registries(flows, lenses, verbose_load=verbose)

    console.print(f"[green]OK[/green] Loaded {len(list(rm.flows.all()))} flow(s)")
    console.print(f"[green]OK[/green] Loaded {len(list(rm.lenses.all()))} goal lens(es)")

    errors = SimulationService(rm).validate()
    if errors:
        console.print("[red]Validation errors detected:[/red]")
        for error in errors:
            console.print(f" - {error}")
        raise typer.Exit(code=1)

    console.print("[green]All validations passed[/green]")


@app.command()
def lanes(
    flow_id: str = typer.Argument(..., help="Flow id"),
    flows: str | None = typer.Option(None, help="Path to kb/flows folder or a flow file"),
    lenses: str | None = typer.Option(None, help="Path to kb/lenses folder"),
) -> None:
    """Show the nodes of a flow grouped by eligibility lane."""
    service = _service(flows, lenses)
    flow = _flow_or_exit(service, flow_id)
    try:
        console.print(build_lanes_table(flow))
    except SimulatorError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@app.command()
def eligible(
    flow_id: str = typer.Argument(..., help="Flow id"),
    facts: List[str] = typer.Option([], "--fact", "-f", help="Known fact id (repeatable)"),
    gates: List[str] = typer.Option([], "--gate", "-g", help="Satisfied gate (repeatable)"),
    states: List[str] = typer.Option([], "--state", "-s", help="Reached state (repeatable)"),
    channel: str = typer.Option("SMS", help="Scenario channel"),
    lead_state: str = typer.Option("ANONYMOUS", "--lead-state", help="Scenario lead state"),
    flows: str | None = typer.Option(None, help="Path to kb/flows folder or a flow file"),
    lenses: str | None = typer.Option(None, help="Path to kb/lenses folder"),
) -> None:
    """Show which nodes are eligible for a given set of facts and gates."""
    service = _service(flows, lenses)
    flow = _flow_or_exit(service, flow_id)
    try:
        gate_set = [Gate(name.upper()) for name in gates]
    except ValueError:
        console.print(f"[red]Unknown gate[/red] (expected one of {', '.join(g.value for g in Gate)})")
        raise typer.Exit(code=2)

    resolver = EligibilityResolver(flow)
    ledger = Ledger().with_additions(gates=gate_set, facts=flow.canonical_facts(facts), states=states)
    ledger = ledger.with_additions(gates=resolver.derive_gates(ledger.facts, ledger.states))
    scenario = ScenarioContext(channel=channel, lead_state=lead_state)
    nodes = resolver.eligible_nodes(ledger, scenario)

    console.print(f"[bold]Known:[/bold] {format_ledger(ledger)}")
    console.print(build_eligibility_table(flow, resolver, ledger, nodes))
    needed = resolver.still_needed(ledger)
    if needed:
        console.print(f"[yellow]Still needed for {flow.primary_goal.describe()}:[/yellow] {', '.join(needed)}")
    else:
        console.print(f"[green]Goal reached:[/green] {flow.primary_goal.describe()}")


@app.command()
def deadline(
    answer: str = typer.Argument(..., help="Deadline answer, e.g. 2026-03-15, 'early March', '3 months'"),
    policy: DeadlinePolicy = typer.Option(DeadlinePolicy.EXACT_DATE, help="Deadline policy"),
    narrowing: NarrowingStrategy = typer.Option(NarrowingStrategy.FOLLOW_UP, help="Narrowing strategy"),
) -> None:
    """Judge a deadline answer against a policy."""
    verdict = evaluate_deadline(answer, DeadlineEnforcement(policy=policy, narrowing_strategy=narrowing))
    color = _OUTCOME_COLORS[verdict.outcome]
    console.print(f"[bold]Form:[/bold] {verdict.form.value}")
    console.print(f"[bold]Outcome:[/bold] [{color}]{verdict.outcome.value}[/{color}]")
    if verdict.prompt:
        console.print(f"[bold]Ask:[/bold] {verdict.prompt}")


@app.command()
def simulate(
    flow_id: str = typer.Argument(..., help="Flow id"),
    messages: List[str] = typer.Argument(None, help="User messages, one per turn"),
    fork_at: Optional[int] = typer.Option(None, "--fork-at", help="Turn number on main to fork from afterwards"),
    fork_messages: List[str] = typer.Option([], "--fork-message", "-m", help="User message on the fork (repeatable)"),
    fork_label: Optional[str] = typer.Option(None, "--fork-label", help="Label of the forked branch"),
    run_name: Optional[str] = typer.Option(None, "--name", help="Run id / output file name"),
    channel: str = typer.Option("SMS", help="Scenario channel"),
    lead_state: str = typer.Option("ANONYMOUS", "--lead-state", help="Scenario lead state"),
    lens: Optional[str] = typer.Option(None, "--lens", help="Goal lens id for adaptive nodes"),
    fold_threshold: int = typer.Option(6, help="Fold linear runs longer than this"),
    fold_edges: int = typer.Option(2, help="Turns shown at each end of a fold"),
    collapse_depth: int = typer.Option(2, help="Collapse divergences deeper than this"),
    flows: str | None = typer.Option(None, help="Path to kb/flows folder or a flow file"),
    lenses: str | None = typer.Option(None, help="Path to kb/lenses folder"),
) -> None:
    """Simulate a scripted conversation and save the run."""
    policy = _policy(fold_threshold, fold_edges, collapse_depth)
    service = _service(flows, lenses, policy=policy)
    _flow_or_exit(service, flow_id)

    scenario = ScenarioContext(channel=channel, lead_state=lead_state, goal_lens_id=lens)
    try:
        run = service.run_script(
            flow_id,
            messages or [],
            scenario=scenario,
            run_id=run_name,
            fork_at=fork_at,
            fork_messages=fork_messages,
            fork_label=fork_label,
        )
    except SimulatorError as exc:
        console.print(f"[red]Simulation failed:[/red] {exc}")
        raise typer.Exit(code=1)

    run_path = service.save_run(run, default_run_path(run.run_id))

    console.print("\n[bold]Simulation Complete[/bold]")
    console.print(f"ID: {run.run_id}")
    console.print(f"Flow: {run.flow_id}")
    stats = run.get_statistics()
    console.print(f"Turns: {stats['total_turns']}, Branches: {stats['branches']}, Divergences: {stats['divergences']}")
    console.print(f"Saved: {run_path}")

    resolver = EligibilityResolver(service.flow(flow_id))
    ledger = resolver.replay(run.path_to(run.selected_turn_id)) if run.selected_turn_id else Ledger()
    needed = resolver.still_needed(ledger)
    if needed:
        console.print(f"[yellow]Still needed:[/yellow] {', '.join(needed)}")
    else:
        console.print("[green]Goal reached[/green]")

    console.print(render_outline(service.outline(run), title=run.run_id))


@app.command("show-run")
def show_run(
    file_path: str = typer.Argument(..., help="Run name or path (bare names resolve to outputs/runs/<name>.yaml)"),
    select_turn: Optional[str] = typer.Option(None, "--select", help="Turn id to select (opens its path)"),
    expand: bool = typer.Option(False, "--expand-all", help="Expand every divergence and fold"),
    turns: bool = typer.Option(False, "--turns", help="Also print the active branch as a table"),
    fold_threshold: int = typer.Option(6, help="Fold linear runs longer than this"),
    fold_edges: int = typer.Option(2, help="Turns shown at each end of a fold"),
    collapse_depth: int = typer.Option(2, help="Collapse divergences deeper than this"),
) -> None:
    """Render a saved run as a folded outline."""
    try:
        resolved = find_run_file(file_path)
        run = load_run(resolved)
    except (FileNotFoundError, LoaderError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    policy = _policy(fold_threshold, fold_edges, collapse_depth)
    state = initial_state(run, policy)
    if select_turn:
        try:
            state = select(state, run, select_turn, policy)
        except SimulatorError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=1)
    if expand:
        state = expand_all(state)

    console.print(f"[bold]Run:[/bold] {run.run_id}  [bold]Flow:[/bold] {run.flow_id}  [dim]{run.created_at}[/dim]")
    console.print(render_outline(build_outline(run, state, policy), title=run.run_id))

    if turns and run.active_branch_id:
        console.print(build_turns_table(run.turns_for_branch(run.active_branch_id), title=f"Branch {run.active_branch_id}"))


if __name__ == "__main__":
    app()
