"""Simulation Service: Orchestrates playback sessions, run persistence and outlines."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Sequence

from convosim.core.disclosure.outline import DisclosurePolicy, DisclosureState, OutlineItem, build_outline
from convosim.core.errors import UnknownTurn
from convosim.core.flow.models import FlowGraph
from convosim.core.playback.backend import ScriptedBackend, TurnBackend
from convosim.core.playback.session import PlaybackSession
from convosim.core.registries.registry_manager import RegistryManager
from convosim.core.registries.validators import FlowValidator, RegistryValidator
from convosim.core.tree.models import MAIN_BRANCH_ID, ScenarioContext, SimulationRun
from convosim.io.loaders.run_store import load_run, save_run
from convosim.utils.logging import log_calls

BackendFactory = Callable[[FlowGraph], TurnBackend]


class SimulationService:
    """
    High-level service for simulating flows.

    Coordinates flow resolution, playback sessions, scripted runs with forks,
    run persistence and outline computation.
    """

    def __init__(
        self,
        registries: RegistryManager,
        backend_factory: BackendFactory = ScriptedBackend,
        policy: Optional[DisclosurePolicy] = None,
    ):
        """
        Initialize simulation service.

        Args:
            registries: Loaded flows, lenses and gate definitions
            backend_factory: Builds the turn backend for a flow
            policy: Disclosure thresholds for outlines
        """
        self.registries = registries
        self.backend_factory = backend_factory
        self.policy = policy or DisclosurePolicy()

    def flow(self, flow_id: str) -> FlowGraph:
        """
        Resolve a registered flow with shared lenses and gates layered in.

        Raises:
            KeyError: If the flow is not registered
        """
        return self.registries.resolve_flow(flow_id)

    def validate(self, flow_id: Optional[str] = None) -> List[str]:
        """Validation errors for one flow, or every registered flow."""
        if flow_id is None:
            return RegistryValidator(self.registries).validate_all()
        return FlowValidator(self.flow(flow_id)).validate()

    @log_calls()
    def start_session(
        self,
        flow_id: str,
        *,
        scenario: Optional[ScenarioContext] = None,
        run_id: Optional[str] = None,
    ) -> PlaybackSession:
        flow = self.flow(flow_id)
        return PlaybackSession.start(flow, self.backend_factory(flow), run_id=run_id, scenario=scenario)

    def resume_session(self, run: SimulationRun) -> PlaybackSession:
        """Open a session on an existing run (e.g. one loaded from disk)."""
        flow = self.flow(run.flow_id)
        return PlaybackSession(flow, run, self.backend_factory(flow))

    @log_calls()
    def run_script(
        self,
        flow_id: str,
        messages: Sequence[Optional[str]],
        *,
        scenario: Optional[ScenarioContext] = None,
        run_id: Optional[str] = None,
        fork_at: Optional[int] = None,
        fork_messages: Sequence[Optional[str]] = (),
        fork_label: Optional[str] = None,
    ) -> SimulationRun:
        """
        Play a scripted conversation, optionally replaying an alternative from a past turn.

        Args:
            flow_id: Registered flow id
            messages: User messages for the main branch, one per turn
            scenario: Channel / lead state / goal lens
            run_id: Optional run id (generated if None)
            fork_at: Turn number on the main branch to fork from after the script
            fork_messages: User messages for the forked branch
            fork_label: Label of the forked branch

        Returns:
            The completed run

        Raises:
            UnknownTurn: If ``fork_at`` names no turn on the main branch
            IneligibleNode: If the backend picks an unreachable node
        """
        session = self.start_session(flow_id, scenario=scenario, run_id=run_id)
        for message in messages:
            session.send(message)

        if fork_at is not None:
            main_turns = session.run.turns_for_branch(MAIN_BRANCH_ID)
            matches = [turn for turn in main_turns if turn.turn_number == fork_at]
            if not matches:
                raise UnknownTurn(f"main@{fork_at}")
            session.select_turn(matches[0].turn_id)
            for index, message in enumerate(fork_messages):
                session.send(message, fork_label=fork_label if index == 0 else None)

        return session.run

    @log_calls()
    def save_run(self, run: SimulationRun, path: str | Path) -> Path:
        return save_run(run, path)

    @log_calls()
    def load_run(self, path: str | Path) -> SimulationRun:
        return load_run(path)

    def outline(self, run: SimulationRun, state: Optional[DisclosureState] = None) -> List[OutlineItem]:
        return build_outline(run, state, self.policy)


__all__ = ["SimulationService"]
