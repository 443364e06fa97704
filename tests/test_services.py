"""
Tests for SimulationService against the bundled knowledge base.
"""

import pytest

from convosim.core.disclosure import DivergenceItem, visible_turn_ids
from convosim.core.eligibility import EligibilityResolver
from convosim.core.errors import UnknownTurn
from convosim.core.tree.models import MAIN_BRANCH_ID, ExecutionDecision, ScenarioContext
from convosim.services import SimulationService

FLOW_ID = "fitness-onboarding"
MESSAGES = [
    "hi",
    "I want to lose weight",
    "I'm ready",
    "me@example.com",
    "80kg",
    "75kg",
    "by summer",
    "sounds good",
    "Tuesday works",
]


@pytest.fixture
def service(kb_registries):
    return SimulationService(kb_registries)


def _goal_reached(service, run, turn_id):
    resolver = EligibilityResolver(service.flow(run.flow_id))
    return resolver.goal_reached(resolver.replay(run.path_to(turn_id)))


class TestFlowResolution:
    def test_shared_lenses_are_layered_in(self, service):
        flow = service.flow(FLOW_ID)
        assert [lens.id for lens in flow.goal_lenses] == ["BODY_COMPOSITION", "STRENGTH_PR", "WELLNESS"]

    def test_unknown_flow(self, service):
        with pytest.raises(KeyError):
            service.flow("missing")

    def test_validate(self, service):
        assert service.validate() == []
        assert service.validate(FLOW_ID) == []


class TestRunScript:
    """Scripted runs over the fitness onboarding flow."""

    def test_main_path_reaches_booking(self, service):
        run = service.run_script(FLOW_ID, MESSAGES, run_id="happy")
        main = run.turns_for_branch(MAIN_BRANCH_ID)

        assert [t.node_id for t in main[1:]] == [
            "welcome",
            "goal-definition",
            "reflective-readiness",
            "capture-contact",
            "baseline-capture-adaptive",
            "target-capture-adaptive",
            "deadline-capture",
            "explain-approach",
            "book-consultation",
        ]
        assert main[5].satisfied_facts == frozenset({"current_weight", "target_weight"})
        assert _goal_reached(service, run, main[-1].turn_id)
        assert not _goal_reached(service, run, main[-2].turn_id)

    def test_strength_lens_rejects_vague_deadline(self, service):
        scenario = ScenarioContext(goal_lens_id="STRENGTH_PR")
        run = service.run_script(FLOW_ID, MESSAGES[:7], scenario=scenario)
        last = run.get_turn(run.selected_turn_id)

        assert last.node_id == "deadline-capture"
        assert last.decision.execution_decision is ExecutionDecision.STALL

    def test_fork_at_turn(self, service):
        run = service.run_script(
            FLOW_ID,
            MESSAGES[:5],
            run_id="forked",
            fork_at=3,
            fork_messages=["not now", "ok fine"],
            fork_label="Skeptic",
        )

        fork = run.get_branch("skeptic")
        fork_turns = run.turns_for_branch("skeptic")
        main_turns = run.turns_for_branch(MAIN_BRANCH_ID)

        assert fork.fork_from_turn_id == main_turns[3].turn_id
        assert fork_turns[:4] == main_turns[:4]
        assert [t.user_message for t in fork_turns[4:]] == ["not now", "ok fine"]
        assert run.active_branch_id == "skeptic"
        assert run.get_statistics()["divergences"] == 1

    def test_fork_at_unknown_turn(self, service):
        with pytest.raises(UnknownTurn):
            service.run_script(FLOW_ID, MESSAGES[:2], fork_at=7, fork_messages=["x"])


class TestPersistenceAndOutline:
    def test_save_and_load(self, service, tmp_path):
        run = service.run_script(FLOW_ID, MESSAGES[:3], run_id="saved")
        path = service.save_run(run, tmp_path / "saved.yaml")

        loaded = service.load_run(path)
        session = service.resume_session(loaded)
        turn = session.send("me@example.com")

        assert turn.node_id == "capture-contact"
        assert turn.parent_turn_id == run.selected_turn_id

    def test_outline_opens_selected_fork(self, service):
        run = service.run_script(FLOW_ID, MESSAGES[:5], fork_at=3, fork_messages=["not now"])
        items = service.outline(run)

        divergence = items[-1]
        assert isinstance(divergence, DivergenceItem)
        assert not divergence.collapsed
        assert run.selected_turn_id in visible_turn_ids(items)
        assert divergence.paths[1].label == 'Alt: "not now"'
