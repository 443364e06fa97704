"""
Tests for the execution tree.

Tests cover:
- Root creation and ordinary continuation
- Forking (explicit, atomic fork-and-append, empty forks)
- Leaf status, divergences, branch paths
- Immutability of recorded turns
- Statistics
"""

import pytest
from pydantic import ValidationError

from convosim.core.errors import EmptyBranch, NotALeaf, SimulatorError, UnknownBranch, UnknownTurn
from convosim.core.tree.models import MAIN_BRANCH_ID, SimulationRun, child_index
from factories import linear_run, payload


def main_alt_run():
    """Root -> A -> B on main, then an alternative reply C forked at A."""
    run = SimulationRun(run_id="r1", flow_id="demo")
    root = run.start()
    turn_a = run.append_turn(root.turn_id, payload(message="A"))
    turn_b = run.append_turn(turn_a.turn_id, payload(message="B"))
    alt, turn_c = run.fork_and_append(turn_a.turn_id, "Alt", payload(message="C"))
    return run, root, turn_a, turn_b, alt, turn_c


class TestStart:
    """Tests for run roots."""

    def test_start_creates_root_on_main(self):
        """The root is turn 0 on the main branch and is selected."""
        run = SimulationRun(run_id="r1")
        root = run.start()

        assert root.turn_number == 0
        assert root.is_root
        assert root.branch_id == MAIN_BRANCH_ID
        assert run.get_branch(MAIN_BRANCH_ID).label == "Main"
        assert run.get_branch(MAIN_BRANCH_ID).tip_turn_id == root.turn_id
        assert run.selected_turn_id == root.turn_id
        assert run.active_branch_id == MAIN_BRANCH_ID

    def test_start_twice_fails(self):
        """A run has exactly one root."""
        run = SimulationRun(run_id="r1")
        run.start()

        with pytest.raises(SimulatorError):
            run.start()


class TestAppend:
    """Tests for ordinary continuation."""

    def test_append_increments_turn_number_and_tip(self):
        """A continuation lives on the parent's branch and becomes its tip."""
        run = SimulationRun(run_id="r1")
        root = run.start()
        turn = run.append_turn(root.turn_id, payload(message="hello"))

        assert turn.turn_number == 1
        assert turn.parent_turn_id == root.turn_id
        assert turn.branch_id == MAIN_BRANCH_ID
        assert run.get_branch(MAIN_BRANCH_ID).tip_turn_id == turn.turn_id

    def test_append_to_non_leaf_raises(self):
        """Only a leaf may be continued."""
        run, root, turn_a, turn_b, _, _ = main_alt_run()

        with pytest.raises(NotALeaf) as excinfo:
            run.append_turn(turn_a.turn_id, payload(message="D"))

        assert excinfo.value.turn_id == turn_a.turn_id
        assert set(excinfo.value.child_ids) == {turn_b.turn_id, "turn3"}

    def test_failed_append_leaves_run_unchanged(self):
        """NotALeaf does not add a turn."""
        run, root, _, _, _, _ = main_alt_run()
        before = dict(run.turns)

        with pytest.raises(NotALeaf):
            run.append_turn(root.turn_id, payload(message="X"))

        assert run.turns == before

    def test_unknown_parent(self):
        """Appending under an unknown turn raises UnknownTurn."""
        run = SimulationRun(run_id="r1")
        run.start()

        with pytest.raises(UnknownTurn):
            run.append_turn("turn99", payload())


class TestFork:
    """Tests for forking."""

    def test_main_alt_scenario(self):
        """Forking at A yields a divergence with both paths intact."""
        run, root, turn_a, turn_b, alt, turn_c = main_alt_run()

        assert alt.branch_id == "alt"
        assert alt.fork_from_turn_id == turn_a.turn_id
        assert alt.parent_branch_id == MAIN_BRANCH_ID
        assert alt.tip_turn_id == turn_c.turn_id
        assert turn_c.turn_number == 2
        assert turn_c.parent_turn_id == turn_a.turn_id

        assert [t.turn_id for t in run.children_of(turn_a.turn_id)] == [turn_b.turn_id, turn_c.turn_id]
        assert run.is_divergence(turn_a.turn_id)
        assert [t.user_message for t in run.turns_for_branch(MAIN_BRANCH_ID)] == [None, "A", "B"]
        assert [t.user_message for t in run.turns_for_branch("alt")] == [None, "A", "C"]

    def test_fork_preserves_prefix(self):
        """Turns before the fork point are shared, unchanged, by both branches."""
        run, root, turn_a, _, _, _ = main_alt_run()

        main_prefix = run.turns_for_branch(MAIN_BRANCH_ID)[:2]
        alt_prefix = run.turns_for_branch("alt")[:2]

        assert main_prefix == alt_prefix
        assert [t.turn_id for t in alt_prefix] == [root.turn_id, turn_a.turn_id]

    def test_fork_from_leaf_is_allowed(self):
        """Explicit forks are permitted from any turn, including a leaf."""
        run, _, _, turn_b, _, _ = main_alt_run()

        branch, turn = run.fork_and_append(turn_b.turn_id, "Retry", payload(message="again"))

        assert turn.parent_turn_id == turn_b.turn_id
        assert branch.branch_id == "retry"

    def test_branch_ids_are_unique_per_label(self):
        """Reusing a label yields a suffixed branch id."""
        run, root, _, _, _, _ = main_alt_run()

        second, _ = run.fork_and_append(root.turn_id, "Alt", payload(message="D"))
        third, _ = run.fork_and_append(root.turn_id, "Alt", payload(message="E"))

        assert second.branch_id == "alt-2"
        assert third.branch_id == "alt-3"

    def test_empty_fork_then_append_to_branch(self):
        """A fork without turns has no tip until its first turn is appended."""
        run, root, turn_a, _, _, _ = main_alt_run()
        branch = run.fork_branch(turn_a.turn_id, "Later")

        assert branch.is_empty
        with pytest.raises(EmptyBranch):
            run.turns_for_branch(branch.branch_id)

        first = run.append_to_branch(branch.branch_id, payload(message="first"))
        second = run.append_to_branch(branch.branch_id, payload(message="second"))

        assert first.parent_turn_id == turn_a.turn_id
        assert second.parent_turn_id == first.turn_id
        assert [t.user_message for t in run.turns_for_branch(branch.branch_id)] == [None, "A", "first", "second"]

    def test_fork_and_append_unknown_turn_changes_nothing(self):
        """An invalid fork point neither adds a branch nor a turn."""
        run, _, _, _, _, _ = main_alt_run()
        branches_before = dict(run.branches)
        turns_before = dict(run.turns)

        with pytest.raises(UnknownTurn):
            run.fork_and_append("turn42", "Bad", payload(message="X"))

        assert run.branches == branches_before
        assert run.turns == turns_before

    def test_unknown_branch(self):
        """Unknown branch ids raise UnknownBranch."""
        run, _, _, _, _, _ = main_alt_run()

        with pytest.raises(UnknownBranch):
            run.turns_for_branch("nope")


class TestLeaves:
    """Tests for leaf status."""

    def test_leaf_status_is_monotonic(self):
        """Once a turn has a child it never becomes a leaf again."""
        run = SimulationRun(run_id="r1")
        root = run.start()
        assert run.is_leaf(root.turn_id)

        turn = run.append_turn(root.turn_id, payload(message="A"))
        assert not run.is_leaf(root.turn_id)
        assert run.is_leaf(turn.turn_id)

        run.fork_and_append(root.turn_id, "Alt", payload(message="B"))
        assert not run.is_leaf(root.turn_id)

    def test_get_leaves_and_divergences(self):
        """Leaves are the tips; the fork point is the only divergence."""
        run, _, turn_a, turn_b, _, turn_c = main_alt_run()

        assert [t.turn_id for t in run.get_leaves()] == [turn_b.turn_id, turn_c.turn_id]
        assert [t.turn_id for t in run.get_divergences()] == [turn_a.turn_id]

    def test_child_index_matches_scan(self):
        """The derived index agrees with scanning for parents."""
        run, root, turn_a, _, _, _ = main_alt_run()
        index = child_index(run.turns)

        assert index[None] == [root.turn_id]
        assert index[turn_a.turn_id] == [t.turn_id for t in run.children_of(turn_a.turn_id)]


class TestImmutability:
    """Recorded turns and branches are frozen."""

    def test_turn_is_frozen(self):
        """Assigning to a turn field fails."""
        run, _, turn_a, _, _, _ = main_alt_run()

        with pytest.raises(ValidationError):
            turn_a.parent_turn_id = None

    def test_history_unchanged_by_fork(self):
        """Forking never changes existing turns."""
        run = linear_run(4)
        snapshot = {tid: t.model_dump() for tid, t in run.turns.items()}

        run.fork_and_append("turn1", "Alt", payload(message="other"))

        for turn_id, dumped in snapshot.items():
            assert run.get_turn(turn_id).model_dump() == dumped


class TestStatistics:
    """Tests for run statistics."""

    def test_statistics(self):
        """Counts reflect turns, branches, leaves, divergences and depth."""
        run, _, _, _, _, _ = main_alt_run()
        stats = run.get_statistics()

        assert stats == {"total_turns": 4, "branches": 2, "leaves": 2, "divergences": 1, "depth": 3}

    def test_describe(self):
        """Turn labels show number, node and decision."""
        run, root, _, _, _, _ = main_alt_run()
        turn = run.append_turn("turn2", payload("welcome", "hi"))

        assert root.describe() == "[turn0] Start"
        assert turn.describe() == "[turn4] T3 welcome (ADVANCE)"
