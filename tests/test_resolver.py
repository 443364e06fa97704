"""
Tests for the eligibility resolver.

Tests cover:
- Gate and fact eligibility (CONTACT scenario)
- Ledger replay and gate derivation
- Scenario filters, goal-set and run limits
- Goal lenses and baseline questions
- Primary goal readiness
"""

import pytest

from convosim.core.eligibility import EligibilityResolver, Ledger
from convosim.core.errors import IneligibleNode
from convosim.core.flow.models import (
    FlowGraph,
    Gate,
    GateDefinition,
    GateRule,
    GoalLens,
    MetricDefinition,
    NodeEligibility,
    NodeKind,
    PrimaryGoal,
)
from convosim.core.tree.models import ExecutionDecision, ScenarioContext, SimulationRun
from factories import node, payload


def _ids(nodes):
    return [n.id for n in nodes]


class TestContactScenario:
    """A node requiring CONTACT becomes eligible once contact is captured."""

    def test_requires_contact_ineligible_before(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        book = contact_flow.get_node("book-call")

        assert not resolver.is_eligible(book, Ledger.empty())
        assert resolver.why_ineligible(book, Ledger.empty()) == ["requires gate CONTACT"]
        assert _ids(resolver.eligible_nodes(Ledger.empty())) == ["welcome", "capture-contact"]

    def test_eligible_after_contact_turn(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r", flow_id=contact_flow.id)
        root = run.start()
        turn = run.append_turn(
            root.turn_id, payload("capture-contact", "me@example.com", gates=[Gate.CONTACT], facts=["contact_email"])
        )

        ledger = resolver.replay(run.path_to(turn.turn_id))

        assert ledger.has_gate(Gate.CONTACT)
        assert "book-call" in _ids(resolver.eligible_nodes(ledger))
        assert "handoff" not in _ids(resolver.eligible_nodes(ledger))

    def test_require_eligible_raises_with_reasons(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)

        with pytest.raises(IneligibleNode) as excinfo:
            resolver.require_eligible(contact_flow.get_node("handoff"), Ledger.empty())

        assert excinfo.value.reasons == ["requires gate BOOKING", "requires gate CONTACT"]


class TestLedgerReplay:
    """Tests for apply_turn and replay."""

    def test_gate_derived_from_facts(self, contact_flow):
        """A contact fact alone derives the CONTACT gate through its definition."""
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        turn = run.append_turn(root.turn_id, payload("welcome", "hi", facts=["contact_phone"]))

        ledger = resolver.replay(run.path_to(turn.turn_id))

        assert ledger.gates == frozenset({Gate.CONTACT})

    def test_aliases_are_canonicalised(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        turn = run.append_turn(root.turn_id, payload("welcome", "hi", facts=["email"]))

        ledger = resolver.replay(run.path_to(turn.turn_id))

        assert "contact_email" in ledger.facts
        assert Gate.CONTACT in ledger.gates

    def test_replay_is_deterministic(self, contact_flow):
        """Replaying the same path twice yields equal ledgers."""
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        first = run.append_turn(root.turn_id, payload("capture-contact", "a", gates=[Gate.CONTACT]))
        second = run.append_turn(first.turn_id, payload("book-call", "b", gates=[Gate.BOOKING], facts=["booking_date"]))
        path = run.path_to(second.turn_id)

        assert resolver.replay(path) == resolver.replay(list(path))
        assert resolver.replay(path).executed_nodes == frozenset({"capture-contact", "book-call"})

    def test_branches_have_independent_ledgers(self, contact_flow):
        """Facts captured on one branch are unknown on a sibling branch."""
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        welcome = run.append_turn(root.turn_id, payload("welcome", "hi"))
        with_contact = run.append_turn(welcome.turn_id, payload("capture-contact", "a", gates=[Gate.CONTACT]))
        _, without = run.fork_and_append(welcome.turn_id, "Alt", payload("welcome", "again"))

        assert resolver.replay(run.path_to(with_contact.turn_id)).has_gate(Gate.CONTACT)
        assert not resolver.replay(run.path_to(without.turn_id)).has_gate(Gate.CONTACT)

    def test_stalled_turn_does_not_complete_node(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        stalled = run.append_turn(root.turn_id, payload("welcome", "hm", decision=ExecutionDecision.STALL))

        assert "welcome" not in resolver.replay(run.path_to(stalled.turn_id)).executed_nodes

    def test_authored_gate_definition_overrides_default(self, contact_flow):
        flow = contact_flow.model_copy(
            update={
                "gate_definitions": {
                    Gate.CONTACT: GateDefinition(satisfied_by=GateRule(metrics_all=frozenset({"full_name", "contact_email"})))
                }
            }
        )
        resolver = EligibilityResolver(flow)

        assert resolver.derive_gates(frozenset({"contact_email"}), frozenset()) == frozenset()
        assert resolver.derive_gates(frozenset({"contact_email", "full_name"}), frozenset()) == frozenset({Gate.CONTACT})

    def test_gate_definition_written_with_alias(self, contact_flow):
        """Gate rules naming an alias are matched against canonical facts."""
        flow = contact_flow.model_copy(
            update={
                "gate_definitions": {
                    Gate.CONTACT: GateDefinition(satisfied_by=GateRule(metrics_any=frozenset({"email"})))
                },
                "primary_goal": PrimaryGoal(type="GATE", gate=Gate.CONTACT),
            }
        )
        resolver = EligibilityResolver(flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        captured = run.append_turn(root.turn_id, payload("welcome", "me@example.com", facts=["email"]))
        ledger = resolver.replay(run.path_to(captured.turn_id))

        assert ledger.facts == frozenset({"contact_email"})
        assert ledger.has_gate(Gate.CONTACT)
        assert resolver.still_needed(ledger) == []

    def test_deadline_follow_up_opens_and_clears(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        run = SimulationRun(run_id="r")
        root = run.start()
        provisional = run.append_turn(root.turn_id, payload("welcome", "3 months", readiness=["deadline_follow_up"]))
        asked = run.append_turn(provisional.turn_id, payload("welcome", "soon", decision=ExecutionDecision.STALL))
        narrowed = run.append_turn(asked.turn_id, payload("welcome", "2026-04-18"))

        assert resolver.replay(run.path_to(provisional.turn_id)).pending_follow_ups == frozenset({"welcome"})
        assert resolver.replay(run.path_to(asked.turn_id)).pending_follow_ups == frozenset({"welcome"})
        assert resolver.replay(run.path_to(narrowed.turn_id)).pending_follow_ups == frozenset()

    def test_pending_follow_up_lifts_run_once(self):
        flow = FlowGraph(id="once", nodes=[node("deadline", NodeKind.DEADLINE_CAPTURE, max_runs="once")])
        resolver = EligibilityResolver(flow)
        ran = Ledger(executed_nodes=frozenset({"deadline"}))

        assert resolver.eligible_nodes(ran) == []
        assert _ids(resolver.eligible_nodes(ran.with_follow_up("deadline", True))) == ["deadline"]


class TestScenarioRules:
    """Tests for channel, lead state, goal-set and max-runs filters."""

    def _flow(self):
        return FlowGraph(
            id="rules",
            nodes=[
                node("sms-only", eligibility=NodeEligibility(channels=frozenset({"SMS"}))),
                node("known-lead", eligibility=NodeEligibility(lead_states=frozenset({"KNOWN"}))),
                node("define-goal", NodeKind.GOAL_DEFINITION, states=["GOAL_SET"]),
                node("after-goal", eligibility=NodeEligibility(requires_goal_set=True)),
                node("intro", max_runs="once", importance="low"),
                node("urgent", importance="high"),
            ],
        )

    def test_channel_and_lead_state(self):
        resolver = EligibilityResolver(self._flow())

        sms = _ids(resolver.eligible_nodes(Ledger.empty(), ScenarioContext(channel="SMS")))
        web_known = _ids(resolver.eligible_nodes(Ledger.empty(), ScenarioContext(channel="WEB", lead_state="KNOWN")))

        assert "sms-only" in sms and "known-lead" not in sms
        assert "sms-only" not in web_known and "known-lead" in web_known

    def test_no_scenario_disables_filters(self):
        resolver = EligibilityResolver(self._flow())
        assert {"sms-only", "known-lead"} <= set(_ids(resolver.eligible_nodes(Ledger.empty())))

    def test_goal_set_by_state_or_goal_node(self):
        resolver = EligibilityResolver(self._flow())

        assert "after-goal" not in _ids(resolver.eligible_nodes(Ledger.empty()))
        assert "after-goal" in _ids(resolver.eligible_nodes(Ledger(states=frozenset({"GOAL_SET"}))))
        assert "after-goal" in _ids(resolver.eligible_nodes(Ledger(executed_nodes=frozenset({"define-goal"}))))

    def test_max_runs_once(self):
        resolver = EligibilityResolver(self._flow())

        assert "intro" in _ids(resolver.eligible_nodes(Ledger.empty()))
        assert "intro" not in _ids(resolver.eligible_nodes(Ledger(executed_nodes=frozenset({"intro"}))))
        assert "intro" not in _ids(resolver.eligible_nodes(Ledger.empty(), run_counts={"intro": 1}))

    def test_importance_ordering(self):
        """High first, low last, declaration order otherwise."""
        resolver = EligibilityResolver(self._flow())
        ordered = _ids(resolver.eligible_nodes(Ledger.empty()))

        assert ordered[0] == "urgent"
        assert ordered[-1] == "intro"
        assert ordered[1:3] == ["sms-only", "known-lead"]

    def test_node_id_requirement(self):
        """A requirement naming another node is met once that node has run."""
        flow = FlowGraph(id="chain", nodes=[node("first"), node("second", facts=["first"])])
        resolver = EligibilityResolver(flow)

        assert _ids(resolver.eligible_nodes(Ledger.empty())) == ["first"]
        assert "second" in _ids(resolver.eligible_nodes(Ledger(executed_nodes=frozenset({"first"}))))


class TestGoalLenses:
    """Tests for lens resolution and baseline questions."""

    LENS = GoalLens(
        id="BODY_COMPOSITION",
        baseline_metrics=[
            MetricDefinition(id="current_weight"),
            MetricDefinition(id="current_bodyfat", required=False),
        ],
        target_metrics=[MetricDefinition(id="target_weight")],
    )
    OTHER = GoalLens(id="STRENGTH_PR", baseline_metrics=[MetricDefinition(id="lift_type")])

    def _flow(self):
        return FlowGraph(
            id="lenses",
            nodes=[
                node("baseline", NodeKind.BASELINE_CAPTURE, goal_lens_id="ADAPTIVE"),
                node("fixed", NodeKind.BASELINE_CAPTURE, goal_lens_id="STRENGTH_PR"),
            ],
            goal_lenses=[self.LENS, self.OTHER],
        )

    def test_resolve_questions_marks_optional(self):
        flow = self._flow()
        resolver = EligibilityResolver(flow)

        questions = resolver.resolve_questions_for_baseline(flow.get_node("baseline"), self.LENS)

        assert questions == ["current_weight", "current_bodyfat?", "target_weight"]

    def test_missing_metrics_ignores_optional(self):
        flow = self._flow()
        resolver = EligibilityResolver(flow)
        ledger = Ledger(facts=frozenset({"current_weight"}))

        assert resolver.missing_metrics(flow.get_node("baseline"), self.LENS, ledger) == ["target_weight"]

    def test_lens_for_adaptive(self):
        flow = self._flow()
        resolver = EligibilityResolver(flow)
        baseline = flow.get_node("baseline")

        assert resolver.lens_for(baseline).id == "BODY_COMPOSITION"
        assert resolver.lens_for(baseline, ScenarioContext(goal_lens_id="STRENGTH_PR")).id == "STRENGTH_PR"
        assert resolver.lens_for(flow.get_node("fixed")).id == "STRENGTH_PR"
        assert resolver.lens_for(node("plain")) is None


class TestPrimaryGoal:
    """Tests for still_needed and goal_reached."""

    def test_booking_goal_lists_definition_metrics(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)

        assert resolver.still_needed(Ledger.empty()) == ["booking_date", "booking_type"]
        assert resolver.still_needed(Ledger(facts=frozenset({"booking_date"}))) == ["booking_type"]
        assert not resolver.goal_reached(Ledger.empty())

    def test_goal_reached_by_gate(self, contact_flow):
        resolver = EligibilityResolver(contact_flow)
        ledger = Ledger(gates=frozenset({Gate.CONTACT, Gate.BOOKING}))

        assert resolver.still_needed(ledger) == []
        assert resolver.goal_reached(ledger)

    def test_contact_goal_reports_alternatives(self, contact_flow):
        flow = contact_flow.model_copy(update={"primary_goal": PrimaryGoal(type="GATE", gate=Gate.CONTACT)})
        resolver = EligibilityResolver(flow)

        assert resolver.still_needed(Ledger.empty()) == ["contact_email or contact_phone"]

    def test_state_goal(self, contact_flow):
        flow = contact_flow.model_copy(update={"primary_goal": PrimaryGoal(type="STATE", state="HANDOFF_COMPLETE")})
        resolver = EligibilityResolver(flow)

        assert resolver.still_needed(Ledger.empty()) == ["HANDOFF_COMPLETE"]
        assert resolver.goal_reached(Ledger(states=frozenset({"HANDOFF_COMPLETE"})))
