"""
Tests for deadline capture policy.
"""

import pytest

from convosim.core.eligibility.deadline import (
    DEFAULT_NARROWING_PROMPT,
    AnswerForm,
    DeadlineOutcome,
    classify_answer,
    effective_enforcement,
    evaluate_deadline,
)
from convosim.core.flow.models import DeadlineEnforcement, DeadlinePolicy, GoalLens, NarrowingStrategy


@pytest.mark.parametrize(
    "answer,form",
    [
        ("2026-03-15", AnswerForm.EXACT_DATE),
        ("March 15th", AnswerForm.EXACT_DATE),
        ("March 15, 2026", AnswerForm.EXACT_DATE),
        ("15 March", AnswerForm.EXACT_DATE),
        ("the 15th of March 2026", AnswerForm.EXACT_DATE),
        ("by Sept 3rd", AnswerForm.EXACT_DATE),
        ("15/03/2026", AnswerForm.EXACT_DATE),
        ("03/15/2026", AnswerForm.EXACT_DATE),
        ("February 29th", AnswerForm.EXACT_DATE),
        ("3 months", AnswerForm.DURATION),
        ("in 6 weeks", AnswerForm.DURATION),
        ("a couple of months", AnswerForm.DURATION),
        ("early March", AnswerForm.RANGE),
        ("by summer", AnswerForm.RANGE),
        ("2026-02-30", AnswerForm.RANGE),
        ("February 30th", AnswerForm.RANGE),
        ("31/04/2026", AnswerForm.RANGE),
        ("May 2026", AnswerForm.RANGE),
    ],
)
def test_classify_answer(answer, form):
    assert classify_answer(answer) is form


class TestEvaluateDeadline:
    """Policy by answer form."""

    def test_exact_date_policy_accepts_exact_date(self):
        verdict = evaluate_deadline("2026-03-15", DeadlineEnforcement(policy=DeadlinePolicy.EXACT_DATE))

        assert verdict.outcome is DeadlineOutcome.ACCEPT
        assert verdict.prompt is None

    def test_exact_date_policy_follow_up(self):
        """FOLLOW_UP accepts provisionally and asks for a date later."""
        verdict = evaluate_deadline("3 months", DeadlineEnforcement(policy=DeadlinePolicy.EXACT_DATE))

        assert verdict.outcome is DeadlineOutcome.ACCEPT_WITH_FOLLOW_UP
        assert verdict.accepted
        assert verdict.needs_follow_up
        assert verdict.prompt == DEFAULT_NARROWING_PROMPT

    def test_exact_date_policy_immediate_rejects(self):
        enforcement = DeadlineEnforcement(
            policy=DeadlinePolicy.EXACT_DATE,
            narrowing_strategy=NarrowingStrategy.IMMEDIATE,
            prompt_on_violation="Which day exactly?",
        )
        verdict = evaluate_deadline("early March", enforcement)

        assert verdict.outcome is DeadlineOutcome.REJECT
        assert not verdict.accepted
        assert verdict.prompt == "Which day exactly?"

    def test_exact_date_policy_accepts_written_dates(self):
        enforcement = DeadlineEnforcement(
            policy=DeadlinePolicy.EXACT_DATE, narrowing_strategy=NarrowingStrategy.IMMEDIATE
        )

        for answer in ("March 15th", "March 15, 2026", "15/03/2026"):
            verdict = evaluate_deadline(answer, enforcement)
            assert verdict.form is AnswerForm.EXACT_DATE
            assert verdict.outcome is DeadlineOutcome.ACCEPT

    def test_range_ok(self):
        """Ranges and durations are accepted without narrowing."""
        enforcement = DeadlineEnforcement(policy=DeadlinePolicy.RANGE_OK, narrowing_strategy=NarrowingStrategy.IMMEDIATE)

        for answer in ("early March", "by summer", "2026-03-15", "in 3 months"):
            verdict = evaluate_deadline(answer, enforcement)
            assert verdict.outcome is DeadlineOutcome.ACCEPT
            assert verdict.prompt is None

    def test_duration_ok_accepts_everything(self):
        enforcement = DeadlineEnforcement(policy=DeadlinePolicy.DURATION_OK)

        for answer in ("2026-03-15", "early March", "3 months"):
            assert evaluate_deadline(answer, enforcement).outcome is DeadlineOutcome.ACCEPT


class TestEffectiveEnforcement:
    """The goal lens overrides the node's policy."""

    def test_without_lens(self):
        enforcement = DeadlineEnforcement(policy=DeadlinePolicy.EXACT_DATE)
        assert effective_enforcement(enforcement, None) is enforcement

    def test_lens_policy_and_narrowing(self):
        enforcement = DeadlineEnforcement(policy=DeadlinePolicy.EXACT_DATE, prompt_on_violation="When?")
        lens = GoalLens(
            id="WELLNESS",
            deadline_policy=DeadlinePolicy.DURATION_OK,
            narrowing_strategy=NarrowingStrategy.IMMEDIATE,
        )

        adapted = effective_enforcement(enforcement, lens)

        assert adapted.policy is DeadlinePolicy.DURATION_OK
        assert adapted.narrowing_strategy is NarrowingStrategy.IMMEDIATE
        assert adapted.prompt_on_violation == "When?"
