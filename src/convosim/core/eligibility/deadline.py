"""
Deadline capture policy.

A DEADLINE_CAPTURE node declares how precise the user's deadline must be.
Answers are classified into one of three forms and judged against the policy:

    policy        EXACT_DATE   RANGE        DURATION
    EXACT_DATE    accept       narrow       narrow
    RANGE_OK      accept       accept       accept
    DURATION_OK   accept       accept       accept

"narrow" resolves through the narrowing strategy: IMMEDIATE rejects the
answer and asks again now, FOLLOW_UP accepts it provisionally and schedules
a follow-up turn.
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

from convosim.core.flow.models import DeadlineEnforcement, DeadlinePolicy, GoalLens, NarrowingStrategy

DEFAULT_NARROWING_PROMPT = "What specific date are you targeting?"

DEADLINE_FOLLOW_UP = "deadline_follow_up"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_PREFIX = r"^(?:(?:by|on|before)\s+)?(?:the\s+)?"
_MONTH = (
    r"(?P<month>jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_DAY = r"(?P<day>\d{1,2})(?:st|nd|rd|th)?"
_YEAR = r"(?:,?\s+(?P<year>\d{4}))?$"

# "March 15th", "March 15, 2026"
_MONTH_FIRST = re.compile(_PREFIX + _MONTH + r"\s+(?:the\s+)?" + _DAY + _YEAR, re.IGNORECASE)
# "15 March", "the 15th of March 2026"
_DAY_FIRST = re.compile(_PREFIX + _DAY + r"(?:\s+of)?\s+" + _MONTH + _YEAR, re.IGNORECASE)
# "15/03/2026", "15.03.2026"; month-first when day-first is impossible
_NUMERIC = re.compile(
    r"^(?:(?:by|on|before)\s+)?(?P<first>\d{1,2})[/.-](?P<second>\d{1,2})[/.-](?P<year>\d{4})$",
    re.IGNORECASE,
)

_MONTH_NUMBERS = {
    name: number
    for number, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
    )
}
_LEAP_YEAR = 2000  # Lets "February 29th" without a year through

_DURATION = re.compile(
    r"^(?:in\s+|within\s+|for\s+)?(?:\d+|a|an|one|two|three|four|five|six|seven|eight|nine|ten|twelve|a\s+few|a\s+couple\s+of)"
    r"\s+(?:day|week|month|year)s?(?:\s+from\s+now)?$",
    re.IGNORECASE,
)


class AnswerForm(str, Enum):
    EXACT_DATE = "EXACT_DATE"
    RANGE = "RANGE"
    DURATION = "DURATION"


class DeadlineOutcome(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    ACCEPT_WITH_FOLLOW_UP = "ACCEPT_WITH_FOLLOW_UP"


class DeadlineVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    answer: str
    form: AnswerForm
    outcome: DeadlineOutcome
    prompt: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is not DeadlineOutcome.REJECT

    @property
    def needs_follow_up(self) -> bool:
        return self.outcome is DeadlineOutcome.ACCEPT_WITH_FOLLOW_UP


_ACCEPTED_FORMS: Dict[DeadlinePolicy, FrozenSet[AnswerForm]] = {
    DeadlinePolicy.EXACT_DATE: frozenset({AnswerForm.EXACT_DATE}),
    DeadlinePolicy.RANGE_OK: frozenset(AnswerForm),
    DeadlinePolicy.DURATION_OK: frozenset(AnswerForm),
}


def _is_real_date(year: Optional[int], month: int, day: int) -> bool:
    try:
        date(year or _LEAP_YEAR, month, day)
    except ValueError:
        return False
    return True


def _is_calendar_date(text: str) -> bool:
    if _ISO_DATE.match(text):
        try:
            date.fromisoformat(text)
        except ValueError:
            return False
        return True

    for pattern in (_MONTH_FIRST, _DAY_FIRST):
        match = pattern.match(text)
        if match:
            month = _MONTH_NUMBERS[match.group("month")[:3].lower()]
            year = int(match.group("year")) if match.group("year") else None
            return _is_real_date(year, month, int(match.group("day")))

    match = _NUMERIC.match(text)
    if match:
        first, second, year = int(match.group("first")), int(match.group("second")), int(match.group("year"))
        return _is_real_date(year, second, first) or _is_real_date(year, first, second)
    return False


def classify_answer(answer: str) -> AnswerForm:
    """Classify a free-text deadline answer.

    A real calendar day is exact, whether written ISO ``2026-03-15``, with a
    month name ("March 15th", "15 March 2026") or numerically ("15/03/2026").
    Impossible days ("February 30th") are not. "3 months", "in 6 weeks" and
    similar are durations; anything else is a range ("early March", "by summer").
    """
    text = answer.strip()
    if _is_calendar_date(text):
        return AnswerForm.EXACT_DATE
    if _DURATION.match(text):
        return AnswerForm.DURATION
    return AnswerForm.RANGE


def effective_enforcement(
    enforcement: DeadlineEnforcement, lens: Optional[GoalLens] = None
) -> DeadlineEnforcement:
    """The node's enforcement adapted to the active goal lens, when one is set.

    The lens decides both the precision required and how to narrow an
    imprecise answer; the node's prompt is kept.
    """
    if lens is None:
        return enforcement
    return enforcement.model_copy(
        update={"policy": lens.deadline_policy, "narrowing_strategy": lens.narrowing_strategy}
    )


def evaluate_deadline(answer: str, enforcement: DeadlineEnforcement) -> DeadlineVerdict:
    form = classify_answer(answer)
    if form in _ACCEPTED_FORMS[enforcement.policy]:
        return DeadlineVerdict(answer=answer, form=form, outcome=DeadlineOutcome.ACCEPT)

    prompt = enforcement.prompt_on_violation or DEFAULT_NARROWING_PROMPT
    if enforcement.narrowing_strategy is NarrowingStrategy.IMMEDIATE:
        outcome = DeadlineOutcome.REJECT
    else:
        outcome = DeadlineOutcome.ACCEPT_WITH_FOLLOW_UP
    return DeadlineVerdict(answer=answer, form=form, outcome=outcome, prompt=prompt)


__all__ = [
    "AnswerForm",
    "DEADLINE_FOLLOW_UP",
    "DEFAULT_NARROWING_PROMPT",
    "DeadlineOutcome",
    "DeadlineVerdict",
    "classify_answer",
    "effective_enforcement",
    "evaluate_deadline",
]
