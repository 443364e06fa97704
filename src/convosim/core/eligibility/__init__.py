"""
Eligibility: which conversation moments are reachable.

Components:
- Ledger: gates/facts/states known at a point, derived by replay
- Lane: coarse gate position of a node (lane_of)
- EligibilityResolver: eligibility, replay and goal readiness
- evaluate_deadline: deadline answer policy for DEADLINE_CAPTURE nodes
"""

from convosim.core.eligibility.deadline import (
    AnswerForm,
    DeadlineOutcome,
    DeadlineVerdict,
    classify_answer,
    effective_enforcement,
    evaluate_deadline,
)
from convosim.core.eligibility.lanes import (
    LANE_CONFIG,
    LANE_ORDER,
    Lane,
    group_by_lane,
    lane_of,
    update_node_for_lane,
    validate_node_in_lane,
)
from convosim.core.eligibility.ledger import Ledger
from convosim.core.eligibility.resolver import EligibilityResolver

__all__ = [
    "AnswerForm",
    "DeadlineOutcome",
    "DeadlineVerdict",
    "EligibilityResolver",
    "LANE_CONFIG",
    "LANE_ORDER",
    "Lane",
    "Ledger",
    "classify_answer",
    "effective_enforcement",
    "evaluate_deadline",
    "group_by_lane",
    "lane_of",
    "update_node_for_lane",
    "validate_node_in_lane",
]
