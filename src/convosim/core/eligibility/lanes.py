"""
Eligibility lanes.

A lane is the coarse answer to "how far through the gates must the
conversation be before this node can run". Lanes are computed from a node's
declared gates, never stored.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from convosim.core.errors import UnresolvableLane
from convosim.core.flow.models import FlowNode, Gate, NodeKind


class Lane(str, Enum):
    BEFORE_CONTACT = "BEFORE_CONTACT"
    CONTACT_GATE = "CONTACT_GATE"
    AFTER_CONTACT = "AFTER_CONTACT"
    AFTER_BOOKING = "AFTER_BOOKING"


class LaneInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    description: str
    order: int


LANE_CONFIG: Dict[Lane, LaneInfo] = {
    Lane.BEFORE_CONTACT: LaneInfo(
        label="Before Contact", description="No contact required - casual conversation", order=0
    ),
    Lane.CONTACT_GATE: LaneInfo(label="Contact Gate", description="Captures contact information", order=1),
    Lane.AFTER_CONTACT: LaneInfo(label="After Contact", description="Requires contact", order=2),
    Lane.AFTER_BOOKING: LaneInfo(label="After Booking", description="Requires booking", order=3),
}

LANE_ORDER: List[Lane] = sorted(LANE_CONFIG, key=lambda lane: LANE_CONFIG[lane].order)


def lane_of(node: FlowNode) -> Lane:
    """Compute the lane of a node. First matching rule wins."""
    if not isinstance(node.kind, NodeKind):
        raise UnresolvableLane(node.id, str(node.kind))

    if Gate.CONTACT in node.satisfies.gates:
        return Lane.CONTACT_GATE
    if Gate.BOOKING in node.requires.gates:
        return Lane.AFTER_BOOKING
    if Gate.CONTACT in node.requires.gates:
        return Lane.AFTER_CONTACT
    return Lane.BEFORE_CONTACT


def group_by_lane(nodes: List[FlowNode]) -> Dict[Lane, List[FlowNode]]:
    grouped: Dict[Lane, List[FlowNode]] = {lane: [] for lane in LANE_ORDER}
    for node in nodes:
        grouped[lane_of(node)].append(node)
    return grouped


def validate_node_in_lane(node: FlowNode, lane: Lane) -> Optional[str]:
    """Return a message when ``node`` does not belong in ``lane``, else None."""
    requires = node.requires.gates
    satisfies = node.satisfies.gates

    if lane is Lane.BEFORE_CONTACT:
        if Gate.CONTACT in requires:
            return "Cannot place in BEFORE_CONTACT: node requires contact"
        if Gate.BOOKING in requires:
            return "Cannot place in BEFORE_CONTACT: node requires booking"
    elif lane is Lane.CONTACT_GATE:
        if Gate.CONTACT not in satisfies:
            return "Only nodes that satisfy CONTACT can be in CONTACT_GATE"
    elif lane is Lane.AFTER_CONTACT:
        if Gate.CONTACT not in requires:
            return "Nodes in AFTER_CONTACT should require CONTACT"
        if Gate.BOOKING in requires:
            return "Node requires BOOKING - should be in AFTER_BOOKING"
    elif lane is Lane.AFTER_BOOKING:
        if Gate.BOOKING not in requires:
            return "Nodes in AFTER_BOOKING should require BOOKING"
    return None


def update_node_for_lane(node: FlowNode, lane: Lane) -> FlowNode:
    """Return a copy of ``node`` whose gate declarations place it in ``lane``."""
    requires = set(node.requires.gates)
    satisfies = set(node.satisfies.gates)

    if lane is Lane.BEFORE_CONTACT:
        requires -= {Gate.CONTACT, Gate.BOOKING}
        satisfies -= {Gate.CONTACT, Gate.BOOKING}
    elif lane is Lane.CONTACT_GATE:
        satisfies.add(Gate.CONTACT)
        requires -= {Gate.CONTACT, Gate.BOOKING}
    elif lane is Lane.AFTER_CONTACT:
        requires.add(Gate.CONTACT)
        requires.discard(Gate.BOOKING)
        satisfies.discard(Gate.CONTACT)
    elif lane is Lane.AFTER_BOOKING:
        # Booking entails contact
        requires |= {Gate.CONTACT, Gate.BOOKING}
        satisfies -= {Gate.CONTACT, Gate.BOOKING}

    return node.model_copy(
        update={
            "requires": node.requires.model_copy(update={"gates": frozenset(requires)}),
            "satisfies": node.satisfies.model_copy(update={"gates": frozenset(satisfies)}),
        }
    )


__all__ = [
    "LANE_CONFIG",
    "LANE_ORDER",
    "Lane",
    "LaneInfo",
    "group_by_lane",
    "lane_of",
    "update_node_for_lane",
    "validate_node_in_lane",
]
