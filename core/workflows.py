"""
core/workflows.py
-----------------
Status state machines for capital calls and distributions.

Both workflows are static adjacency lists. Statuses absent from a map have no
outgoing transitions; terminal statuses map to an empty list.
"""

from __future__ import annotations

from typing import Dict, List

from core.errors import ServiceError

CAPITAL_CALL = "capital_call"
DISTRIBUTION = "distribution"

CAPITAL_CALL_TRANSITIONS: Dict[str, List[str]] = {
    "DRAFT": ["APPROVED", "CANCELLED"],
    "APPROVED": ["SENT", "CANCELLED"],
    "SENT": ["PARTIALLY_FUNDED", "FULLY_FUNDED"],
    "PARTIALLY_FUNDED": ["FULLY_FUNDED"],
    "FULLY_FUNDED": [],
    "CANCELLED": [],
}

DISTRIBUTION_TRANSITIONS: Dict[str, List[str]] = {
    "DRAFT": ["APPROVED", "CANCELLED"],
    "APPROVED": ["PROCESSING", "CANCELLED"],
    "PROCESSING": ["COMPLETED"],
    "COMPLETED": [],
    "CANCELLED": [],
}

WORKFLOWS: Dict[str, Dict[str, List[str]]] = {
    CAPITAL_CALL: CAPITAL_CALL_TRANSITIONS,
    DISTRIBUTION: DISTRIBUTION_TRANSITIONS,
}

_LABELS = {CAPITAL_CALL: "capital call", DISTRIBUTION: "distribution"}


def _transitions(kind: str) -> Dict[str, List[str]]:
    try:
        return WORKFLOWS[kind]
    except KeyError:
        raise ValueError(f"Unknown workflow: {kind}") from None


def can_transition_status(kind: str, current: str, target: str) -> bool:
    return target in _transitions(kind).get(current, [])


def get_allowed_next_statuses(kind: str, current: str) -> List[str]:
    return list(_transitions(kind).get(current, []))


def is_terminal_status(kind: str, status: str) -> bool:
    transitions = _transitions(kind)
    return status in transitions and not transitions[status]


def get_terminal_statuses(kind: str) -> List[str]:
    return [status for status, targets in _transitions(kind).items() if not targets]


def get_initial_statuses(kind: str) -> List[str]:
    """Statuses that no transition leads into."""
    transitions = _transitions(kind)
    reachable = {target for targets in transitions.values() for target in targets}
    return [status for status in transitions if status not in reachable]


def validate_transition(kind: str, current: str, target: str) -> None:
    """Raise ServiceError when ``current -> target`` is not an allowed move."""
    if can_transition_status(kind, current, target):
        return
    allowed = get_allowed_next_statuses(kind, current)
    hint = ", ".join(allowed) if allowed else "none (terminal status)"
    raise ServiceError(
        f"Invalid {_LABELS[kind]} status transition from {current} to {target}. "
        f"Allowed: {hint}"
    )
