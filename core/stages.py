"""
Deal pipeline stages and allowed stage transitions.

Deals move along a mostly linear pipeline and can be PASSED from any active
stage. ON_HOLD is special: every non-terminal stage may pause to ON_HOLD, and
ON_HOLD may resume into any non-terminal stage.
"""

from __future__ import annotations

from typing import Dict, List

from core.errors import ServiceError

DEAL_STAGES = (
    "IDENTIFIED",
    "INITIAL_REVIEW",
    "PRELIMINARY_ANALYSIS",
    "MANAGEMENT_MEETING",
    "NDA_SIGNED",
    "NDA_CIM",
    "IOI_SUBMITTED",
    "SITE_VISIT",
    "LOI_PREPARATION",
    "LOI_NEGOTIATION",
    "DUE_DILIGENCE",
    "FINAL_NEGOTIATION",
    "CLOSING",
    "CLOSED",
    "CLOSED_WON",
    "CLOSED_LOST",
    "PASSED",
    "ON_HOLD",
)

TERMINAL_STAGES = ("CLOSED", "CLOSED_WON", "CLOSED_LOST", "PASSED")

DEAL_STAGE_TRANSITIONS: Dict[str, List[str]] = {
    "IDENTIFIED": ["INITIAL_REVIEW", "PASSED"],
    "INITIAL_REVIEW": ["PRELIMINARY_ANALYSIS", "PASSED"],
    "PRELIMINARY_ANALYSIS": ["MANAGEMENT_MEETING", "PASSED"],
    "MANAGEMENT_MEETING": ["NDA_CIM", "NDA_SIGNED", "PASSED"],
    "NDA_SIGNED": ["NDA_CIM", "PASSED"],
    "NDA_CIM": ["SITE_VISIT", "IOI_SUBMITTED", "LOI_PREPARATION", "PASSED"],
    "IOI_SUBMITTED": ["SITE_VISIT", "LOI_PREPARATION", "PASSED"],
    "SITE_VISIT": ["LOI_PREPARATION", "PASSED"],
    "LOI_PREPARATION": ["LOI_NEGOTIATION", "PASSED"],
    "LOI_NEGOTIATION": ["DUE_DILIGENCE", "PASSED"],
    "DUE_DILIGENCE": ["FINAL_NEGOTIATION", "PASSED"],
    "FINAL_NEGOTIATION": ["CLOSING", "PASSED"],
    "CLOSING": ["CLOSED", "CLOSED_WON", "PASSED"],
    "CLOSED": [],
    "CLOSED_WON": [],
    "CLOSED_LOST": [],
    "PASSED": [],
    "ON_HOLD": [],  # resumes anywhere non-terminal, handled below
}

STAGE_DISPLAY: Dict[str, str] = {
    "IDENTIFIED": "Identified",
    "INITIAL_REVIEW": "Initial Review",
    "PRELIMINARY_ANALYSIS": "Initial Review",
    "MANAGEMENT_MEETING": "Initial Review",
    "NDA_SIGNED": "NDA Signed",
    "NDA_CIM": "NDA Signed",
    "IOI_SUBMITTED": "IOI Submitted",
    "SITE_VISIT": "Due Diligence",
    "DUE_DILIGENCE": "Due Diligence",
    "LOI_PREPARATION": "LOI Negotiation",
    "LOI_NEGOTIATION": "LOI Negotiation",
    "FINAL_NEGOTIATION": "Closing",
    "CLOSING": "Closing",
    "CLOSED_WON": "Closed Won",
    "CLOSED": "Closed Won",
    "CLOSED_LOST": "Closed Lost",
    "PASSED": "Closed Lost",
    "ON_HOLD": "On Hold",
}


def is_terminal_stage(stage: str) -> bool:
    return stage in TERMINAL_STAGES


def can_transition_deal_stage(current: str, target: str) -> bool:
    if target == "ON_HOLD":
        return current in DEAL_STAGE_TRANSITIONS and not is_terminal_stage(current)
    if current == "ON_HOLD":
        return target in DEAL_STAGE_TRANSITIONS and not is_terminal_stage(target)
    return target in DEAL_STAGE_TRANSITIONS.get(current, [])


def get_allowed_transitions(current: str) -> List[str]:
    if current == "ON_HOLD":
        return [s for s in DEAL_STAGES if not is_terminal_stage(s) and s != "ON_HOLD"]
    allowed = list(DEAL_STAGE_TRANSITIONS.get(current, []))
    if current in DEAL_STAGE_TRANSITIONS and not is_terminal_stage(current):
        allowed.append("ON_HOLD")
    return allowed


def get_stage_display(stage: str) -> str:
    return STAGE_DISPLAY.get(stage, stage.replace("_", " ").title())


def validate_stage_transition(current: str, target: str) -> None:
    if target not in DEAL_STAGE_TRANSITIONS:
        raise ServiceError(f"Unknown deal stage: {target}")
    if not can_transition_deal_stage(current, target):
        raise ServiceError(
            f"Cannot move deal from {get_stage_display(current)} ({current}) "
            f"to {get_stage_display(target)} ({target})"
        )
