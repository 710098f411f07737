# tests/test_workflows.py
import pytest

from core.errors import ServiceError
from core.stages import (
    can_transition_deal_stage,
    get_allowed_transitions,
    get_stage_display,
    validate_stage_transition,
)
from core.workflows import (
    CAPITAL_CALL,
    DISTRIBUTION,
    can_transition_status,
    get_allowed_next_statuses,
    get_initial_statuses,
    get_terminal_statuses,
    is_terminal_status,
    validate_transition,
)


def test_capital_call_workflow():
    assert can_transition_status(CAPITAL_CALL, "DRAFT", "APPROVED")
    assert not can_transition_status(CAPITAL_CALL, "DRAFT", "SENT")
    assert get_allowed_next_statuses(CAPITAL_CALL, "SENT") == ["PARTIALLY_FUNDED", "FULLY_FUNDED"]
    assert get_initial_statuses(CAPITAL_CALL) == ["DRAFT"]
    assert set(get_terminal_statuses(CAPITAL_CALL)) == {"FULLY_FUNDED", "CANCELLED"}


def test_distribution_workflow():
    assert can_transition_status(DISTRIBUTION, "APPROVED", "PROCESSING")
    assert is_terminal_status(DISTRIBUTION, "COMPLETED")
    assert not is_terminal_status(DISTRIBUTION, "UNKNOWN")


def test_validate_transition_message_lists_allowed_moves():
    with pytest.raises(ServiceError) as exc:
        validate_transition(CAPITAL_CALL, "FULLY_FUNDED", "DRAFT")
    assert "none (terminal status)" in exc.value.message

    with pytest.raises(ServiceError) as exc:
        validate_transition(DISTRIBUTION, "DRAFT", "COMPLETED")
    assert "Allowed: APPROVED, CANCELLED" in exc.value.message


def test_unknown_workflow_is_a_programming_error():
    with pytest.raises(ValueError):
        can_transition_status("loan", "DRAFT", "APPROVED")


def test_deal_stage_transitions():
    assert can_transition_deal_stage("IDENTIFIED", "INITIAL_REVIEW")
    assert not can_transition_deal_stage("IDENTIFIED", "CLOSING")
    assert can_transition_deal_stage("DUE_DILIGENCE", "ON_HOLD")
    assert can_transition_deal_stage("ON_HOLD", "CLOSING")
    assert not can_transition_deal_stage("ON_HOLD", "PASSED")
    assert not can_transition_deal_stage("PASSED", "ON_HOLD")


def test_allowed_transitions_include_hold():
    assert get_allowed_transitions("IDENTIFIED") == ["INITIAL_REVIEW", "PASSED", "ON_HOLD"]
    assert get_allowed_transitions("CLOSED_WON") == []
    assert "ON_HOLD" not in get_allowed_transitions("ON_HOLD")


def test_stage_display_and_validation():
    assert get_stage_display("NDA_CIM") == "NDA Signed"
    with pytest.raises(ServiceError, match="Unknown deal stage"):
        validate_stage_transition("IDENTIFIED", "NOPE")
    with pytest.raises(ServiceError, match="Cannot move deal"):
        validate_stage_transition("IDENTIFIED", "CLOSED")
