"""Tests for negotiation and contract status progression maps."""

import pytest

from tradedesk.domain.errors import InvalidTransitionError
from tradedesk.domain.types import ContractStatus, NegotiationStatus
from tradedesk.lifecycle.transitions import (
    CONTRACT_TRANSITIONS,
    NEGOTIATION_TRANSITIONS,
    TERMINAL_NEGOTIATION_STATUSES,
    check_contract_transition,
    check_negotiation_transition,
    is_allowed_contract_transition,
    is_allowed_negotiation_transition,
)

N = NegotiationStatus
C = ContractStatus


class TestMaps:
    """Every status has an entry."""

    def test_all_negotiation_statuses_mapped(self):
        assert set(NEGOTIATION_TRANSITIONS) == set(NegotiationStatus)

    def test_all_contract_statuses_mapped(self):
        assert set(CONTRACT_TRANSITIONS) == set(ContractStatus)

    def test_terminal_negotiation_statuses(self):
        assert TERMINAL_NEGOTIATION_STATUSES == {
            N.WITHDRAWN,
            N.FIRM_OFFER_EXPIRED,
            N.SUBS_EXPIRED,
            N.SUBS_FAILED,
        }


class TestNegotiationTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (N.INDICATIVE_OFFER, N.FIRM_OFFER),
            (N.FIRM_OFFER, N.FIRM),
            (N.FIRM, N.ON_SUBS),
            (N.ON_SUBS, N.FIXED),
            (N.FIXED, N.FIRM_AMENDMENT),
            (N.ON_SUBS, N.SUBS_FAILED),
        ],
    )
    def test_allowed(self, current, target):
        assert is_allowed_negotiation_transition(current, target)
        check_negotiation_transition(current, target)

    @pytest.mark.parametrize("status", list(NegotiationStatus))
    def test_reasserting_current_status_is_allowed(self, status):
        assert is_allowed_negotiation_transition(status, status)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (N.WITHDRAWN, N.FIRM),
            (N.FIXED, N.INDICATIVE_OFFER),
            (N.INDICATIVE_BID, N.FIXED),
        ],
    )
    def test_denied(self, current, target):
        assert not is_allowed_negotiation_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_negotiation_transition(current, target)
        assert exc_info.value.current_status == current.value
        assert exc_info.value.target_status == target.value


class TestContractTransitions:
    def test_draft_can_go_final(self):
        assert is_allowed_contract_transition(C.DRAFT, C.FINAL)

    @pytest.mark.parametrize("target", [C.DRAFT, C.WORKING_COPY, C.REJECTED])
    def test_final_is_terminal(self, target):
        with pytest.raises(InvalidTransitionError):
            check_contract_transition(C.FINAL, target)
