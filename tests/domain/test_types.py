"""Tests for domain enumerations and the status groupings the corrector relies on."""

from tradedesk.domain.types import (
    CONTRACT_BEARING_STATUSES,
    FAILED_STATUSES,
    INDICATIVE_STATUSES,
    ContractStatus,
    EntityType,
    NegotiationStatus,
)


class TestNegotiationStatus:
    """Tests for the negotiation vocabulary."""

    def test_has_thirteen_statuses(self):
        assert len(NegotiationStatus) == 13

    def test_values_are_hyphenated(self):
        assert NegotiationStatus.FIRM_OFFER_EXPIRED == "firm-offer-expired"
        assert NegotiationStatus("on-subs-amendment") is NegotiationStatus.ON_SUBS_AMENDMENT


class TestStatusGroups:
    """The three status groupings never overlap."""

    def test_groups_are_disjoint(self):
        assert not CONTRACT_BEARING_STATUSES & FAILED_STATUSES
        assert not CONTRACT_BEARING_STATUSES & INDICATIVE_STATUSES
        assert not FAILED_STATUSES & INDICATIVE_STATUSES

    def test_contract_bearing(self):
        assert CONTRACT_BEARING_STATUSES == {
            NegotiationStatus.FIRM,
            NegotiationStatus.ON_SUBS,
            NegotiationStatus.FIXED,
        }

    def test_subs_expired_is_not_failed(self):
        assert NegotiationStatus.SUBS_EXPIRED not in FAILED_STATUSES


class TestContractStatus:
    def test_values(self):
        assert [s.value for s in ContractStatus] == ["draft", "working-copy", "final", "rejected"]


class TestEntityType:
    def test_str_is_value(self):
        assert str(EntityType.RECAP_MANAGER) == "recap_manager"
