"""Status progression maps for negotiations and contracts.

Each map lists, per status, the statuses a façade call may move a record to.
Re-asserting the current status is always allowed.  The status consistency
corrector is not bound by these maps: it repairs records that are already
inconsistent, which can require moves no user action would make.
"""

from __future__ import annotations

from tradedesk.domain.errors import InvalidTransitionError
from tradedesk.domain.types import ContractStatus, EntityType, NegotiationStatus

N = NegotiationStatus
C = ContractStatus

NEGOTIATION_TRANSITIONS: dict[NegotiationStatus, frozenset[NegotiationStatus]] = {
    # Indications
    N.INDICATIVE_OFFER: frozenset(
        {N.INDICATIVE_BID, N.FIRM_OFFER, N.FIRM_BID, N.FIRM, N.WITHDRAWN}
    ),
    N.INDICATIVE_BID: frozenset(
        {N.INDICATIVE_OFFER, N.FIRM_OFFER, N.FIRM_BID, N.FIRM, N.WITHDRAWN}
    ),
    # Firm exchanges
    N.FIRM_OFFER: frozenset({N.FIRM_BID, N.FIRM, N.FIRM_OFFER_EXPIRED, N.WITHDRAWN}),
    N.FIRM_BID: frozenset({N.FIRM_OFFER, N.FIRM, N.FIRM_OFFER_EXPIRED, N.WITHDRAWN}),
    N.FIRM: frozenset({N.ON_SUBS, N.FIXED, N.FIRM_AMENDMENT, N.WITHDRAWN}),
    N.FIRM_AMENDMENT: frozenset({N.FIRM, N.ON_SUBS, N.FIXED, N.WITHDRAWN}),
    # Subjects
    N.ON_SUBS: frozenset(
        {N.FIXED, N.ON_SUBS_AMENDMENT, N.SUBS_EXPIRED, N.SUBS_FAILED, N.WITHDRAWN}
    ),
    N.ON_SUBS_AMENDMENT: frozenset(
        {N.ON_SUBS, N.FIXED, N.SUBS_EXPIRED, N.SUBS_FAILED, N.WITHDRAWN}
    ),
    # Fixed deals only re-open through an amendment
    N.FIXED: frozenset({N.FIRM_AMENDMENT, N.ON_SUBS_AMENDMENT}),
    N.WITHDRAWN: frozenset(),
    N.FIRM_OFFER_EXPIRED: frozenset(),
    N.SUBS_EXPIRED: frozenset(),
    N.SUBS_FAILED: frozenset(),
}

CONTRACT_TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    C.DRAFT: frozenset({C.WORKING_COPY, C.FINAL, C.REJECTED}),
    C.WORKING_COPY: frozenset({C.FINAL, C.REJECTED}),
    C.FINAL: frozenset(),
    C.REJECTED: frozenset(),
}

TERMINAL_NEGOTIATION_STATUSES: frozenset[NegotiationStatus] = frozenset(
    status for status, targets in NEGOTIATION_TRANSITIONS.items() if not targets
)


def is_allowed_negotiation_transition(
    current: NegotiationStatus, target: NegotiationStatus
) -> bool:
    """Return True if a negotiation may move from *current* to *target*."""
    return current == target or target in NEGOTIATION_TRANSITIONS[current]


def is_allowed_contract_transition(current: ContractStatus, target: ContractStatus) -> bool:
    """Return True if a contract may move from *current* to *target*."""
    return current == target or target in CONTRACT_TRANSITIONS[current]


def check_negotiation_transition(current: NegotiationStatus, target: NegotiationStatus) -> None:
    """Raise if the negotiation transition is not in the progression map.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not is_allowed_negotiation_transition(current, target):
        raise InvalidTransitionError(EntityType.NEGOTIATION.value, current.value, target.value)


def check_contract_transition(current: ContractStatus, target: ContractStatus) -> None:
    """Raise if the contract transition is not in the progression map.

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not is_allowed_contract_transition(current, target):
        raise InvalidTransitionError(EntityType.CONTRACT.value, current.value, target.value)
