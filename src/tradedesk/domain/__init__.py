"""Domain types, models, and errors for the trade desk."""

from tradedesk.domain.errors import (
    DerivedFieldError,
    InvalidTransitionError,
    LinkageError,
    RecordNotFoundError,
    TradeDeskError,
)
from tradedesk.domain.models import (
    ActivityLogEntry,
    Contract,
    ContractApproval,
    ContractSignature,
    Correction,
    ExpandableItem,
    FieldChange,
    Fixture,
    IntegrityWarning,
    MutationResult,
    Negotiation,
    NegotiationAnalytics,
    Order,
    RecapManager,
    StatusTag,
)
from tradedesk.domain.types import (
    ContractStatus,
    EntityType,
    NegotiationStatus,
    RecapStatus,
)

__all__ = [
    "ActivityLogEntry",
    "Contract",
    "ContractApproval",
    "ContractSignature",
    "ContractStatus",
    "Correction",
    "DerivedFieldError",
    "EntityType",
    "ExpandableItem",
    "FieldChange",
    "Fixture",
    "IntegrityWarning",
    "InvalidTransitionError",
    "LinkageError",
    "MutationResult",
    "Negotiation",
    "NegotiationAnalytics",
    "NegotiationStatus",
    "Order",
    "RecapManager",
    "RecapStatus",
    "RecordNotFoundError",
    "StatusTag",
    "TradeDeskError",
]
