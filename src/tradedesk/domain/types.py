"""Domain enumerations for the chartering trade desk."""

from enum import StrEnum


class EntityType(StrEnum):
    """Record types held in the record store."""

    ORDER = "order"
    NEGOTIATION = "negotiation"
    CONTRACT = "contract"
    FIXTURE = "fixture"
    RECAP_MANAGER = "recap_manager"
    CONTRACT_APPROVAL = "contract_approval"
    CONTRACT_SIGNATURE = "contract_signature"
    VESSEL = "vessel"
    COMPANY = "company"
    PORT = "port"
    CARGO_TYPE = "cargo_type"
    USER = "user"


class NegotiationStatus(StrEnum):
    """States in the bid/offer negotiation lifecycle."""

    INDICATIVE_OFFER = "indicative-offer"
    INDICATIVE_BID = "indicative-bid"
    FIRM_OFFER = "firm-offer"
    FIRM_BID = "firm-bid"
    FIRM = "firm"
    ON_SUBS = "on-subs"
    FIXED = "fixed"
    FIRM_OFFER_EXPIRED = "firm-offer-expired"
    WITHDRAWN = "withdrawn"
    FIRM_AMENDMENT = "firm-amendment"
    SUBS_EXPIRED = "subs-expired"
    SUBS_FAILED = "subs-failed"
    ON_SUBS_AMENDMENT = "on-subs-amendment"


class ContractStatus(StrEnum):
    """States of the binding charter party instrument."""

    DRAFT = "draft"
    WORKING_COPY = "working-copy"
    FINAL = "final"
    REJECTED = "rejected"


class ApprovalStatus(StrEnum):
    """Display-level approval state carried on a Contract."""

    PENDING_APPROVAL = "Pending approval"
    APPROVED = "Approved"
    SIGNED = "Signed"


class ContractType(StrEnum):
    """Charter party types."""

    VOYAGE_CHARTER = "voyage-charter"
    TIME_CHARTER = "time-charter"
    BAREBOAT = "bareboat"
    COA = "coa"


class FreightRateType(StrEnum):
    """How a freight rate is quoted."""

    WORLDSCALE = "worldscale"
    LUMPSUM = "lumpsum"
    PER_TONNE = "per-tonne"


class OrderType(StrEnum):
    """Commercial direction of an Order."""

    BUY = "buy"
    SELL = "sell"
    CHARTER = "charter"


class OrderStage(StrEnum):
    """Trade-desk stage of an Order."""

    OFFER = "offer"
    ACTIVE = "active"
    NEGOTIATING = "negotiating"
    PENDING = "pending"


class RecapStatus(StrEnum):
    """States of a wet-market recap manager."""

    DRAFT = "draft"
    ON_SUBS = "on-subs"
    FULLY_FIXED = "fully-fixed"
    CANCELED = "canceled"
    FAILED = "failed"


class FixtureStatus(StrEnum):
    """Umbrella deal states."""

    DRAFT = "draft"
    WORKING_COPY = "working-copy"
    FINAL = "final"
    ON_SUBS = "on-subs"
    FULLY_FIXED = "fully-fixed"
    CANCELED = "canceled"


class PartyRole(StrEnum):
    """Contract parties that approve and sign."""

    OWNER = "owner"
    CHARTERER = "charterer"
    BROKER = "broker"


class ApprovalState(StrEnum):
    """State of a single ContractApproval row."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SignatureState(StrEnum):
    """State of a single ContractSignature row."""

    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"


# Negotiation statuses under which a final Contract may legitimately exist.
CONTRACT_BEARING_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.FIRM, NegotiationStatus.ON_SUBS, NegotiationStatus.FIXED}
)

# Negotiation outcomes that can never back a final Contract.
FAILED_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {
        NegotiationStatus.WITHDRAWN,
        NegotiationStatus.FIRM_OFFER_EXPIRED,
        NegotiationStatus.SUBS_FAILED,
    }
)

# Negotiation statuses that must not have a Contract at all.
INDICATIVE_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.INDICATIVE_OFFER, NegotiationStatus.INDICATIVE_BID}
)
