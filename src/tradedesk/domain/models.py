"""Pydantic v2 models for trade desk records and lifecycle results.

Records are immutable snapshots of what the record store holds.  Changes are
expressed by ``model_copy(update=...)`` and persisted as partial field writes,
so a snapshot never drifts from the delta that produced it.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tradedesk.domain.types import (
    ApprovalState,
    ContractStatus,
    ContractType,
    EntityType,
    FixtureStatus,
    FreightRateType,
    NegotiationStatus,
    OrderStage,
    OrderType,
    PartyRole,
    RecapStatus,
    SignatureState,
)

# Fields only the Rollup Aggregator may write.
FIXTURE_DERIVED_FIELDS: frozenset[str] = frozenset({"last_updated", "search_text"})

# Fields only the Analytics Extractor may write.
NEGOTIATION_ANALYTICS_FIELDS: tuple[str, ...] = (
    "first_freight_rate_indication",
    "highest_freight_rate_indication",
    "lowest_freight_rate_indication",
    "first_freight_rate_last_day",
    "highest_freight_rate_last_day",
    "lowest_freight_rate_last_day",
    "first_demurrage_indication",
    "highest_demurrage_indication",
    "lowest_demurrage_indication",
    "first_demurrage_last_day",
    "highest_demurrage_last_day",
    "lowest_demurrage_last_day",
)


class Record(BaseModel):
    """Common shape of every stored record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    created_at: int
    updated_at: int | None = None

    @property
    def freshness(self) -> int:
        """Timestamp this record contributes to a rollup."""
        return self.updated_at or self.created_at


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class Vessel(Record):
    name: str
    imo_number: str | None = None


class Company(Record):
    name: str


class Port(Record):
    name: str
    country: str | None = None
    unlocode: str | None = None


class CargoType(Record):
    name: str


class User(Record):
    name: str
    email: str | None = None


# ---------------------------------------------------------------------------
# Business records
# ---------------------------------------------------------------------------


class Order(Record):
    """Commercial intent the trade desk negotiates against."""

    order_number: str
    title: str | None = None
    description: str | None = None
    type: OrderType = OrderType.CHARTER
    stage: OrderStage = OrderStage.OFFER
    status: str = "draft"
    cargo_type_id: str | None = None
    quantity: float | None = None
    quantity_unit: str | None = None
    laycan_start: int | None = None
    laycan_end: int | None = None
    load_port_id: str | None = None
    discharge_port_id: str | None = None
    freight_rate: str | None = None
    freight_rate_type: FreightRateType | None = None
    demurrage_rate: str | None = None
    despatch_rate: str | None = None
    tce: str | None = None
    validity_hours: int | None = None
    charterer_id: str | None = None
    owner_id: str | None = None
    broker_id: str | None = None
    created_by_user_id: str | None = None


class Negotiation(Record):
    """A bid/offer thread against an Order with one counterparty."""

    negotiation_number: str
    order_id: str
    counterparty_id: str
    status: NegotiationStatus = NegotiationStatus.INDICATIVE_OFFER
    broker_id: str | None = None
    bid_price: str | None = None
    offer_price: str | None = None
    freight_rate: str | None = None
    demurrage_rate: str | None = None
    tce: str | None = None
    validity: str | None = None
    vessel_id: str | None = None
    person_in_charge_id: str | None = None
    deal_capture_user_id: str | None = None
    market_index_name: str | None = None
    load_delivery_type: str | None = None
    discharge_redelivery_type: str | None = None

    first_freight_rate_indication: Decimal | None = None
    highest_freight_rate_indication: Decimal | None = None
    lowest_freight_rate_indication: Decimal | None = None
    first_freight_rate_last_day: Decimal | None = None
    highest_freight_rate_last_day: Decimal | None = None
    lowest_freight_rate_last_day: Decimal | None = None
    first_demurrage_indication: Decimal | None = None
    highest_demurrage_indication: Decimal | None = None
    lowest_demurrage_indication: Decimal | None = None
    first_demurrage_last_day: Decimal | None = None
    highest_demurrage_last_day: Decimal | None = None
    lowest_demurrage_last_day: Decimal | None = None


class Contract(Record):
    """The binding charter party, trade-desk or out-of-trade."""

    contract_number: str
    contract_type: ContractType
    owner_id: str
    charterer_id: str
    status: ContractStatus = ContractStatus.DRAFT
    approval_status: str | None = None
    fixture_id: str | None = None
    negotiation_id: str | None = None
    order_id: str | None = None
    parent_contract_id: str | None = None
    broker_id: str | None = None
    vessel_id: str | None = None
    load_port_id: str | None = None
    discharge_port_id: str | None = None
    laycan_start: int | None = None
    laycan_end: int | None = None
    freight_rate: str | None = None
    freight_rate_type: FreightRateType | None = None
    demurrage_rate: str | None = None
    despatch_rate: str | None = None
    address_commission: str | None = None
    broker_commission: str | None = None
    cargo_type_id: str | None = None
    quantity: float | None = None
    quantity_unit: str | None = None
    load_delivery_type: str | None = None
    discharge_redelivery_type: str | None = None
    signed_at: int | None = None


class RecapManager(Record):
    """Wet-market recap of agreed main terms."""

    recap_number: str
    contract_type: ContractType
    owner_id: str
    charterer_id: str
    status: RecapStatus = RecapStatus.DRAFT
    approval_status: str | None = None
    fixture_id: str | None = None
    negotiation_id: str | None = None
    order_id: str | None = None
    broker_id: str | None = None
    vessel_id: str | None = None
    load_port_id: str | None = None
    discharge_port_id: str | None = None
    cargo_type_id: str | None = None
    freight_rate: str | None = None
    demurrage_rate: str | None = None
    fixed_at: int | None = None


class Fixture(Record):
    """Umbrella deal record.  ``last_updated`` and ``search_text`` are rollups."""

    fixture_number: str
    order_id: str | None = None
    title: str | None = None
    status: FixtureStatus = FixtureStatus.DRAFT
    last_updated: int | None = None
    search_text: str | None = None


class ContractApproval(Record):
    contract_id: str
    party_role: PartyRole
    company_id: str
    status: ApprovalState = ApprovalState.PENDING
    approved_by: str | None = None
    approved_at: int | None = None
    notes: str | None = None


class ContractSignature(Record):
    contract_id: str
    party_role: PartyRole
    company_id: str
    status: SignatureState = SignatureState.PENDING
    signed_by: str | None = None
    signed_at: int | None = None
    signing_method: str | None = None


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------


class StatusTag(BaseModel):
    """Optional status marker on an activity entry."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class ExpandableItem(BaseModel):
    """A labelled value in an activity entry's structured payload."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: str


class ActivityLogEntry(BaseModel):
    """An immutable fact about one record, appended to the event log."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    entity_id: str
    action: str
    timestamp: int
    description: str = ""
    status: StatusTag | None = None
    expandable: list[ExpandableItem] | None = None
    metadata: dict[str, Any] | None = None
    user_id: str | None = None
    id: int | None = None

    @field_validator("action")
    @classmethod
    def action_must_not_be_empty(cls, v: str) -> str:
        """Ensure action is not empty or whitespace-only."""
        if not v.strip():
            raise ValueError("action must not be empty")
        return v


class FieldChange(BaseModel):
    """Before/after audit record for one named field."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    entity_id: str
    field_name: str
    old_value: str | None
    new_value: str | None
    timestamp: int
    user_id: str | None = None
    change_reason: str | None = None


# ---------------------------------------------------------------------------
# Lifecycle results
# ---------------------------------------------------------------------------


class Correction(BaseModel):
    """One corrector rule firing against one record.

    ``changes`` maps each rewritten field to its new value and ``previous``
    to the value it replaced.
    """

    model_config = ConfigDict(frozen=True)

    rule: str
    entity_type: EntityType
    entity_id: str
    changes: dict[str, str]
    previous: dict[str, str | None]
    message: str


class IntegrityWarning(BaseModel):
    """A detected inconsistency the corrector cannot repair by itself."""

    model_config = ConfigDict(frozen=True)

    rule: str
    entity_type: EntityType
    entity_id: str
    message: str


class NegotiationAnalytics(BaseModel):
    """Rate statistics mined from a negotiation's activity history."""

    model_config = ConfigDict(frozen=True)

    freight_rates_found: int = 0
    demurrage_rates_found: int = 0

    first_freight_rate_indication: Decimal | None = None
    highest_freight_rate_indication: Decimal | None = None
    lowest_freight_rate_indication: Decimal | None = None
    first_freight_rate_last_day: Decimal | None = None
    highest_freight_rate_last_day: Decimal | None = None
    lowest_freight_rate_last_day: Decimal | None = None
    first_demurrage_indication: Decimal | None = None
    highest_demurrage_indication: Decimal | None = None
    lowest_demurrage_indication: Decimal | None = None
    first_demurrage_last_day: Decimal | None = None
    highest_demurrage_last_day: Decimal | None = None
    lowest_demurrage_last_day: Decimal | None = None

    def derived_fields(self) -> dict[str, Decimal | None]:
        """Return the twelve statistics keyed by their negotiation field name."""
        return {name: getattr(self, name) for name in NEGOTIATION_ANALYTICS_FIELDS}


class StepFailure(BaseModel):
    """A post-write saga step that exhausted its retries."""

    model_config = ConfigDict(frozen=True)

    step: str
    error: str
    repair_hint: str


class MutationResult(BaseModel):
    """Outcome of a lifecycle façade call.

    ``record_id`` is the primary record the call created or changed.  Any
    corrections and warnings are reported here rather than raised; failed
    post-write steps are listed so the caller can run the matching repair.
    """

    model_config = ConfigDict(frozen=True)

    record_id: str
    corrections: list[Correction] = Field(default_factory=list)
    warnings: list[IntegrityWarning] = Field(default_factory=list)
    fixture_ids: list[str] = Field(default_factory=list)
    failed_steps: list[StepFailure] = Field(default_factory=list)
    analytics: NegotiationAnalytics | None = None

    @property
    def succeeded_cleanly(self) -> bool:
        """True when every post-write step completed."""
        return not self.failed_steps


class ConsistencyReport(BaseModel):
    """Outcome of a status consistency repair run."""

    model_config = ConfigDict(frozen=True)

    negotiation_id: str
    contract_id: str | None = None
    corrections: list[Correction] = Field(default_factory=list)
    warnings: list[IntegrityWarning] = Field(default_factory=list)
