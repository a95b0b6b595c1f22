"""Lifecycle Mutation Façade.

Every operation that creates or changes a business record runs as a saga:

    primary write -> reconcile Negotiation/Contract -> recompute owning
    Fixture rollups -> (qualifying negotiation statuses) analytics ->
    append one activity entry

The primary write happens once and its errors propagate to the caller.  The
follow-up steps are retried and, if they still fail, reported on the returned
:class:`MutationResult` together with the repair operation that recovers
them.  ``repair_fixture_rollups`` and ``repair_status_consistency`` are the
idempotent re-entry points for that recovery and for backfills.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog

from tradedesk.clock import Clock, now_ms
from tradedesk.config import Settings, get_settings
from tradedesk.domain.errors import (
    DerivedFieldError,
    InvalidTransitionError,
    LinkageError,
    RecordNotFoundError,
)
from tradedesk.domain.models import (
    FIXTURE_DERIVED_FIELDS,
    NEGOTIATION_ANALYTICS_FIELDS,
    ConsistencyReport,
    Contract,
    ExpandableItem,
    FieldChange,
    Fixture,
    MutationResult,
    Negotiation,
    NegotiationAnalytics,
    Order,
    RecapManager,
    Record,
)
from tradedesk.domain.types import (
    ContractStatus,
    EntityType,
    NegotiationStatus,
    RecapStatus,
)
from tradedesk.lifecycle.analytics import summarize_negotiation_history
from tradedesk.lifecycle.corrector import Reconciliation, reconcile
from tradedesk.lifecycle.rollup import RollupAggregator
from tradedesk.lifecycle.saga import SagaContext, SagaRunner, SagaStep
from tradedesk.lifecycle.transitions import check_contract_transition, check_negotiation_transition
from tradedesk.lifecycle.workflow import ContractWorkflow
from tradedesk.observability.metrics import CORRECTIONS_APPLIED
from tradedesk.store.activity import ActivityLogger
from tradedesk.store.event_log import EventLog
from tradedesk.store.records import RecordStore
from tradedesk.store.references import ReferenceResolver

logger = structlog.get_logger()

R = TypeVar("R", bound=Record)

# Business fields a caller may patch through update_negotiation / update_contract.
NEGOTIATION_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "counterparty_id",
        "broker_id",
        "bid_price",
        "offer_price",
        "freight_rate",
        "demurrage_rate",
        "tce",
        "validity",
        "vessel_id",
        "person_in_charge_id",
        "deal_capture_user_id",
        "market_index_name",
        "load_delivery_type",
        "discharge_redelivery_type",
    }
)

CONTRACT_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "broker_id",
        "vessel_id",
        "load_port_id",
        "discharge_port_id",
        "laycan_start",
        "laycan_end",
        "freight_rate",
        "freight_rate_type",
        "demurrage_rate",
        "despatch_rate",
        "address_commission",
        "broker_commission",
        "cargo_type_id",
        "quantity",
        "quantity_unit",
        "approval_status",
        "load_delivery_type",
        "discharge_redelivery_type",
    }
)

FIXTURE_UPDATABLE_FIELDS: frozenset[str] = frozenset({"title", "status"})

# Fields no caller may set on create.
_SYSTEM_FIELDS = frozenset({"id", "created_at", "updated_at"})


def generate_number(prefix: str) -> str:
    """Return a human-readable record number such as ``NEG48213``."""
    return f"{prefix}{random.randint(10000, 99999)}"


def _format_date(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC).date().isoformat()


def _stringify(value: Any) -> str | None:
    return None if value is None else str(value)


def rate_payload(
    freight_rate: str | None = None,
    demurrage_rate: str | None = None,
    laycan_start: int | None = None,
    laycan_end: int | None = None,
    quantity: float | None = None,
    quantity_unit: str | None = None,
) -> list[ExpandableItem]:
    """Build the structured payload attached to negotiation and contract events.

    Only known values are included.  ``Freight Rate`` and ``Demurrage`` are
    the labels the analytics extractor mines.
    """
    items: list[ExpandableItem] = []
    if freight_rate:
        items.append(ExpandableItem(label="Freight Rate", value=freight_rate))
    if demurrage_rate:
        items.append(ExpandableItem(label="Demurrage", value=demurrage_rate))
    if laycan_start is not None and laycan_end is not None:
        items.append(
            ExpandableItem(
                label="Laycan",
                value=f"{_format_date(laycan_start)} to {_format_date(laycan_end)}",
            )
        )
    if quantity is not None:
        unit = quantity_unit or "MT"
        items.append(ExpandableItem(label="Quantity", value=f"{quantity:g} {unit}"))
    return items


class TradeDesk:
    """Entry points for every lifecycle write.

    Args:
        store: Record store holding every business and reference record.
        event_log: Append-only activity and field change log.
        settings: Runtime settings; defaults to ``get_settings()``.
        clock: Epoch-millisecond clock; defaults to wall-clock time.
    """

    def __init__(
        self,
        store: RecordStore,
        event_log: EventLog,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._event_log = event_log
        self._settings = settings or get_settings()
        self._clock = clock or now_ms
        self._activity = ActivityLogger(event_log)
        self._rollups = RollupAggregator(store, ReferenceResolver(store))
        self._workflow = ContractWorkflow(store, self._clock)
        self._saga = SagaRunner(
            attempts=self._settings.saga_step_attempts,
            wait_seconds=self._settings.saga_retry_wait_seconds,
        )

    @property
    def workflow(self) -> ContractWorkflow:
        """Approval and signature operations for Contracts."""
        return self._workflow

    @property
    def rollups(self) -> RollupAggregator:
        return self._rollups

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, model: type[R], entity_type: EntityType, record_id: str) -> R:
        body = self._store.get(entity_type, record_id)
        if body is None:
            raise RecordNotFoundError(entity_type.value, record_id)
        return model.model_validate(body)

    def get_order(self, order_id: str) -> Order:
        return self._load(Order, EntityType.ORDER, order_id)

    def get_negotiation(self, negotiation_id: str) -> Negotiation:
        return self._load(Negotiation, EntityType.NEGOTIATION, negotiation_id)

    def get_contract(self, contract_id: str) -> Contract:
        return self._load(Contract, EntityType.CONTRACT, contract_id)

    def get_fixture(self, fixture_id: str) -> Fixture:
        return self._load(Fixture, EntityType.FIXTURE, fixture_id)

    def get_recap_manager(self, recap_id: str) -> RecapManager:
        return self._load(RecapManager, EntityType.RECAP_MANAGER, recap_id)

    def active_contract(self, negotiation_id: str) -> Contract | None:
        """Return the newest non-rejected Contract linked to a Negotiation."""
        contracts = [
            Contract.model_validate(body)
            for body in self._store.query_by_index(
                EntityType.CONTRACT, "by_negotiation", negotiation_id
            )
        ]
        live = [c for c in contracts if c.status != ContractStatus.REJECTED]
        return live[-1] if live else None

    # ------------------------------------------------------------------
    # Orders and Fixtures
    # ------------------------------------------------------------------

    def create_order(self, fields: Mapping[str, Any], user_id: str | None = None) -> MutationResult:
        """Create an Order and its trade-desk Fixture."""

        def primary(ctx: SagaContext) -> str:
            body = {**fields, "order_number": generate_number("ORD")}
            if user_id:
                body.setdefault("created_by_user_id", user_id)
            order = self._insert(Order, EntityType.ORDER, body)
            ctx.data["order"] = order
            logger.info("order_created", order_id=order.id, order_number=order.order_number)
            return order.id

        def create_fixture(ctx: SagaContext) -> None:
            ctx.add_fixtures([self._ensure_order_fixture(ctx.data["order"], user_id)])

        def append_event(ctx: SagaContext) -> None:
            order: Order = ctx.data["order"]
            self._activity.log_created(
                EntityType.ORDER,
                order.id,
                order.order_number,
                order.created_at,
                status=order.status,
                expandable=rate_payload(
                    order.freight_rate,
                    order.demurrage_rate,
                    order.laycan_start,
                    order.laycan_end,
                    order.quantity,
                    order.quantity_unit,
                ),
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                SagaStep("create_fixture", create_fixture, "create_fixture_for_order"),
                self._rollup_step(lambda ctx: list(ctx.fixture_ids)),
                SagaStep("append_event", append_event, "append the order created entry"),
            ],
        )
        return self._result(ctx)

    def create_fixture_for_order(
        self, order_id: str, title: str | None = None, user_id: str | None = None
    ) -> MutationResult:
        """Create the trade-desk Fixture for an Order, or return the existing one."""

        def primary(ctx: SagaContext) -> str:
            order = self.get_order(order_id)
            return self._ensure_order_fixture(order, user_id, title)

        ctx = self._saga.run(primary, [self._rollup_step(lambda ctx: [ctx.record_id])])
        return self._result(ctx)

    def create_fixture_for_contract(
        self, contract_id: str, title: str | None = None, user_id: str | None = None
    ) -> MutationResult:
        """Create the out-of-trade Fixture for a Contract, or return its existing one."""

        def primary(ctx: SagaContext) -> str:
            contract = self.get_contract(contract_id)
            return self._ensure_contract_fixture(contract, user_id, title)

        ctx = self._saga.run(primary, [self._rollup_step(lambda ctx: [ctx.record_id])])
        return self._result(ctx)

    def update_fixture(
        self, fixture_id: str, partial_fields: Mapping[str, Any], user_id: str | None = None
    ) -> MutationResult:
        """Patch a Fixture's ``title`` or ``status`` and refresh its rollups.

        Raises:
            RecordNotFoundError: If the Fixture does not exist.
            DerivedFieldError: If ``last_updated`` or ``search_text`` is given.
            ValueError: If any other field is given.
        """
        fields = dict(partial_fields)
        _reject_derived(fields, FIXTURE_DERIVED_FIELDS)
        unknown = sorted(set(fields) - FIXTURE_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not updatable: {', '.join(unknown)}")

        def primary(ctx: SagaContext) -> str:
            existing = self.get_fixture(fixture_id)
            now = self._clock()
            updated = existing.model_validate({**existing.model_dump(), **fields})
            dumped = updated.model_dump(mode="json")
            patch = {name: dumped[name] for name in fields}
            self._store.put(EntityType.FIXTURE, fixture_id, {**patch, "updated_at": now})
            return fixture_id

        def append_event(ctx: SagaContext) -> None:
            self._activity.log_updated(
                EntityType.FIXTURE, fixture_id, list(fields), self._clock(), user_id=user_id
            )

        ctx = self._saga.run(
            primary,
            [
                self._rollup_step(lambda ctx: [fixture_id]),
                SagaStep("append_event", append_event, "append the fixture updated entry"),
            ],
        )
        return self._result(ctx)

    def _ensure_order_fixture(
        self, order: Order, user_id: str | None = None, title: str | None = None
    ) -> str:
        existing = self._rollups.fixture_for_order(order.id)
        if existing is not None:
            return existing
        fixture = self._insert(
            Fixture,
            EntityType.FIXTURE,
            {
                "fixture_number": generate_number("FIX"),
                "order_id": order.id,
                "title": title or order.title,
            },
        )
        self._activity.log_created(
            EntityType.FIXTURE,
            fixture.id,
            fixture.fixture_number,
            fixture.created_at,
            status=fixture.status,
            user_id=user_id,
        )
        logger.info("fixture_created", fixture_id=fixture.id, order_id=order.id)
        return fixture.id

    def _ensure_contract_fixture(
        self, contract: Contract, user_id: str | None = None, title: str | None = None
    ) -> str:
        if contract.fixture_id and self._store.get(EntityType.FIXTURE, contract.fixture_id):
            return contract.fixture_id
        if contract.order_id:
            fixture_id = self._ensure_order_fixture(self.get_order(contract.order_id), user_id)
        else:
            fixture = self._insert(
                Fixture,
                EntityType.FIXTURE,
                {"fixture_number": generate_number("FIX"), "title": title},
            )
            self._activity.log_created(
                EntityType.FIXTURE,
                fixture.id,
                fixture.fixture_number,
                fixture.created_at,
                status=fixture.status,
                user_id=user_id,
            )
            logger.info("fixture_created", fixture_id=fixture.id, contract_id=contract.id)
            fixture_id = fixture.id
        self._store.put(
            EntityType.CONTRACT,
            contract.id,
            {"fixture_id": fixture_id, "updated_at": self._clock()},
        )
        return fixture_id

    # ------------------------------------------------------------------
    # Negotiations
    # ------------------------------------------------------------------

    def create_negotiation(
        self,
        order_id: str,
        counterparty_id: str,
        rate_fields: Mapping[str, Any] | None = None,
        initial_status: NegotiationStatus | str | None = None,
        user_id: str | None = None,
    ) -> MutationResult:
        """Create a Negotiation against an existing Order.

        Raises:
            RecordNotFoundError: If the Order does not exist.
            DerivedFieldError: If *rate_fields* sets analytics fields.
        """
        rate_fields = dict(rate_fields or {})
        _reject_derived(rate_fields, NEGOTIATION_ANALYTICS_FIELDS)
        status = NegotiationStatus(initial_status or NegotiationStatus.INDICATIVE_OFFER)

        def primary(ctx: SagaContext) -> str:
            self.get_order(order_id)
            negotiation = self._insert(
                Negotiation,
                EntityType.NEGOTIATION,
                {
                    **rate_fields,
                    "negotiation_number": generate_number("NEG"),
                    "order_id": order_id,
                    "counterparty_id": counterparty_id,
                    "status": status.value,
                },
            )
            logger.info(
                "negotiation_created",
                negotiation_id=negotiation.id,
                order_id=order_id,
                status=status.value,
            )
            return negotiation.id

        def append_event(ctx: SagaContext) -> None:
            negotiation = self.get_negotiation(ctx.record_id)
            self._activity.log_created(
                EntityType.NEGOTIATION,
                negotiation.id,
                negotiation.negotiation_number,
                negotiation.created_at,
                status=negotiation.status,
                expandable=self._negotiation_payload(negotiation),
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                self._reconcile_step(lambda ctx: ctx.record_id),
                self._negotiation_rollup_step(),
                SagaStep("append_event", append_event, "append the negotiation created entry"),
            ],
        )
        return self._result(ctx)

    def update_negotiation(
        self,
        negotiation_id: str,
        partial_fields: Mapping[str, Any],
        user_id: str | None = None,
        change_reason: str | None = None,
    ) -> MutationResult:
        """Patch a Negotiation's business fields.

        Status changes go through ``update_negotiation_status``.

        Raises:
            RecordNotFoundError: If the Negotiation does not exist.
            DerivedFieldError: If an analytics field is in *partial_fields*.
            ValueError: If a field is not patchable here.
        """
        fields = dict(partial_fields)
        _reject_derived(fields, NEGOTIATION_ANALYTICS_FIELDS)
        _reject_unknown(fields, NEGOTIATION_UPDATABLE_FIELDS, "update_negotiation_status")

        def primary(ctx: SagaContext) -> str:
            existing = self.get_negotiation(negotiation_id)
            ctx.data["changes"] = self._patch(
                EntityType.NEGOTIATION, existing, fields, user_id, change_reason
            )
            return negotiation_id

        def append_event(ctx: SagaContext) -> None:
            negotiation = self.get_negotiation(negotiation_id)
            changes: list[FieldChange] = ctx.data["changes"]
            self._activity.log_updated(
                EntityType.NEGOTIATION,
                negotiation_id,
                [c.field_name for c in changes],
                self._clock(),
                expandable=self._negotiation_payload(negotiation),
                corrections=ctx.corrections,
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                self._reconcile_step(lambda ctx: negotiation_id),
                self._negotiation_rollup_step(),
                self._field_change_step(),
                SagaStep("append_event", append_event, "append the negotiation updated entry"),
            ],
        )
        return self._result(ctx)

    def update_negotiation_status(
        self,
        negotiation_id: str,
        new_status: NegotiationStatus | str,
        user_id: str | None = None,
    ) -> MutationResult:
        """Move a Negotiation to *new_status*.

        Statuses listed in ``Settings.analytics_trigger_statuses`` also
        recompute the Negotiation's rate analytics.

        Raises:
            RecordNotFoundError: If the Negotiation does not exist.
            InvalidTransitionError: If transitions are enforced and the move
                is not in the progression map.
        """
        target = NegotiationStatus(new_status)

        def primary(ctx: SagaContext) -> str:
            existing = self.get_negotiation(negotiation_id)
            if self._settings.enforce_status_transitions:
                check_negotiation_transition(existing.status, target)
            ctx.data["from_status"] = existing.status
            self._store.put(
                EntityType.NEGOTIATION,
                negotiation_id,
                {"status": target.value, "updated_at": self._clock()},
            )
            logger.info(
                "negotiation_status_changed",
                negotiation_id=negotiation_id,
                from_status=existing.status.value,
                to_status=target.value,
            )
            return negotiation_id

        def append_event(ctx: SagaContext) -> None:
            negotiation = self.get_negotiation(negotiation_id)
            self._activity.log_status_change(
                EntityType.NEGOTIATION,
                negotiation_id,
                ctx.data["from_status"].value,
                target.value,
                self._clock(),
                expandable=self._negotiation_payload(negotiation),
                corrections=ctx.corrections,
                user_id=user_id,
            )

        steps = [
            self._reconcile_step(lambda ctx: negotiation_id),
            self._negotiation_rollup_step(),
        ]
        if target.value in self._settings.analytics_trigger_statuses:
            steps.append(self._analytics_step(negotiation_id))
        steps.append(SagaStep("append_event", append_event, "append the status changed entry"))

        ctx = self._saga.run(primary, steps)
        return self._result(ctx)

    def compute_negotiation_analytics(self, negotiation_id: str) -> NegotiationAnalytics:
        """Recompute and persist a Negotiation's rate analytics from its history.

        Only the analytics fields are written; ``updated_at`` is left alone
        so the computation does not disturb Fixture freshness.

        Raises:
            RecordNotFoundError: If the Negotiation does not exist.
        """
        negotiation = self.get_negotiation(negotiation_id)
        entries = self._event_log.query_by_entity(EntityType.NEGOTIATION, negotiation_id)
        analytics = summarize_negotiation_history(
            negotiation, entries, self._settings.analytics_window_hours
        )
        self._store.put(EntityType.NEGOTIATION, negotiation_id, analytics.derived_fields())
        logger.info(
            "negotiation_analytics_computed",
            negotiation_id=negotiation_id,
            freight_rates_found=analytics.freight_rates_found,
            demurrage_rates_found=analytics.demurrage_rates_found,
        )
        return analytics

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def create_contract(
        self, fields: Mapping[str, Any], user_id: str | None = None
    ) -> MutationResult:
        """Create a draft Contract.

        A trade-desk Contract carries both ``order_id`` and ``negotiation_id``
        and defaults to its Order's Fixture; an out-of-trade Contract carries
        neither and gets a Fixture of its own unless ``fixture_id`` is given.
        Pending approvals and signatures are created for owner and charterer.

        Raises:
            LinkageError: If exactly one of order/negotiation is given, or the
                Negotiation belongs to another Order.
            RecordNotFoundError: If a linked Order, Negotiation or Fixture is
                missing.
        """
        fields = {k: v for k, v in fields.items() if k not in _SYSTEM_FIELDS}
        order_id = fields.get("order_id")
        negotiation_id = fields.get("negotiation_id")
        if bool(order_id) != bool(negotiation_id):
            raise LinkageError("order_id and negotiation_id must both be present or both be empty")

        def primary(ctx: SagaContext) -> str:
            if negotiation_id:
                negotiation = self.get_negotiation(negotiation_id)
                if negotiation.order_id != order_id:
                    raise LinkageError(
                        f"Negotiation {negotiation_id!r} belongs to order "
                        f"{negotiation.order_id!r}, not {order_id!r}"
                    )
                self.get_order(order_id)
            fixture_id = fields.get("fixture_id")
            if fixture_id:
                self.get_fixture(fixture_id)
            elif order_id:
                fixture_id = self._rollups.fixture_for_order(order_id)

            contract = self._insert(
                Contract,
                EntityType.CONTRACT,
                {
                    **fields,
                    "contract_number": generate_number("CP"),
                    "status": ContractStatus.DRAFT.value,
                    "fixture_id": fixture_id,
                },
            )
            logger.info(
                "contract_created",
                contract_id=contract.id,
                negotiation_id=negotiation_id,
                fixture_id=fixture_id,
            )
            return contract.id

        def ensure_fixture(ctx: SagaContext) -> None:
            contract = self.get_contract(ctx.record_id)
            ctx.add_fixtures([self._ensure_contract_fixture(contract, user_id)])

        def create_satellites(ctx: SagaContext) -> None:
            self._workflow.create_for_contract(self.get_contract(ctx.record_id))

        def append_event(ctx: SagaContext) -> None:
            contract = self.get_contract(ctx.record_id)
            self._activity.log_created(
                EntityType.CONTRACT,
                contract.id,
                contract.contract_number,
                contract.created_at,
                status=contract.status,
                expandable=self._contract_payload(contract),
                user_id=user_id,
            )

        steps = [
            SagaStep("ensure_fixture", ensure_fixture, "create_fixture_for_contract"),
            SagaStep("create_satellites", create_satellites, "re-run contract workflow creation"),
        ]
        if negotiation_id:
            steps.append(
                self._reconcile_step(lambda ctx: negotiation_id, lambda ctx: ctx.record_id)
            )
        steps += [
            self._contract_rollup_step(),
            SagaStep("append_event", append_event, "append the contract created entry"),
        ]
        ctx = self._saga.run(primary, steps)
        return self._result(ctx)

    def update_contract(
        self,
        contract_id: str,
        partial_fields: Mapping[str, Any],
        user_id: str | None = None,
        change_reason: str | None = None,
    ) -> MutationResult:
        """Patch a Contract's business fields.

        Raises:
            RecordNotFoundError: If the Contract does not exist.
            ValueError: If a field is not patchable here.
        """
        fields = dict(partial_fields)
        _reject_unknown(fields, CONTRACT_UPDATABLE_FIELDS, "update_contract_status")

        def primary(ctx: SagaContext) -> str:
            existing = self.get_contract(contract_id)
            ctx.data["changes"] = self._patch(
                EntityType.CONTRACT, existing, fields, user_id, change_reason
            )
            return contract_id

        def append_event(ctx: SagaContext) -> None:
            contract = self.get_contract(contract_id)
            changes: list[FieldChange] = ctx.data["changes"]
            self._activity.log_updated(
                EntityType.CONTRACT,
                contract_id,
                [c.field_name for c in changes],
                self._clock(),
                expandable=self._contract_payload(contract),
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                self._contract_rollup_step(),
                self._field_change_step(),
                SagaStep("append_event", append_event, "append the contract updated entry"),
            ],
        )
        return self._result(ctx)

    def update_contract_status(
        self,
        contract_id: str,
        new_status: ContractStatus | str,
        user_id: str | None = None,
    ) -> MutationResult:
        """Move a Contract to *new_status*.

        ``final`` stamps ``signed_at``.  A linked Negotiation is then reconciled
        against the Contract; a rejected Contract no longer takes part, so the
        Negotiation is reconciled against its remaining active Contract.
        Finally pending satellites are settled from the Contract's status after
        reconciliation: ``final`` approves and signs them, ``rejected`` rejects
        them.

        Raises:
            RecordNotFoundError: If the Contract does not exist.
            InvalidTransitionError: If transitions are enforced and the move
                is not in the progression map.  A final Contract can never be
                rejected.
        """
        target = ContractStatus(new_status)

        def primary(ctx: SagaContext) -> str:
            existing = self.get_contract(contract_id)
            if self._settings.enforce_status_transitions:
                check_contract_transition(existing.status, target)
            elif existing.status == ContractStatus.FINAL and target == ContractStatus.REJECTED:
                # A fixed Negotiation keeps its final Contract.
                raise InvalidTransitionError(
                    EntityType.CONTRACT.value, existing.status.value, target.value
                )
            ctx.data["from_status"] = existing.status
            ctx.data["negotiation_id"] = existing.negotiation_id
            now = self._clock()
            update: dict[str, Any] = {"status": target.value, "updated_at": now}
            if target == ContractStatus.FINAL:
                update["signed_at"] = now
            self._store.put(EntityType.CONTRACT, contract_id, update)
            logger.info(
                "contract_status_changed",
                contract_id=contract_id,
                from_status=existing.status.value,
                to_status=target.value,
            )
            return contract_id

        def reconcile_linked(ctx: SagaContext) -> None:
            negotiation_id = ctx.data["negotiation_id"]
            if not negotiation_id:
                return
            if target == ContractStatus.REJECTED:
                self._apply_reconciliation(ctx, negotiation_id)
            else:
                self._apply_reconciliation(ctx, negotiation_id, contract_id)

        def settle(ctx: SagaContext) -> None:
            self._workflow.settle(contract_id, self.get_contract(contract_id).status, user_id)

        def append_event(ctx: SagaContext) -> None:
            contract = self.get_contract(contract_id)
            self._activity.log_status_change(
                EntityType.CONTRACT,
                contract_id,
                ctx.data["from_status"].value,
                target.value,
                self._clock(),
                expandable=self._contract_payload(contract),
                corrections=ctx.corrections,
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                SagaStep("reconcile_status", reconcile_linked, "repair_status_consistency"),
                SagaStep("settle_satellites", settle, "re-run contract workflow settlement"),
                self._contract_rollup_step(),
                SagaStep("append_event", append_event, "append the status changed entry"),
            ],
        )
        return self._result(ctx)

    # ------------------------------------------------------------------
    # Recap managers
    # ------------------------------------------------------------------

    def create_recap_manager(
        self, fields: Mapping[str, Any], user_id: str | None = None
    ) -> MutationResult:
        """Create a RecapManager; it joins its Order's Fixture unless one is given.

        Raises:
            RecordNotFoundError: If a linked Fixture or Order is missing.
        """
        fields = {k: v for k, v in fields.items() if k not in _SYSTEM_FIELDS}

        def primary(ctx: SagaContext) -> str:
            fixture_id = fields.get("fixture_id")
            if fixture_id:
                self.get_fixture(fixture_id)
            elif fields.get("order_id"):
                self.get_order(fields["order_id"])
                fixture_id = self._rollups.fixture_for_order(fields["order_id"])
            recap = self._insert(
                RecapManager,
                EntityType.RECAP_MANAGER,
                {**fields, "recap_number": generate_number("RCP"), "fixture_id": fixture_id},
            )
            logger.info("recap_manager_created", recap_id=recap.id, fixture_id=fixture_id)
            return recap.id

        def append_event(ctx: SagaContext) -> None:
            recap = self.get_recap_manager(ctx.record_id)
            self._activity.log_created(
                EntityType.RECAP_MANAGER,
                recap.id,
                recap.recap_number,
                recap.created_at,
                status=recap.status,
                expandable=rate_payload(recap.freight_rate, recap.demurrage_rate),
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                self._recap_rollup_step(),
                SagaStep("append_event", append_event, "append the recap created entry"),
            ],
        )
        return self._result(ctx)

    def update_recap_manager_status(
        self, recap_id: str, new_status: RecapStatus | str, user_id: str | None = None
    ) -> MutationResult:
        """Move a RecapManager to *new_status*; ``fully-fixed`` stamps ``fixed_at``.

        Raises:
            RecordNotFoundError: If the RecapManager does not exist.
        """
        target = RecapStatus(new_status)

        def primary(ctx: SagaContext) -> str:
            existing = self.get_recap_manager(recap_id)
            ctx.data["from_status"] = existing.status
            now = self._clock()
            update: dict[str, Any] = {"status": target.value, "updated_at": now}
            if target == RecapStatus.FULLY_FIXED:
                update["fixed_at"] = now
            self._store.put(EntityType.RECAP_MANAGER, recap_id, update)
            return recap_id

        def append_event(ctx: SagaContext) -> None:
            recap = self.get_recap_manager(recap_id)
            self._activity.log_status_change(
                EntityType.RECAP_MANAGER,
                recap_id,
                ctx.data["from_status"].value,
                target.value,
                self._clock(),
                user_id=user_id,
            )

        ctx = self._saga.run(
            primary,
            [
                self._recap_rollup_step(),
                SagaStep("append_event", append_event, "append the status changed entry"),
            ],
        )
        return self._result(ctx)

    # ------------------------------------------------------------------
    # Repair / backfill
    # ------------------------------------------------------------------

    def repair_fixture_rollups(self, fixture_id: str) -> Fixture:
        """Recompute a Fixture's derived fields.  Safe to re-run at any time.

        Raises:
            RecordNotFoundError: If the Fixture does not exist.
        """
        return self._rollups.recompute(fixture_id)

    def repair_all_fixtures(self) -> list[Fixture]:
        """Recompute derived fields on every Fixture in the store."""
        return [
            self._rollups.recompute(fixture_id)
            for fixture_id in self._store.list_ids(EntityType.FIXTURE)
        ]

    def repair_status_consistency(
        self, negotiation_id: str, contract_id: str | None = None
    ) -> ConsistencyReport:
        """Reconcile a Negotiation with its Contract and persist any corrections.

        Without *contract_id* the Negotiation's active Contract is used.  A
        second call with no intervening writes reports no corrections.

        Raises:
            RecordNotFoundError: If either record does not exist.
            LinkageError: If the Contract belongs to another Negotiation.
        """
        ctx = SagaContext(record_id=negotiation_id)
        result = self._apply_reconciliation(ctx, negotiation_id, contract_id)
        if result.corrections:
            self._activity.log_consistency_repair(
                negotiation_id, list(result.corrections), self._clock()
            )
            fixture_ids = self._rollups.fixtures_for_negotiation(result.negotiation)
            if result.contract is not None:
                fixture_ids += self._rollups.fixtures_for_contract(result.contract)
            for fixture_id in dict.fromkeys(fixture_ids):
                self._rollups.recompute(fixture_id)
        return ConsistencyReport(
            negotiation_id=negotiation_id,
            contract_id=result.contract.id if result.contract else None,
            corrections=list(result.corrections),
            warnings=list(result.warnings),
        )

    # ------------------------------------------------------------------
    # Saga steps
    # ------------------------------------------------------------------

    def _apply_reconciliation(
        self, ctx: SagaContext, negotiation_id: str, contract_id: str | None = None
    ) -> Reconciliation:
        negotiation = self.get_negotiation(negotiation_id)
        if contract_id:
            contract: Contract | None = self.get_contract(contract_id)
            if contract is not None and contract.negotiation_id != negotiation_id:
                raise LinkageError(
                    f"Contract {contract_id!r} is not linked to negotiation {negotiation_id!r}"
                )
        else:
            contract = self.active_contract(negotiation_id)

        result = reconcile(negotiation, contract)
        now = self._clock()
        for (entity_type, record_id), changes in result.deltas().items():
            self._store.put(entity_type, record_id, {**changes, "updated_at": now})

        for correction in result.corrections:
            logger.warning(
                "status_correction_applied",
                rule=correction.rule,
                entity_type=correction.entity_type.value,
                entity_id=correction.entity_id,
                changes=correction.changes,
                previous=correction.previous,
            )
            CORRECTIONS_APPLIED.labels(rule=correction.rule).inc()
        for warning in result.warnings:
            logger.warning(
                "status_integrity_warning",
                rule=warning.rule,
                entity_type=warning.entity_type.value,
                entity_id=warning.entity_id,
            )

        ctx.corrections.extend(result.corrections)
        ctx.warnings.extend(w for w in result.warnings if w not in ctx.warnings)
        return result

    def _reconcile_step(
        self,
        negotiation_id: Callable[[SagaContext], str],
        contract_id: Callable[[SagaContext], str | None] = lambda ctx: None,
    ) -> SagaStep:
        def action(ctx: SagaContext) -> None:
            self._apply_reconciliation(ctx, negotiation_id(ctx), contract_id(ctx))

        return SagaStep("reconcile_status", action, "repair_status_consistency")

    def _rollup_step(self, fixture_ids: Callable[[SagaContext], list[str]]) -> SagaStep:
        def action(ctx: SagaContext) -> None:
            ids = fixture_ids(ctx)
            for fixture_id in ids:
                self._rollups.recompute(fixture_id)
            ctx.add_fixtures(ids)

        return SagaStep("recompute_rollups", action, "repair_fixture_rollups")

    def _negotiation_rollup_step(self) -> SagaStep:
        def fixture_ids(ctx: SagaContext) -> list[str]:
            negotiation = self.get_negotiation(ctx.record_id)
            ids = self._rollups.fixtures_for_negotiation(negotiation)
            contract = self.active_contract(negotiation.id)
            if contract is not None:
                ids += [f for f in self._rollups.fixtures_for_contract(contract) if f not in ids]
            return ids

        return self._rollup_step(fixture_ids)

    def _contract_rollup_step(self) -> SagaStep:
        def fixture_ids(ctx: SagaContext) -> list[str]:
            contract = self.get_contract(ctx.record_id)
            ids = self._rollups.fixtures_for_contract(contract)
            if contract.negotiation_id:
                negotiation = self.get_negotiation(contract.negotiation_id)
                ids += [
                    f for f in self._rollups.fixtures_for_negotiation(negotiation) if f not in ids
                ]
            return ids

        return self._rollup_step(fixture_ids)

    def _recap_rollup_step(self) -> SagaStep:
        return self._rollup_step(
            lambda ctx: self._rollups.fixtures_for_recap(self.get_recap_manager(ctx.record_id))
        )

    def _analytics_step(self, negotiation_id: str) -> SagaStep:
        def action(ctx: SagaContext) -> None:
            ctx.analytics = self.compute_negotiation_analytics(negotiation_id)

        return SagaStep("compute_analytics", action, "compute_negotiation_analytics")

    def _field_change_step(self) -> SagaStep:
        def action(ctx: SagaContext) -> None:
            changes: list[FieldChange] = ctx.data["changes"]
            # Resume after the last change appended by an earlier attempt.
            for change in changes[ctx.data.setdefault("changes_written", 0) :]:
                self._event_log.append_field_change(change)
                ctx.data["changes_written"] += 1

        return SagaStep("record_field_changes", action, "append the remaining field changes")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert(self, model: type[R], entity_type: EntityType, fields: Mapping[str, Any]) -> R:
        now = self._clock()
        record = model.model_validate({**fields, "id": "", "created_at": now, "updated_at": now})
        record_id = self._store.insert(entity_type, record.model_dump(mode="json", exclude={"id"}))
        return record.model_copy(update={"id": record_id})

    def _patch(
        self,
        entity_type: EntityType,
        existing: Negotiation | Contract,
        fields: Mapping[str, Any],
        user_id: str | None,
        change_reason: str | None,
    ) -> list[FieldChange]:
        """Validate and persist a partial update; return the field changes."""
        now = self._clock()
        updated = existing.model_validate({**existing.model_dump(), **fields, "updated_at": now})
        changes = [
            FieldChange(
                entity_type=entity_type,
                entity_id=existing.id,
                field_name=name,
                old_value=_stringify(getattr(existing, name)),
                new_value=_stringify(getattr(updated, name)),
                timestamp=now,
                user_id=user_id,
                change_reason=change_reason,
            )
            for name in sorted(fields)
            if getattr(existing, name) != getattr(updated, name)
        ]
        dumped = updated.model_dump(mode="json")
        self._store.put(
            entity_type, existing.id, {**{k: dumped[k] for k in fields}, "updated_at": now}
        )
        return changes

    def _negotiation_payload(self, negotiation: Negotiation) -> list[ExpandableItem]:
        contract = self.active_contract(negotiation.id)
        return rate_payload(
            negotiation.freight_rate or (contract.freight_rate if contract else None),
            negotiation.demurrage_rate or (contract.demurrage_rate if contract else None),
            contract.laycan_start if contract else None,
            contract.laycan_end if contract else None,
            contract.quantity if contract else None,
            contract.quantity_unit if contract else None,
        )

    def _contract_payload(self, contract: Contract) -> list[ExpandableItem]:
        return rate_payload(
            contract.freight_rate,
            contract.demurrage_rate,
            contract.laycan_start,
            contract.laycan_end,
            contract.quantity,
            contract.quantity_unit,
        )

    @staticmethod
    def _result(ctx: SagaContext) -> MutationResult:
        return MutationResult(
            record_id=ctx.record_id,
            corrections=ctx.corrections,
            warnings=ctx.warnings,
            fixture_ids=ctx.fixture_ids,
            failed_steps=ctx.failed_steps,
            analytics=ctx.analytics,
        )


def _reject_derived(fields: Mapping[str, Any], derived: tuple[str, ...] | frozenset[str]) -> None:
    hand_set = set(fields) & set(derived)
    if hand_set:
        raise DerivedFieldError(sorted(hand_set))


def _reject_unknown(fields: Mapping[str, Any], allowed: frozenset[str], status_op: str) -> None:
    if "status" in fields:
        raise ValueError(f"status cannot be patched directly; use {status_op}")
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValueError(f"Fields not updatable: {', '.join(unknown)}")


__all__ = [
    "CONTRACT_UPDATABLE_FIELDS",
    "FIXTURE_UPDATABLE_FIELDS",
    "NEGOTIATION_UPDATABLE_FIELDS",
    "TradeDesk",
    "generate_number",
    "rate_payload",
]
